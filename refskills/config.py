import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional, Tuple

# Optional: load a local .env file if present.
try:
    from dotenv import load_dotenv

    load_dotenv()
except ImportError:
    # If python-dotenv isn't installed, the process environment is used as-is.
    pass


DEFAULT_REF = "NOREF"

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ConfigError(RuntimeError):
    """Raised at startup when the environment is missing or malformed."""


def _required(env: Mapping[str, str], name: str) -> str:
    raw = env.get(name)
    if raw is None or not raw.strip():
        raise ConfigError(f"missing required environment variable {name}")
    return raw.strip()


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}")


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw.strip())
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}")


def parse_bind_addr(addr: str) -> Tuple[str, int]:
    """Split `host:port` (IPv6 hosts may be bracketed: `[::1]:8000`)."""
    host, sep, port = (addr or "").strip().rpartition(":")
    if not sep or not host or not port.isdigit():
        raise ConfigError(f"BIND_ADDR must look like host:port, got {addr!r}")
    return host.strip("[]"), int(port)


@dataclass(frozen=True)
class Config:
    """Runtime configuration.

    Built once at startup by `load_config()` and passed explicitly to the app.
    Provide secrets via environment variables or a .env file.
    """

    # -----------------
    # Core
    # -----------------
    # SQLite file path, sqlite:///path, or a postgres:// URL.
    DB_DSN: str

    # host:port the API binds to (see scripts/run_api.py).
    BIND_ADDR: str

    LOG_LEVEL: str = "INFO"

    # -----------------
    # Auth (JWT)
    # -----------------
    JWT_SECRET: str = ""
    ADMIN_PASSWORD: str = ""

    # 0 means tokens carry no exp claim and never expire.
    TOKEN_EXPIRE_MINUTES: int = 0

    # -----------------
    # Misc
    # -----------------
    CORS_ALLOW_ORIGINS: str = "*"

    # Default minimum score for /skills/search.
    SEARCH_THRESHOLD: float = 0.5

    @property
    def log_level_value(self) -> int:
        return getattr(logging, self.LOG_LEVEL)

    @property
    def bind_host_port(self) -> Tuple[str, int]:
        return parse_bind_addr(self.BIND_ADDR)


def load_config(env: Optional[Mapping[str, str]] = None) -> Config:
    """Build a Config from the environment.

    Any missing required value is fatal: this raises ConfigError rather than
    letting the service start half-configured.
    """
    env = os.environ if env is None else env

    log_level = _required(env, "LOG_LEVEL").upper()
    if log_level not in _LOG_LEVELS:
        raise ConfigError(f"LOG_LEVEL must be one of {', '.join(_LOG_LEVELS)}, got {log_level!r}")

    bind_addr = _required(env, "BIND_ADDR")
    parse_bind_addr(bind_addr)

    expire_minutes = _env_int(env, "TOKEN_EXPIRE_MINUTES", 0)
    if expire_minutes < 0:
        raise ConfigError("TOKEN_EXPIRE_MINUTES must be >= 0")

    threshold = _env_float(env, "SEARCH_THRESHOLD", 0.5)
    if not 0.0 <= threshold <= 1.0:
        raise ConfigError("SEARCH_THRESHOLD must be between 0 and 1")

    return Config(
        DB_DSN=_required(env, "DATABASE_URL"),
        BIND_ADDR=bind_addr,
        LOG_LEVEL=log_level,
        JWT_SECRET=_required(env, "JWT_SECRET"),
        ADMIN_PASSWORD=_required(env, "ADMIN_PASSWORD"),
        TOKEN_EXPIRE_MINUTES=expire_minutes,
        CORS_ALLOW_ORIGINS=(env.get("CORS_ALLOW_ORIGINS") or "*").strip(),
        SEARCH_THRESHOLD=threshold,
    )


def configure_logging(cfg: Config) -> None:
    logging.basicConfig(
        level=cfg.log_level_value,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
