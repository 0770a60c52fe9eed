from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

import jwt

from refskills.config import DEFAULT_REF, Config
from refskills.errors import NotFoundError, UnauthorizedError
from refskills.store.refs import ref_exists

from .security import create_access_token, decode_access_token, passwords_match


LEVEL_NORMAL = "Normal"
LEVEL_ADMIN = "Admin"
LEVELS = (LEVEL_NORMAL, LEVEL_ADMIN)


@dataclass(frozen=True)
class Identity:
    """The verified contents of a bearer token."""

    reference: str
    level: str
    id: str
    exp: Optional[int] = None

    @property
    def is_admin(self) -> bool:
        return self.level == LEVEL_ADMIN

    @classmethod
    def from_claims(cls, claims: Dict[str, Any]) -> "Identity":
        reference = claims.get("reference")
        level = claims.get("level")
        token_id = claims.get("id")
        if not isinstance(reference, str) or not reference:
            raise UnauthorizedError("token_claims_invalid")
        if level not in LEVELS:
            raise UnauthorizedError("token_claims_invalid")
        if not isinstance(token_id, str) or not token_id:
            raise UnauthorizedError("token_claims_invalid")
        exp = claims.get("exp")
        return cls(reference=reference, level=level, id=token_id, exp=int(exp) if exp is not None else None)


def issue_normal_token(conn: Any, cfg: Config, reference: str) -> str:
    if not ref_exists(conn, reference):
        raise NotFoundError("Reference does not exist")
    return create_access_token(
        secret=cfg.JWT_SECRET,
        reference=reference,
        level=LEVEL_NORMAL,
        expires_minutes=cfg.TOKEN_EXPIRE_MINUTES,
    )


def issue_admin_token(cfg: Config, provided_password: str) -> str:
    if not passwords_match(provided_password, cfg.ADMIN_PASSWORD):
        raise UnauthorizedError("invalid_credentials")
    return create_access_token(
        secret=cfg.JWT_SECRET,
        reference=DEFAULT_REF,
        level=LEVEL_ADMIN,
        expires_minutes=cfg.TOKEN_EXPIRE_MINUTES,
    )


def verify_token(token: Optional[str], secret: str) -> Identity:
    if not token:
        raise UnauthorizedError("missing_token")
    try:
        claims = decode_access_token(token=token, secret=secret)
    except jwt.ExpiredSignatureError:
        raise UnauthorizedError("token_expired")
    except jwt.InvalidTokenError:
        raise UnauthorizedError("token_invalid")
    return Identity.from_claims(claims)


def require_admin_level(identity: Identity) -> Identity:
    if not identity.is_admin:
        raise UnauthorizedError("not an admin user")
    return identity
