from __future__ import annotations

from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from refskills.config import Config

from .tokens import Identity, require_admin_level, verify_token


_bearer = HTTPBearer(auto_error=False)


def get_config(request: Request) -> Config:
    cfg = getattr(request.app.state, "cfg", None)
    if cfg is None:
        raise RuntimeError("server_config_missing")
    return cfg


def get_current_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
    cfg: Config = Depends(get_config),
) -> Identity:
    """Authenticate a request (Normal or Admin).

    The only accepted transport is `Authorization: Bearer <jwt>`. A bare token in
    the header, or any other scheme, counts as no token at all.
    """
    token = credentials.credentials if credentials is not None else None
    return verify_token(token, cfg.JWT_SECRET)


def require_admin(identity: Identity = Depends(get_current_identity)) -> Identity:
    return require_admin_level(identity)
