from __future__ import annotations

import hmac
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict

import jwt


_JWT_ALG = "HS256"


def passwords_match(provided: str, expected: str) -> bool:
    """Constant-time comparison of the admin password."""
    if not provided or not expected:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


def create_access_token(
    *,
    secret: str,
    reference: str,
    level: str,
    expires_minutes: int = 0,
) -> str:
    """Sign a token for `reference` at `level`.

    expires_minutes <= 0 leaves out the exp claim: the token never expires.
    """
    if not secret:
        raise ValueError("jwt_secret_blank")

    now = datetime.now(timezone.utc)
    payload: Dict[str, Any] = {
        "reference": reference,
        "level": level,
        "id": uuid.uuid4().hex,
    }
    if expires_minutes > 0:
        payload["exp"] = int((now + timedelta(minutes=int(expires_minutes))).timestamp())
    return jwt.encode(payload, secret, algorithm=_JWT_ALG)


def decode_access_token(*, token: str, secret: str) -> Dict[str, Any]:
    if not token:
        raise ValueError("token_blank")
    if not secret:
        raise ValueError("jwt_secret_blank")
    return jwt.decode(token, secret, algorithms=[_JWT_ALG])
