"""Authentication / authorization helpers.

Auth is stateless and deliberately small:

- Normal tokens are scoped to one existing reference and are free to obtain.
- Admin tokens are scoped to the default reference and require the configured
  admin password.

Tokens are HS256 JWTs sent as `Authorization: Bearer <token>`. Nothing about a
token is stored server-side; validity is signature + expiry only.
"""

from .deps import get_config, get_current_identity, require_admin
from .tokens import (
    LEVEL_ADMIN,
    LEVEL_NORMAL,
    Identity,
    issue_admin_token,
    issue_normal_token,
    verify_token,
)

__all__ = [
    "get_config",
    "get_current_identity",
    "require_admin",
    "LEVEL_ADMIN",
    "LEVEL_NORMAL",
    "Identity",
    "issue_admin_token",
    "issue_normal_token",
    "verify_token",
]
