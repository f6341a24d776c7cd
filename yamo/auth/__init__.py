from yamo.auth.context import AuthContext
from yamo.auth.dependencies import (
    get_current_auth,
    get_current_super_admin,
    require_team_access,
    require_team_access_or_superadmin,
)
from yamo.auth.jwt import create_access_token, decode_access_token

__all__ = [
    "AuthContext",
    "get_current_auth",
    "get_current_super_admin",
    "require_team_access",
    "require_team_access_or_superadmin",
    "create_access_token",
    "decode_access_token",
]
