from skyvault.auth.token import TokenPayload, get_current_user, jwks_cache, verify_token
from skyvault.auth.dependencies import (
    AppSettings,
    CurrentUser,
    Files,
    Pipeline,
    Storage,
    UserDB,
)

__all__ = [
    "TokenPayload", "get_current_user", "jwks_cache", "verify_token",
    "AppSettings", "CurrentUser", "Files", "Pipeline", "Storage", "UserDB",
]
