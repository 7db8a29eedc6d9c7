from homeservices_auth.dependencies.auth import (
    get_auth_service,
    get_current_claims,
    get_current_user,
    get_token_service,
    require_permission,
)
from homeservices_auth.dependencies.db import get_async_session

__all__ = [
    "get_async_session",
    "get_auth_service",
    "get_current_claims",
    "get_current_user",
    "get_token_service",
    "require_permission",
]
