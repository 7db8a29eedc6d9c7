from homeservices_auth.db.models.user import User
from homeservices_auth.db.models.access import (
    Group,
    GroupPermission,
    Permission,
    Role,
    RolePermission,
    UserGroup,
    UserRole,
)
from homeservices_auth.db.models.otp import OTPToken

__all__ = [
    "Group",
    "GroupPermission",
    "OTPToken",
    "Permission",
    "Role",
    "RolePermission",
    "User",
    "UserGroup",
    "UserRole",
]
