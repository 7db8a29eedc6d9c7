from homeservices_auth.db.crud.base import BaseDB
from homeservices_auth.db.crud.access import GroupDB, PermissionDB, RoleDB
from homeservices_auth.db.crud.otp import OTPTokenDB
from homeservices_auth.db.crud.user import UserDB

# Global CRUD instances - use these instead of creating new instances
user_db = UserDB()
otp_token_db = OTPTokenDB()
role_db = RoleDB()
group_db = GroupDB()
permission_db = PermissionDB()

__all__ = [
    # Classes (for type hints and subclassing)
    "BaseDB",
    "GroupDB",
    "OTPTokenDB",
    "PermissionDB",
    "RoleDB",
    "UserDB",
    # Global instances (for actual usage)
    "group_db",
    "otp_token_db",
    "permission_db",
    "role_db",
    "user_db",
]
