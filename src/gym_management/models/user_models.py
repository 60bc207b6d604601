"""User roles and account status."""

from enum import Enum


class UserRole(str, Enum):
    USER = "user"
    PT = "pt"
    STAFF = "staff"
    ADMIN = "admin"


class UserStatus(str, Enum):
    """Account status; `active` while the user holds a paid, unexpired membership."""

    ACTIVE = "active"
    INACTIVE = "inactive"
