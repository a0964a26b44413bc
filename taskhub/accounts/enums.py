from enum import Enum


class UserRole(str, Enum):
    """Global user roles"""
    SUPER_ADMIN = "SUPER_ADMIN"  # Platform owner, no organization
    ADMIN = "ADMIN"  # Manages one organization
    EMPLOYEE = "EMPLOYEE"  # Works on the tasks assigned to them
