from enum import Enum


class AuditAction(str, Enum):
    IMPERSONATION_START = "IMPERSONATION_START"
    IMPERSONATION_END = "IMPERSONATION_END"
    ORGANIZATION_CREATED = "ORGANIZATION_CREATED"
    ORGANIZATION_DISABLED = "ORGANIZATION_DISABLED"
    ORGANIZATION_ENABLED = "ORGANIZATION_ENABLED"
    USER_CREATED = "USER_CREATED"
    USER_DELETED = "USER_DELETED"
    PASSWORD_CHANGED = "PASSWORD_CHANGED"
    PASSWORD_FORCE_CHANGED = "PASSWORD_FORCE_CHANGED"
