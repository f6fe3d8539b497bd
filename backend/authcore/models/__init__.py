from authcore.models.audit_log import AuditLog
from authcore.models.email_verification_token import EmailVerificationToken, TokenType
from authcore.models.role import ADMIN_ROLE, DEFAULT_ROLE, Permission, Role, role_permissions
from authcore.models.user import User, UserStatus

__all__ = [
    "ADMIN_ROLE",
    "AuditLog",
    "DEFAULT_ROLE",
    "EmailVerificationToken",
    "Permission",
    "Role",
    "TokenType",
    "User",
    "UserStatus",
    "role_permissions",
]
