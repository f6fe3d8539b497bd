"""Service layer public API.

This package exposes the building blocks of the service layer so that
callers can import from :mod:`authcore.services` without knowing its
internal structure.

Re-exports
----------
- Base primitives (from ``authcore.services._shared.base``)
    * :class:`BaseService`

- Sessions (from ``authcore.services.sessions``)
    * :class:`SessionManager`
    * DTOs: :class:`SessionValidationResult`, :class:`TokenRefreshResult`

- Brute-force protection (from ``authcore.services.lockout``)
    * :class:`LockoutTracker`

- Authentication (from ``authcore.services.auth``)
    * :class:`AuthService`, :class:`LoginOrchestrator`, :class:`CredentialValidator`
    * DTOs: :class:`LoginIn`, :class:`LoginOut`, :class:`RefreshIn`, :class:`TokenPairOut`

- Registration (from ``authcore.services.registration``)
    * :class:`RegistrationOrchestrator`
    * DTOs: :class:`RegistrationIn`, :class:`RegistrationOut`

- Email verification (from ``authcore.services.email_verification``)
    * :class:`EmailVerificationTokenManager`
    * DTOs: :class:`TokenResult`, :class:`TokenStatistics`

- Audit (from ``authcore.services.audit``)
    * :class:`AuditLogService`
"""

from __future__ import annotations

from authcore.services._shared.base import BaseService
from authcore.services.audit.service import AuditLogService
from authcore.services.auth.credentials import CredentialValidator
from authcore.services.auth.dto import LoginIn, LoginOut, RefreshIn, TokenPairOut
from authcore.services.auth.login import LoginOrchestrator
from authcore.services.auth.service import AuthService
from authcore.services.email_verification.dto import TokenResult, TokenStatistics
from authcore.services.email_verification.service import EmailVerificationTokenManager
from authcore.services.lockout.tracker import LockoutTracker
from authcore.services.registration.dto import RegistrationIn, RegistrationOut
from authcore.services.registration.service import RegistrationOrchestrator
from authcore.services.sessions.dto import SessionValidationResult, TokenRefreshResult
from authcore.services.sessions.manager import SessionManager

__all__ = [
    "AuditLogService",
    "AuthService",
    "BaseService",
    "CredentialValidator",
    "EmailVerificationTokenManager",
    "LockoutTracker",
    "LoginIn",
    "LoginOrchestrator",
    "LoginOut",
    "RefreshIn",
    "RegistrationIn",
    "RegistrationOrchestrator",
    "RegistrationOut",
    "SessionManager",
    "SessionValidationResult",
    "TokenPairOut",
    "TokenRefreshResult",
    "TokenResult",
    "TokenStatistics",
]
