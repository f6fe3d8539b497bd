"""Convenience exports for application schemas."""

from __future__ import annotations

from .auth import (
    ChangePasswordSchema,
    LoginSchema,
    PasswordResetSchema,
    RegisterSchema,
    VerifyTokenSchema,
)
from .stats import LockoutStatsSchema, SessionStatsSchema, TokenStatisticsSchema

__all__ = [
    "ChangePasswordSchema",
    "LoginSchema",
    "PasswordResetSchema",
    "RegisterSchema",
    "VerifyTokenSchema",
    "LockoutStatsSchema",
    "SessionStatsSchema",
    "TokenStatisticsSchema",
]
