"""Repository package exposing persistence-layer access for all models."""

from __future__ import annotations

from authcore.repositories.audit_log import AuditLogRepository
from authcore.repositories.base import BaseRepository, apply_sorting, parse_sort_tokens
from authcore.repositories.email_verification_token import EmailVerificationTokenRepository
from authcore.repositories.role import RoleRepository
from authcore.repositories.user import UserRepository

__all__ = [
    "BaseRepository",
    "apply_sorting",
    "parse_sort_tokens",
    "AuditLogRepository",
    "EmailVerificationTokenRepository",
    "RoleRepository",
    "UserRepository",
]
