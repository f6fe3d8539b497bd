"""
Unit of Work contract shared by the auth services.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from authcore.repositories import (
        AuditLogRepository,
        EmailVerificationTokenRepository,
        RoleRepository,
        UserRepository,
    )


class UnitOfWork(ABC):
    """
    One transactional boundary with the repositories that share it.

    Services use it as a context manager; implementations decide whether
    leaving the block commits or always rolls back.
    """

    users: UserRepository
    roles: RoleRepository
    verification_tokens: EmailVerificationTokenRepository
    audit_logs: AuditLogRepository

    @abstractmethod
    def __enter__(self) -> UnitOfWork: ...

    @abstractmethod
    def __exit__(self, exc_type, exc, tb) -> None: ...

    @abstractmethod
    def commit(self) -> None: ...

    @abstractmethod
    def rollback(self) -> None: ...
