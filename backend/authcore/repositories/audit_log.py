"""Audit log repository (append and read only)."""

from __future__ import annotations

from authcore.models.audit_log import AuditLog
from authcore.repositories.base import BaseRepository


class AuditLogRepository(BaseRepository[AuditLog]):
    """Persistence-only repository for :class:`AuditLog`."""

    model = AuditLog

    def _sortable_fields(self):
        return {"id": AuditLog.id, "created_at": AuditLog.created_at}

    def _filterable_fields(self):
        return {
            "user_id": AuditLog.user_id,
            "action": AuditLog.action,
            "success": AuditLog.success,
        }

    def recent(self, *, limit: int = 20, **filters) -> list[AuditLog]:
        """Newest events first."""
        return self.list(filters=filters, sort=["-created_at", "-id"], limit=limit)
