# authcore/services/audit/service.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from authcore.models.audit_log import AuditLog
from authcore.services._shared.base import BaseService
from authcore.services._shared.ports import AuditSink

log = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class AuditLogOut:
    id: int
    user_id: int | None
    action: str
    success: bool
    created_at: datetime
    error_message: str | None = None
    ip_address: str | None = None
    session_id: str | None = None


class AuditLogService(BaseService, AuditSink):
    """
    Persist audit events in their own unit of work.

    Recording is fire-and-forget: a failing write is logged and never
    reaches the caller, so auditing cannot break authentication flows.
    """

    def record(
        self,
        *,
        user_id: int | None,
        action: str,
        success: bool,
        description: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
        **extra: Any,
    ) -> None:
        session_id = extra.pop("session_id", None)
        resource_type = extra.pop("resource_type", "auth")
        resource_id = extra.pop("resource_id", None)
        details = {k: v for k, v in extra.items() if v is not None}
        if description and success:
            details["description"] = description
        try:
            with self.rw_uow() as uow:
                uow.audit_logs.add(
                    AuditLog(
                        user_id=user_id,
                        action=action,
                        resource_type=resource_type,
                        resource_id=str(resource_id) if resource_id is not None else None,
                        details=details or None,
                        ip_address=ip_address,
                        user_agent=user_agent,
                        session_id=session_id,
                        success=success,
                        error_message=None if success else description,
                    )
                )
        except Exception:
            log.exception("Failed to write audit log for action %s", action)

    def recent(self, limit: int = 20, **filters: Any) -> list[AuditLogOut]:
        """Newest audit events first."""
        with self.ro_uow() as uow:
            return [
                AuditLogOut(
                    id=row.id,
                    user_id=row.user_id,
                    action=row.action,
                    success=row.success,
                    created_at=row.created_at,
                    error_message=row.error_message,
                    ip_address=row.ip_address,
                    session_id=row.session_id,
                )
                for row in uow.audit_logs.recent(limit=limit, **filters)
            ]
