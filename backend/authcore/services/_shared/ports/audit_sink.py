from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol


@dataclass(frozen=True, slots=True)
class AuditEvent:
    """
    One security-relevant event.

    :ivar action: Verb such as ``login`` or ``register``.
    :ivar success: Outcome of the action.
    :ivar user_id: Acting user, when known.
    :ivar description: Free text; stored as the error message on failures.
    :ivar extra: Additional details stored as JSON.
    """

    action: str
    success: bool
    user_id: int | None = None
    description: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    session_id: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)


class AuditSink(Protocol):
    """Fire-and-forget audit writer. ``record`` must never raise."""

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
    ) -> None: ...


@dataclass(slots=True)
class InMemoryAuditSink(AuditSink):
    events: list[AuditEvent] = field(default_factory=list)

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
        self.events.append(
            AuditEvent(
                action=action,
                success=success,
                user_id=user_id,
                description=description,
                ip_address=ip_address,
                user_agent=user_agent,
                session_id=session_id,
                extra=extra,
            )
        )

    def actions(self) -> list[tuple[str, bool]]:
        return [(e.action, e.success) for e in self.events]
