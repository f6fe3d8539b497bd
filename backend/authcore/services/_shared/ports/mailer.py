from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol


class Mailer(Protocol):
    """Outbound mail port. Implementations report failure by returning ``False``."""

    def send_verification_email(
        self,
        *,
        to: str,
        token: str,
        url: str,
        name: str,
        expiry_hours: int,
    ) -> bool: ...


@dataclass(frozen=True, slots=True)
class SentMail:
    to: str
    token: str
    url: str
    name: str
    expiry_hours: int


@dataclass(slots=True)
class InMemoryMailer(Mailer):
    """
    Records every message instead of sending it.

    :param fail: When ``True`` every send returns ``False``.
    :param raise_error: When set, every send raises it.
    """

    fail: bool = False
    raise_error: Exception | None = None
    outbox: list[SentMail] = field(default_factory=list)

    def send_verification_email(
        self,
        *,
        to: str,
        token: str,
        url: str,
        name: str,
        expiry_hours: int,
    ) -> bool:
        if self.raise_error is not None:
            raise self.raise_error
        if self.fail:
            return False
        self.outbox.append(SentMail(to, token, url, name, expiry_hours))
        return True
