from __future__ import annotations

from typing import Protocol


class PasswordHasher(Protocol):
    """Port for one-way password hashing."""

    def hash(self, password: str) -> str: ...

    def verify(self, password: str, password_hash: str) -> bool:
        """Return ``True`` if ``password`` matches ``password_hash``; never raises."""
        ...


class PlainTextPasswordHasher(PasswordHasher):
    """
    Reversible "hasher" for unit tests, so factories and assertions stay fast.

    Hashes are ``"plain$<password>"``.
    """

    prefix = "plain$"

    def hash(self, password: str) -> str:
        return f"{self.prefix}{password}"

    def verify(self, password: str, password_hash: str) -> bool:
        return password_hash == f"{self.prefix}{password}"
