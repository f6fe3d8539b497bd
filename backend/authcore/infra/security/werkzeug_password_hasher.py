from __future__ import annotations

from dataclasses import dataclass

from werkzeug.security import check_password_hash, generate_password_hash

from authcore.services._shared.ports import PasswordHasher


@dataclass(frozen=True, slots=True)
class WerkzeugPasswordHasher(PasswordHasher):
    """
    Password hashing via :mod:`werkzeug.security`.

    :param method: Werkzeug hash method string (e.g. ``"scrypt"``, ``"pbkdf2:sha256"``).
    """

    method: str = "scrypt"

    def hash(self, password: str) -> str:
        return generate_password_hash(password, method=self.method)

    def verify(self, password: str, password_hash: str) -> bool:
        if not password_hash:
            return False
        try:
            return check_password_hash(password_hash, password)
        except ValueError:
            # Unknown or corrupt hash format
            return False
