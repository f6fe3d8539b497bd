# authcore/services/auth/credentials.py
from __future__ import annotations

from authcore.models.user import User
from authcore.repositories.user import UserRepository
from authcore.services._shared.ports import PasswordHasher

# Verified against when the email is unknown so both paths hash once.
_DUMMY_HASH_INPUT = "not-a-real-password"


class CredentialValidator:
    """
    Email + password check against stored hashes.

    :param hasher: Password hashing port.
    """

    def __init__(self, *, hasher: PasswordHasher) -> None:
        self.hasher = hasher
        self._dummy_hash = hasher.hash(_DUMMY_HASH_INPUT)

    def validate(self, users: UserRepository, email: str, password: str) -> User | None:
        """
        Return the user (with role loaded) when the password matches.

        :param users: Repository bound to the caller's unit of work.
        :returns: ``None`` for an unknown email or a wrong password.
        """
        user = users.get_by_email_with_role(email)
        if user is None:
            self.hasher.verify(password, self._dummy_hash)
            return None
        if not self.hasher.verify(password, user.password_hash):
            return None
        return user
