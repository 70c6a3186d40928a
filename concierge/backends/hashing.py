"""
Concierge - Password hashing and policy.

Argon2id via argon2-cffi.
"""

from __future__ import annotations

from argon2 import PasswordHasher as Argon2PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError


class PasswordHasher:
    """
    Password hasher using Argon2id.

    Argon2id is memory-hard and GPU-resistant.

    Security parameters (defaults):
    - time_cost=2, memory_cost=65536 (64MB), parallelism=4
    """

    def __init__(
        self,
        time_cost: int = 2,
        memory_cost: int = 65536,  # KB
        parallelism: int = 4,
        hash_len: int = 32,
        salt_len: int = 16,
    ):
        self.hasher = Argon2PasswordHasher(
            time_cost=time_cost,
            memory_cost=memory_cost,
            parallelism=parallelism,
            hash_len=hash_len,
            salt_len=salt_len,
        )

    def hash(self, password: str) -> str:
        """
        Hash password.

        Example output:
            $argon2id$v=19$m=65536,t=2,p=4$saltbase64$hashbase64
        """
        return self.hasher.hash(password)

    def verify(self, password_hash: str, password: str) -> bool:
        """
        Verify password against hash.

        Constant-time; malformed hashes and non-string passwords fail to verify.
        """
        if not isinstance(password, str) or not password_hash.startswith("$argon2"):
            return False
        try:
            return self.hasher.verify(password_hash, password)
        except (VerificationError, InvalidHashError):
            return False

    def check_needs_rehash(self, password_hash: str) -> bool:
        try:
            return self.hasher.check_needs_rehash(password_hash)
        except InvalidHashError:
            return True


class PasswordPolicy:
    """
    Length policy applied when a password is set or reset.

    Deliberately small: richer checks belong to the application.
    """

    def __init__(self, min_length: int = 1, max_length: int = 1024):
        self.min_length = min_length
        self.max_length = max_length

    def validate(self, password: str) -> tuple[bool, list[str]]:
        """
        Returns:
            (is_valid, error_messages)
        """
        errors = []
        if not isinstance(password, str) or not password:
            errors.append("Password is required")
        elif len(password) < self.min_length:
            errors.append(f"Password must be at least {self.min_length} characters")
        elif len(password) > self.max_length:
            errors.append(f"Password must be at most {self.max_length} characters")
        return (len(errors) == 0, errors)
