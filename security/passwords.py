"""Password hashing, password policy and single-use token helpers."""

import re
import hashlib
import secrets

from fastapi.concurrency import run_in_threadpool

from passlib.context import CryptContext

from typing import List

from config.settings import PasswordPolicy


class PasswordHasher:
    """bcrypt hashing through passlib.

    bcrypt is CPU bound, so the async variants push the work onto the
    thread pool instead of blocking the event loop.
    """

    def __init__(self, rounds: int = 12):
        self.pwd_context = CryptContext(
            schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=rounds
        )

    def hash(self, password: str) -> str:
        """Generates a hash for the given password.

        Args:
            password (str): The plain text password to hash.

        Returns:
            str: The hashed password.
        """
        return self.pwd_context.hash(password)

    def verify(self, plain_password: str, hashed_password: str) -> bool:
        """Verifies that `plain_password` and `hashed_password` are equal.

        Args:
            plain_password (str): The plain text password to verify.
            hashed_password (str): The hashed password to compare against.

        Returns:
            bool: True if the passwords match, False otherwise.
        """
        try:
            return self.pwd_context.verify(plain_password, hashed_password)
        except ValueError:
            # Malformed or unknown hash format
            return False

    async def hash_async(self, password: str) -> str:
        return await run_in_threadpool(self.hash, password)

    async def verify_async(self, plain_password: str, hashed_password: str) -> bool:
        return await run_in_threadpool(self.verify, plain_password, hashed_password)


def password_policy_violations(password: str, policy: PasswordPolicy) -> List[str]:
    """List every rule of `policy` that `password` breaks.

    Args:
        password (str): Candidate password.
        policy (PasswordPolicy): Rules to check against.

    Returns:
        List[str]: Human readable violations, empty when the password is acceptable.
    """
    violations = []

    if len(password) < policy.min_length:
        violations.append(f"Password must be at least {policy.min_length} characters")
    if len(password) > policy.max_length:
        violations.append("Password too long")
    if policy.require_lowercase and not re.search(r"[a-z]", password):
        violations.append("Password must contain at least one lowercase letter")
    if policy.require_uppercase and not re.search(r"[A-Z]", password):
        violations.append("Password must contain at least one uppercase letter")
    if policy.require_digit and not re.search(r"\d", password):
        violations.append("Password must contain at least one number")

    return violations


def generate_opaque_token() -> str:
    """Random token for password-reset and email-verification links."""
    return secrets.token_hex(32)


def token_digest(token: str) -> str:
    """SHA-256 digest under which single-use tokens are stored."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()
