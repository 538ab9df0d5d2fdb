# luckybet/modules/credentials.py
from __future__ import annotations

import hashlib
import secrets
from decimal import Decimal
from typing import List, Optional

from luckybet.inc.errors import (
    AuthenticationError,
    BalanceContentionError,
    DuplicateResourceError,
    NotFoundError,
    ValidationError,
    WeakPasswordError,
)
from luckybet.inc.logging import logger
from luckybet.inc.models import MAX_BALANCE, User, UserRepository, parse_money
from luckybet.inc.sessions import Session

DEFAULT_STARTING_BALANCE = Decimal("1000.00")
MIN_PASSWORD_LENGTH = 6
PBKDF2_ITERATIONS = 200_000


def hash_password(password: str, salt: Optional[str] = None, iterations: int = PBKDF2_ITERATIONS) -> str:
    salt = salt or secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt.encode("ascii"), iterations)
    return f"pbkdf2${iterations}${salt}${digest.hex()}"


def verify_password(password: str, stored: str) -> bool:
    try:
        scheme, iterations, salt, _digest = stored.split("$", 3)
        rounds = int(iterations)
    except ValueError:
        return False
    if scheme != "pbkdf2":
        return False
    return secrets.compare_digest(hash_password(password, salt, rounds), stored)


def _require_text(value, label: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{label} required")
    return value.strip()


class CredentialService:
    """
    Account lifecycle. Never touches cookies: the calling handler creates or
    refreshes the session after a successful register/login.
    """

    def __init__(
        self,
        users: UserRepository,
        starting_balance: Decimal = DEFAULT_STARTING_BALANCE,
        min_password_length: int = MIN_PASSWORD_LENGTH,
    ):
        self.users = users
        self.starting_balance = starting_balance
        self.min_password_length = min_password_length

    def register(self, username: str, email: str, password: str) -> User:
        if not all(isinstance(v, str) and v.strip() for v in (username, email, password)):
            raise ValidationError("Username, email, and password required")
        username = username.strip()
        email = email.strip()
        if self.users.find_user_by_email(email) is not None:
            raise DuplicateResourceError("Email already registered")
        user = self.users.create_user(username, email, hash_password(password), self.starting_balance)
        logger.info("[auth] registered user %s", user.id)
        return user

    def login(self, email: str, password: str) -> User:
        if not isinstance(email, str) or not email or not isinstance(password, str) or not password:
            raise ValidationError("Email and password required")
        user = self.users.find_user_by_email(email.strip())
        if user is None or not verify_password(password, user.password):
            raise AuthenticationError("Invalid credentials")
        return user

    def logout(self, session: Session) -> None:
        session.data.user_id = None
        session.data.round = None

    def get_profile(self, user_id: int) -> Optional[User]:
        return self.users.get_user(user_id)

    def update_password(self, user_id: int, current_password: str, new_password: str) -> None:
        if not isinstance(current_password, str) or not isinstance(new_password, str):
            raise ValidationError("Current and new password required")
        user = self.users.get_user(user_id)
        if user is None:
            raise NotFoundError("User not found")
        if not verify_password(current_password, user.password):
            raise AuthenticationError("Current password is incorrect")
        if len(new_password) < self.min_password_length:
            raise WeakPasswordError(f"New password must be at least {self.min_password_length} characters")
        self.users.update_password(user_id, hash_password(new_password))
        logger.info("[auth] password changed for user %s", user_id)

    def update_profile(self, user_id: int, name: Optional[str], email: str) -> User:
        email = _require_text(email, "Email")
        user = self.users.get_user(user_id)
        if user is None:
            raise NotFoundError("User not found")
        owner = self.users.find_user_by_email(email)
        if owner is not None and owner.id != user.id:
            raise DuplicateResourceError("Email is already taken")
        username = name.strip() if isinstance(name, str) and name.strip() else user.username
        updated = self.users.update_profile(user_id, username, email)
        if updated is None:
            raise NotFoundError("User not found")
        return updated

    def set_balance(self, user_id: int, balance) -> Decimal:
        value = parse_money(balance)
        if value is None or value < 0:
            raise ValidationError("Invalid balance")
        if value > MAX_BALANCE:
            raise ValidationError("Balance limit reached")
        user = self.users.get_user(user_id)
        if user is None:
            raise NotFoundError("User not found")
        if not self.users.compare_and_set_balance(user_id, user.balance, value):
            raise BalanceContentionError()
        logger.info("[auth] balance for user %s set to %s", user_id, value)
        return value

    def leaderboard(self, limit: int = 10) -> List[dict]:
        return [
            {"id": u.id, "username": u.username, "balance": u.balance}
            for u in self.users.list_top_balances(limit)
        ]
