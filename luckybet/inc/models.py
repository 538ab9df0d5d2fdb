# luckybet/inc/models.py
from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import ROUND_DOWN, Decimal, InvalidOperation, localcontext
from typing import Any, Dict, List, Optional, Protocol

CENT = Decimal("0.01")
# NUMERIC(12, 2)
MAX_BALANCE = Decimal("9999999999.99")
PARSE_PRECISION = 64


def quantize(amount: Decimal) -> Decimal:
    """Round a computed amount down to whole cents."""
    return Decimal(amount).quantize(CENT, rounding=ROUND_DOWN)


def parse_money(raw: Any) -> Optional[Decimal]:
    """
    Parse a JSON number or numeric string into a cent-exact Decimal.

    Returns None for anything that is not a finite amount with at most two
    decimal places. Booleans are rejected even though they are ints.
    """
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, float) and not math.isfinite(raw):
        return None
    if not isinstance(raw, (int, float, str, Decimal)):
        return None
    with localcontext() as ctx:
        ctx.prec = PARSE_PRECISION
        try:
            value = Decimal(str(raw).strip())
            if not value.is_finite():
                return None
            cents = value.quantize(CENT, rounding=ROUND_DOWN)
        except (InvalidOperation, ValueError):
            return None
    if value != cents:
        return None
    return cents


@dataclass
class User:
    """
    A player account. `password` holds the stored hash and never leaves the
    service layer; use `public()` for anything sent to a client.
    """

    id: int
    username: str
    email: str
    password: str
    balance: Decimal = Decimal("0.00")
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def public(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "balance": self.balance,
        }

    def profile(self) -> Dict[str, Any]:
        data = self.public()
        data["createdAt"] = self.created_at
        return data


class UserRepository(Protocol):
    """
    Persistence for users and their balances.

    Balance changes go only through `compare_and_set_balance`, which writes
    `new` if and only if the stored balance still equals `expected`.
    """

    def find_user_by_email(self, email: str) -> Optional[User]:
        ...

    def get_user(self, user_id: int) -> Optional[User]:
        ...

    def create_user(self, username: str, email: str, password: str, balance: Decimal) -> User:
        """Insert a user; raises DuplicateResourceError when the email exists."""
        ...

    def update_password(self, user_id: int, password: str) -> None:
        ...

    def update_profile(self, user_id: int, username: str, email: str) -> Optional[User]:
        """Raises DuplicateResourceError when another user owns `email`."""
        ...

    def compare_and_set_balance(self, user_id: int, expected: Decimal, new: Decimal) -> bool:
        ...

    def list_top_balances(self, limit: int) -> List[User]:
        ...
