# luckybet/modules/wagers.py
from __future__ import annotations

import secrets
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Callable, Dict, Optional, Tuple

from luckybet.inc.errors import (
    BalanceContentionError,
    InsufficientFundsError,
    InvalidBetError,
    NotFoundError,
    ValidationError,
)
from luckybet.inc.logging import logger
from luckybet.inc.models import MAX_BALANCE, User, UserRepository, parse_money, quantize

GAMES = ("roulette", "blackjack", "coinflip")

COINFLIP_SIDES = ("heads", "tails")
# 2.5% under the fair 2x
COINFLIP_MULTIPLIER = Decimal("1.95")

# European wheel in pocket order; colors are a fixed table, not arithmetic
ROULETTE_WHEEL: Tuple[Tuple[int, str], ...] = (
    (0, "green"),
    (32, "red"), (15, "black"), (19, "red"), (4, "black"), (21, "red"), (2, "black"),
    (25, "red"), (17, "black"), (34, "red"), (6, "black"), (27, "red"), (13, "black"),
    (36, "red"), (11, "black"), (30, "red"), (8, "black"), (23, "red"), (10, "black"),
    (5, "red"), (24, "black"), (16, "red"), (33, "black"), (1, "red"), (20, "black"),
    (14, "red"), (31, "black"), (9, "red"), (22, "black"), (18, "red"), (29, "black"),
    (7, "red"), (28, "black"), (12, "red"), (35, "black"), (3, "red"), (26, "black"),
)
ROULETTE_COLORS: Dict[int, str] = dict(ROULETTE_WHEEL)
ROULETTE_POCKETS = 37

STRAIGHT_UP_MULTIPLIER = Decimal(35)
EVEN_MONEY_MULTIPLIER = Decimal(1)
DOZEN_MULTIPLIER = Decimal(2)
DOZENS = {"1-12": (1, 12), "13-24": (13, 24), "25-36": (25, 36)}


@dataclass
class Settlement:
    """
    Result of one settled wager. `returned` is what was credited back, so
    new_balance == balance_before - amount + returned always holds; `payout`
    is the figure each game reports (gross for coin flip, "N to 1" winnings for
    roulette). `fields` carries the game-specific outcome.
    """

    amount: Decimal
    payout: Decimal
    returned: Decimal
    balance_before: Decimal
    new_balance: Decimal
    win: bool
    fields: Dict[str, Any] = field(default_factory=dict)

    def payload(self) -> Dict[str, Any]:
        out = dict(self.fields)
        out.update({"win": self.win, "payout": self.payout, "newBalance": self.new_balance})
        return out


def parse_bet_amount(raw: Any) -> Decimal:
    amount = parse_money(raw)
    if amount is None or amount <= 0:
        raise InvalidBetError("Invalid bet input")
    return amount


def load_user(users: UserRepository, user_id: int) -> User:
    user = users.get_user(user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


def check_balance_limit(balance: Decimal) -> None:
    if balance > MAX_BALANCE:
        raise ValidationError("Balance limit reached")


def apply_balance_delta(users: UserRepository, user_id: int, delta: Decimal) -> Decimal:
    """
    Move a balance by `delta` with one conditional write. Debits beyond the
    current balance raise InsufficientFundsError; a concurrent change between
    read and write raises BalanceContentionError. Nothing is written on failure.
    """
    user = load_user(users, user_id)
    new_balance = user.balance + delta
    if new_balance < 0:
        raise InsufficientFundsError()
    check_balance_limit(new_balance)
    if not users.compare_and_set_balance(user_id, user.balance, new_balance):
        logger.warning("[wager] balance contention for user %s", user_id)
        raise BalanceContentionError()
    return new_balance


def coinflip_outcome(guess: str, outcome: str, amount: Decimal) -> Tuple[bool, Decimal]:
    win = guess == outcome
    return win, quantize(amount * COINFLIP_MULTIPLIER) if win else Decimal("0.00")


def roulette_multiplier(bet_type: str, number: int) -> Optional[Decimal]:
    """Payout multiplier when `bet_type` wins on `number`, else None."""
    if bet_type == str(number):
        return STRAIGHT_UP_MULTIPLIER
    if bet_type == ROULETTE_COLORS[number]:
        return EVEN_MONEY_MULTIPLIER
    if bet_type == "even" and number != 0 and number % 2 == 0:
        return EVEN_MONEY_MULTIPLIER
    if bet_type == "odd" and number % 2 == 1:
        return EVEN_MONEY_MULTIPLIER
    bounds = DOZENS.get(bet_type)
    if bounds and bounds[0] <= number <= bounds[1]:
        return DOZEN_MULTIPLIER
    return None


class WagerEngine:
    """Coin flip and roulette on top of the shared settlement contract."""

    def __init__(self, users: UserRepository, rng=None):
        self.users = users
        self.rng = rng or secrets.SystemRandom()

    def settle(
        self,
        user_id: int,
        raw_amount: Any,
        resolve: Callable[[Decimal], Tuple[bool, Decimal, Decimal, Dict[str, Any]]],
    ) -> Settlement:
        """
        load -> validate -> resolve -> conditional write. `resolve` returns
        (win, payout, returned, outcome fields) for the validated amount.
        """
        amount = parse_bet_amount(raw_amount)
        user = load_user(self.users, user_id)
        if amount > user.balance:
            raise InsufficientFundsError()
        win, payout, returned, fields = resolve(amount)
        new_balance = user.balance - amount + returned
        check_balance_limit(new_balance)
        if not self.users.compare_and_set_balance(user_id, user.balance, new_balance):
            logger.warning("[wager] balance contention for user %s", user_id)
            raise BalanceContentionError()
        return Settlement(
            amount=amount,
            payout=payout,
            returned=returned,
            balance_before=user.balance,
            new_balance=new_balance,
            win=win,
            fields=fields,
        )

    def play_coinflip(self, user_id: int, guess: Any, amount: Any) -> Settlement:
        guess = guess.strip().lower() if isinstance(guess, str) else None
        if guess not in COINFLIP_SIDES:
            raise InvalidBetError("Guess must be heads or tails")

        def resolve(stake: Decimal):
            outcome = self.rng.choice(COINFLIP_SIDES)
            win, payout = coinflip_outcome(guess, outcome, stake)
            return win, payout, payout, {"outcome": outcome}

        result = self.settle(user_id, amount, resolve)
        logger.info(
            "[wager] coinflip user=%s amount=%s outcome=%s payout=%s",
            user_id, result.amount, result.fields["outcome"], result.payout,
        )
        return result

    def play_roulette(self, user_id: int, bet_type: Any, amount: Any) -> Settlement:
        if isinstance(bet_type, int) and not isinstance(bet_type, bool):
            bet_type = str(bet_type)
        if not isinstance(bet_type, str) or not bet_type.strip():
            raise InvalidBetError("Bet type required")
        bet_type = bet_type.strip().lower()

        def resolve(stake: Decimal):
            number = self.rng.randrange(ROULETTE_POCKETS)
            multiplier = roulette_multiplier(bet_type, number)
            win = multiplier is not None
            payout = stake * multiplier if win else Decimal("0.00")
            # a winning stake comes back on top of the winnings
            returned = stake + payout if win else Decimal("0.00")
            return win, payout, returned, {"result": number, "color": ROULETTE_COLORS[number]}

        result = self.settle(user_id, amount, resolve)
        logger.info(
            "[wager] roulette user=%s bet=%s amount=%s result=%s payout=%s",
            user_id, bet_type, result.amount, result.fields["result"], result.payout,
        )
        return result
