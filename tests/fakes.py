import itertools
import threading
from dataclasses import replace
from decimal import Decimal

from luckybet.inc.deck_client import Card
from luckybet.inc.errors import DuplicateResourceError, UpstreamError
from luckybet.inc.models import User


class InMemoryUserRepository:
    def __init__(self):
        self.users = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()
        self.writes = 0

    def find_user_by_email(self, email: str):
        for user in self.users.values():
            if user.email == email:
                return replace(user)
        return None

    def get_user(self, user_id: int):
        user = self.users.get(user_id)
        return replace(user) if user else None

    def create_user(self, username, email, password, balance) -> User:
        with self._lock:
            if any(u.email == email for u in self.users.values()):
                raise DuplicateResourceError("Email already registered")
            user = User(id=next(self._ids), username=username, email=email, password=password, balance=Decimal(balance))
            self.users[user.id] = user
            return replace(user)

    def update_password(self, user_id, password):
        self.users[user_id].password = password

    def update_profile(self, user_id, username, email):
        user = self.users.get(user_id)
        if user is None:
            return None
        user.username = username
        user.email = email
        return replace(user)

    def compare_and_set_balance(self, user_id, expected, new) -> bool:
        with self._lock:
            user = self.users.get(user_id)
            if user is None or user.balance != expected:
                return False
            user.balance = Decimal(new)
            self.writes += 1
            return True

    def list_top_balances(self, limit):
        ranked = sorted(self.users.values(), key=lambda u: (-u.balance, u.id))
        return [replace(u) for u in ranked[:limit]]

    # test helper
    def balance(self, user_id) -> Decimal:
        return self.users[user_id].balance


class ContendedUserRepository(InMemoryUserRepository):
    """Every conditional write loses the race."""

    def compare_and_set_balance(self, user_id, expected, new) -> bool:
        return False


class FlakyUserRepository(InMemoryUserRepository):
    """The next `fail_next` conditional writes lose the race."""

    def __init__(self, fail_next: int = 0):
        super().__init__()
        self.fail_next = fail_next

    def compare_and_set_balance(self, user_id, expected, new) -> bool:
        if self.fail_next > 0:
            self.fail_next -= 1
            return False
        return super().compare_and_set_balance(user_id, expected, new)


def card(value: str, suit: str = "SPADES") -> Card:
    return Card(value=value, suit=suit, code=f"{value[:1]}{suit[:1]}")


class ScriptedCardSource:
    """Hands out cards in the given order; running out is an upstream failure."""

    def __init__(self, values=(), fail_shuffle: bool = False):
        self.queue = [card(v) for v in values]
        self.fail_shuffle = fail_shuffle
        self.decks = 0
        self.drawn = 0

    def load(self, *values):
        self.queue.extend(card(v) for v in values)

    async def shuffle_new_deck(self) -> str:
        if self.fail_shuffle:
            raise UpstreamError("Card service unreachable")
        self.decks += 1
        return f"deck-{self.decks}"

    async def draw(self, deck_id: str, count: int):
        if len(self.queue) < count:
            raise UpstreamError("Deck is out of cards")
        cards, self.queue = self.queue[:count], self.queue[count:]
        self.drawn += count
        return cards


class FixedRandom:
    def __init__(self, side: str = "heads", number: int = 0):
        self.side = side
        self.number = number

    def choice(self, _seq):
        return self.side

    def randrange(self, _stop):
        return self.number
