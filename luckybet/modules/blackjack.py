# luckybet/modules/blackjack.py
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from decimal import ROUND_FLOOR, Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from luckybet.inc.deck_client import FACE_RANKS, Card, CardSource
from luckybet.inc.errors import (
    BalanceContentionError,
    InsufficientFundsError,
    UpstreamError,
    ValidationError,
)
from luckybet.inc.logging import logger
from luckybet.inc.models import CENT, UserRepository, quantize
from luckybet.modules.wagers import apply_balance_delta, check_balance_limit, load_user, parse_bet_amount

DEALER_STANDS_ON = 17
NATURAL_RETURN = Decimal("2.5")
INSURANCE_RETURN = Decimal(3)
CREDIT_ATTEMPTS = 5
# a doubled split pays at most four times the opening bet per hand
DEAL_HEADROOM = 4
ACTIONS = ("deal", "insurance", "hit", "stand", "double", "split")


class Phase(str, Enum):
    DEALING = "dealing"
    INSURANCE = "insurance"
    PLAYER_TURN = "player_turn"
    DEALER_TURN = "dealer_turn"
    SETTLED = "settled"


def card_points(card: Card) -> int:
    if card.value == "ACE":
        return 11
    if card.value in FACE_RANKS:
        return 10
    return int(card.value)


def hand_value(cards: Sequence[Card]) -> int:
    total = 0
    aces = 0
    for card in cards:
        if card.value == "ACE":
            aces += 1
        total += card_points(card)
    while total > 21 and aces > 0:
        total -= 10
        aces -= 1
    return total


def is_natural(cards: Sequence[Card]) -> bool:
    return len(cards) == 2 and hand_value(cards) == 21


@dataclass
class Hand:
    cards: List[Card]
    bet: Decimal
    from_split: bool = False
    # playing, stood, doubled, bust, natural
    status: str = "playing"
    # win, lose, push, blackjack
    outcome: Optional[str] = None
    returned: Decimal = Decimal("0.00")

    @property
    def value(self) -> int:
        return hand_value(self.cards)

    @property
    def playing(self) -> bool:
        return self.status == "playing"

    def resolve(self, outcome: str, returned: Decimal) -> None:
        self.outcome = outcome
        self.returned = quantize(returned)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cards": [c.to_dict() for c in self.cards],
            "value": self.value,
            "bet": self.bet,
            "status": self.status,
            "outcome": self.outcome,
            "returned": self.returned,
        }


@dataclass
class Insurance:
    cost: Decimal
    # won, lost, declined
    outcome: Optional[str] = None
    returned: Decimal = Decimal("0.00")

    def to_dict(self) -> Dict[str, Any]:
        return {"cost": self.cost, "outcome": self.outcome, "returned": self.returned}


@dataclass
class BlackjackRound:
    deck_id: str
    bet: Decimal
    dealer: List[Card] = field(default_factory=list)
    hands: List[Hand] = field(default_factory=list)
    phase: Phase = Phase.DEALING
    active_hand: int = 0
    insurance: Optional[Insurance] = None
    message: str = ""
    payout_pending: bool = False

    @property
    def settled(self) -> bool:
        return self.phase is Phase.SETTLED

    @property
    def hole_hidden(self) -> bool:
        return self.phase in (Phase.DEALING, Phase.INSURANCE, Phase.PLAYER_TURN)

    @property
    def active(self) -> Hand:
        return self.hands[self.active_hand]

    @property
    def total_bet(self) -> Decimal:
        total = sum((h.bet for h in self.hands), Decimal("0.00"))
        if self.insurance is not None:
            total += self.insurance.cost
        return total

    @property
    def total_returned(self) -> Decimal:
        total = sum((h.returned for h in self.hands), Decimal("0.00"))
        if self.insurance is not None:
            total += self.insurance.returned
        return total

    def payload(self, balance: Optional[Decimal] = None) -> Dict[str, Any]:
        if self.hole_hidden:
            dealer = [self.dealer[0].to_dict(), None] if self.dealer else []
            dealer_value = hand_value(self.dealer[:1])
        else:
            dealer = [c.to_dict() for c in self.dealer]
            dealer_value = hand_value(self.dealer)
        return {
            "phase": self.phase.value,
            "dealer": dealer,
            "dealerValue": dealer_value,
            "hands": [h.to_dict() for h in self.hands],
            "activeHand": self.active_hand if self.phase is Phase.PLAYER_TURN else None,
            "insurance": self.insurance.to_dict() if self.insurance else None,
            "totalBet": self.total_bet,
            "totalReturned": self.total_returned,
            "message": self.message,
            "balance": balance,
        }


def insurance_cost(bet: Decimal) -> Decimal:
    """Half the opening bet, floored to whole units."""
    return (bet / 2).to_integral_value(rounding=ROUND_FLOOR).quantize(CENT)


def settle_hand(hand: Hand, dealer_total: int) -> None:
    if hand.outcome is not None:
        return
    player_total = hand.value
    if player_total > 21:
        hand.resolve("lose", Decimal(0))
    elif dealer_total > 21 or player_total > dealer_total:
        hand.resolve("win", hand.bet * 2)
    elif player_total == dealer_total:
        hand.resolve("push", hand.bet)
    else:
        hand.resolve("lose", Decimal(0))


class BlackjackTable:
    """
    Runs one blackjack round per session. The round lives on the session
    (`session.data.round`); every action takes the session lock so two
    requests from the same browser cannot interleave inside a round.

    Money moves at three points only: the opening bet and any insurance,
    double or split stake are debited as they are placed, and everything the
    round pays back is credited once when it settles.
    """

    def __init__(self, users: UserRepository, card_source: CardSource):
        self.users = users
        self.cards = card_source

    # ---------------- entry points ----------------
    async def act(self, session, action: Any, body: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        body = body or {}
        if action not in ACTIONS:
            raise ValidationError("Unknown action")
        async with session.lock:
            await self._collect_pending(session)
            if action == "deal":
                rnd = await self.deal(session, body.get("amount"))
            elif action == "insurance":
                rnd = await self.insurance(session, body.get("accept"))
            elif action == "hit":
                rnd = await self.hit(session)
            elif action == "stand":
                rnd = await self.stand(session)
            elif action == "double":
                rnd = await self.double(session)
            else:
                rnd = await self.split(session)
            return await self._payload(session.user_id, rnd)

    async def state(self, session) -> Optional[Dict[str, Any]]:
        if session.data.round is None:
            return None
        async with session.lock:
            await self._collect_pending(session)
            return await self._payload(session.user_id, session.data.round)

    # ---------------- actions ----------------
    async def deal(self, session, raw_amount: Any) -> BlackjackRound:
        current = session.data.round
        if current is not None and not current.settled:
            raise ValidationError("Finish the current round first")
        user_id = session.user_id
        amount = parse_bet_amount(raw_amount)
        user = await asyncio.to_thread(load_user, self.users, user_id)
        if amount > user.balance:
            raise InsufficientFundsError()
        check_balance_limit(user.balance + amount * DEAL_HEADROOM)

        # nothing is charged unless the opening cards arrive
        deck_id = await self.cards.shuffle_new_deck()
        c0, c1, c2, c3 = await self.cards.draw(deck_id, 4)
        await self._debit(user_id, amount)

        rnd = BlackjackRound(deck_id=deck_id, bet=amount, dealer=[c0, c2], hands=[Hand([c1, c3], amount)])
        session.data.round = rnd
        logger.info("[blackjack] deal user=%s bet=%s", user_id, amount)

        if c0.value == "ACE":
            rnd.phase = Phase.INSURANCE
            rnd.message = "Insurance? Dealer is showing an Ace."
            return rnd
        await self._after_opening(user_id, rnd)
        return rnd

    async def insurance(self, session, accept: Any) -> BlackjackRound:
        rnd = self._require_phase(session, Phase.INSURANCE, "decide on insurance")
        if not isinstance(accept, bool):
            raise ValidationError("accept must be true or false")
        user_id = session.user_id

        if not accept:
            rnd.insurance = Insurance(cost=Decimal("0.00"), outcome="declined")
            rnd.message = ""
            await self._after_opening(user_id, rnd)
            return rnd

        cost = insurance_cost(rnd.bet)
        if cost <= 0:
            raise ValidationError("Bet too small for insurance")
        await self._debit(user_id, cost)
        rnd.insurance = Insurance(cost=cost)

        if hand_value(rnd.dealer) == 21:
            rnd.insurance.outcome = "won"
            rnd.insurance.returned = cost * INSURANCE_RETURN
            hand = rnd.hands[0]
            if is_natural(hand.cards):
                hand.status = "natural"
                hand.resolve("push", hand.bet)
            else:
                hand.resolve("lose", Decimal(0))
            rnd.message = "Dealer has blackjack. Insurance pays 2:1."
            await self._finish(user_id, rnd)
            return rnd

        rnd.insurance.outcome = "lost"
        rnd.message = "Dealer doesn't have blackjack. Insurance lost."
        await self._after_opening(user_id, rnd)
        return rnd

    async def hit(self, session) -> BlackjackRound:
        rnd = self._require_phase(session, Phase.PLAYER_TURN, "hit")
        hand = rnd.active
        if hand.value >= 21:
            raise ValidationError("Hand is already at 21 or more")
        try:
            (card,) = await self.cards.draw(rnd.deck_id, 1)
        except UpstreamError as exc:
            await self._abort(session.user_id, rnd, exc)
            return rnd
        hand.cards.append(card)
        if hand.value > 21:
            hand.status = "bust"
        elif hand.value == 21:
            hand.status = "stood"
        if not hand.playing:
            await self._advance(session.user_id, rnd)
        return rnd

    async def stand(self, session) -> BlackjackRound:
        rnd = self._require_phase(session, Phase.PLAYER_TURN, "stand")
        rnd.active.status = "stood"
        await self._advance(session.user_id, rnd)
        return rnd

    async def double(self, session) -> BlackjackRound:
        rnd = self._require_phase(session, Phase.PLAYER_TURN, "double")
        hand = rnd.active
        if len(hand.cards) != 2:
            raise ValidationError("Double down requires exactly two cards")
        await self._require_funds(session.user_id, hand.bet)
        try:
            (card,) = await self.cards.draw(rnd.deck_id, 1)
        except UpstreamError as exc:
            await self._abort(session.user_id, rnd, exc)
            return rnd
        await self._debit(session.user_id, hand.bet)
        hand.bet = hand.bet * 2
        hand.cards.append(card)
        hand.status = "bust" if hand.value > 21 else "doubled"
        await self._advance(session.user_id, rnd)
        return rnd

    async def split(self, session) -> BlackjackRound:
        rnd = self._require_phase(session, Phase.PLAYER_TURN, "split")
        hand = rnd.active
        if len(hand.cards) != 2 or hand.cards[0].value != hand.cards[1].value:
            raise ValidationError("Split requires two cards of the same rank")
        await self._require_funds(session.user_id, hand.bet)
        try:
            left_card, right_card = await self.cards.draw(rnd.deck_id, 2)
        except UpstreamError as exc:
            await self._abort(session.user_id, rnd, exc)
            return rnd
        await self._debit(session.user_id, hand.bet)

        left = Hand([hand.cards[0], left_card], hand.bet, from_split=True)
        right = Hand([hand.cards[1], right_card], hand.bet, from_split=True)
        for new_hand in (left, right):
            # 21 on a split hand is not a blackjack and pays even money
            if new_hand.value == 21:
                new_hand.status = "stood"
                new_hand.resolve("win", new_hand.bet * 2)
        rnd.hands[rnd.active_hand:rnd.active_hand + 1] = [left, right]
        rnd.message = ""
        if not rnd.active.playing:
            await self._advance(session.user_id, rnd)
        return rnd

    # ---------------- round flow ----------------
    def _require_phase(self, session, phase: Phase, verb: str) -> BlackjackRound:
        rnd = session.data.round
        if rnd is None or rnd.settled:
            raise ValidationError("No round in progress")
        if rnd.phase is not phase:
            raise ValidationError(f"Cannot {verb} now")
        rnd.message = ""
        return rnd

    async def _after_opening(self, user_id: int, rnd: BlackjackRound) -> None:
        hand = rnd.hands[0]
        if not is_natural(hand.cards):
            rnd.phase = Phase.PLAYER_TURN
            rnd.active_hand = 0
            return
        hand.status = "natural"
        if is_natural(rnd.dealer):
            hand.resolve("push", hand.bet)
            rnd.message = "Both have blackjack. Push."
        else:
            hand.resolve("blackjack", hand.bet * NATURAL_RETURN)
            rnd.message = f"Blackjack! You win ${hand.returned - hand.bet}!"
        await self._finish(user_id, rnd)

    async def _advance(self, user_id: int, rnd: BlackjackRound) -> None:
        for idx, hand in enumerate(rnd.hands):
            if hand.playing:
                rnd.active_hand = idx
                return
        await self._dealer_turn(user_id, rnd)

    async def _dealer_turn(self, user_id: int, rnd: BlackjackRound) -> None:
        rnd.phase = Phase.DEALER_TURN
        contested = [h for h in rnd.hands if h.outcome is None and h.status != "bust"]
        if contested:
            while hand_value(rnd.dealer) < DEALER_STANDS_ON:
                try:
                    (card,) = await self.cards.draw(rnd.deck_id, 1)
                except UpstreamError as exc:
                    await self._abort(user_id, rnd, exc)
                    return
                rnd.dealer.append(card)
        await self._finish(user_id, rnd)

    async def _abort(self, user_id: int, rnd: BlackjackRound, exc: UpstreamError) -> None:
        logger.warning("[blackjack] card source failed mid-round for user %s: %s", user_id, exc.message)
        rnd.message = f"{exc.message}. Round settled with the cards drawn so far."
        await self._finish(user_id, rnd)

    async def _finish(self, user_id: int, rnd: BlackjackRound) -> None:
        dealer_total = hand_value(rnd.dealer)
        for hand in rnd.hands:
            settle_hand(hand, dealer_total)
        rnd.phase = Phase.DEALER_TURN
        if not rnd.message:
            rnd.message = self._summary(rnd)
        rnd.payout_pending = True
        await self._pay_out(user_id, rnd)

    async def _pay_out(self, user_id: int, rnd: BlackjackRound) -> None:
        # the round only counts as settled once its winnings are credited
        if rnd.total_returned > 0:
            await self._credit(user_id, rnd.total_returned)
        rnd.payout_pending = False
        rnd.phase = Phase.SETTLED
        logger.info(
            "[blackjack] settled user=%s bet=%s returned=%s",
            user_id, rnd.total_bet, rnd.total_returned,
        )

    async def _collect_pending(self, session) -> None:
        rnd = session.data.round
        if rnd is not None and rnd.payout_pending:
            logger.info("[blackjack] retrying payout for user %s", session.user_id)
            await self._pay_out(session.user_id, rnd)

    @staticmethod
    def _summary(rnd: BlackjackRound) -> str:
        net = rnd.total_returned - rnd.total_bet
        if net > 0:
            return f"You win ${net}!"
        if net < 0:
            return f"You lose ${-net}!"
        return "Push."

    # ---------------- balance ----------------
    async def _require_funds(self, user_id: int, amount: Decimal) -> None:
        user = await asyncio.to_thread(load_user, self.users, user_id)
        if amount > user.balance:
            raise InsufficientFundsError()

    async def _debit(self, user_id: int, amount: Decimal) -> Decimal:
        return await asyncio.to_thread(apply_balance_delta, self.users, user_id, -amount)

    async def _credit(self, user_id: int, amount: Decimal) -> Decimal:
        # a credit depends on nothing read before it, so contention is retried
        for attempt in range(1, CREDIT_ATTEMPTS + 1):
            try:
                return await asyncio.to_thread(apply_balance_delta, self.users, user_id, amount)
            except BalanceContentionError:
                if attempt >= CREDIT_ATTEMPTS:
                    logger.error("[blackjack] could not credit %s to user %s", amount, user_id)
                    raise
        raise BalanceContentionError()

    async def _payload(self, user_id: int, rnd: BlackjackRound) -> Dict[str, Any]:
        user = await asyncio.to_thread(self.users.get_user, user_id)
        return rnd.payload(user.balance if user else None)
