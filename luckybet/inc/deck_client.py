# luckybet/inc/deck_client.py
# Client for a deckofcardsapi-compatible shuffled-deck service.
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol

import aiohttp

from luckybet.inc.errors import UpstreamError
from luckybet.inc.logging import logger

DEFAULT_API_BASE = "https://deckofcardsapi.com/api/deck"
DEFAULT_DECK_COUNT = 4
DEFAULT_TIMEOUT = 6.0

FACE_RANKS = ("KING", "QUEEN", "JACK")
RANKS = frozenset(("ACE", *FACE_RANKS, *(str(n) for n in range(2, 11))))


@dataclass(frozen=True)
class Card:
    value: str  # ACE, KING, QUEEN, JACK, 2..10
    suit: str = ""
    code: str = ""
    image: Optional[str] = None

    @classmethod
    def from_api(cls, raw: Any) -> "Card":
        if not isinstance(raw, dict) or str(raw.get("value") or "").upper() not in RANKS:
            raise UpstreamError("Card service returned a malformed card")
        return cls(
            value=str(raw.get("value") or "").upper(),
            suit=str(raw.get("suit") or "").upper(),
            code=str(raw.get("code") or ""),
            image=raw.get("image"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"value": self.value, "suit": self.suit, "code": self.code, "image": self.image}


class CardSource(Protocol):
    async def shuffle_new_deck(self) -> str:
        ...

    async def draw(self, deck_id: str, count: int) -> List[Card]:
        ...


class DeckOfCardsClient:
    def __init__(
        self,
        api_base: str = DEFAULT_API_BASE,
        deck_count: int = DEFAULT_DECK_COUNT,
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.api_base = api_base.rstrip("/")
        self.deck_count = deck_count
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = session

    @classmethod
    def from_settings(cls, settings) -> "DeckOfCardsClient":
        return cls(
            api_base=settings.get("DECK.api_base", DEFAULT_API_BASE),
            deck_count=settings.get("DECK.deck_count", DEFAULT_DECK_COUNT, cast=int),
            timeout=settings.get("DECK.timeout_seconds", DEFAULT_TIMEOUT, cast=float),
        )

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    def _client(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
        return self._session

    async def _get(self, url: str, params: Dict[str, Any]) -> Dict[str, Any]:
        try:
            async with self._client().get(url, params=params) as resp:
                if resp.status != 200:
                    text = await resp.text()
                    logger.warning("[deck] %s answered %s: %s", url, resp.status, text[:200])
                    raise UpstreamError(f"Card service error: {resp.status}")
                data = await resp.json(content_type=None)
        except asyncio.TimeoutError:
            logger.warning("[deck] timeout calling %s", url)
            raise UpstreamError("Card service timed out")
        except aiohttp.ClientError as exc:
            logger.warning("[deck] unreachable %s (%s)", url, exc)
            raise UpstreamError("Card service unreachable")
        except ValueError:
            logger.warning("[deck] %s answered with a body that is not JSON", url)
            raise UpstreamError("Card service sent an unreadable reply")
        if not isinstance(data, dict) or not data.get("success"):
            raise UpstreamError("Card service could not complete the request")
        return data

    async def shuffle_new_deck(self) -> str:
        data = await self._get(f"{self.api_base}/new/shuffle/", {"deck_count": self.deck_count})
        deck_id = data.get("deck_id")
        if not deck_id:
            raise UpstreamError("Card service returned no deck")
        return str(deck_id)

    async def draw(self, deck_id: str, count: int) -> List[Card]:
        data = await self._get(f"{self.api_base}/{deck_id}/draw/", {"count": int(count)})
        raw_cards = data.get("cards")
        if not isinstance(raw_cards, list):
            raise UpstreamError("Card service returned no cards")
        cards = [Card.from_api(c) for c in raw_cards]
        if len(cards) < count:
            raise UpstreamError("Deck is out of cards")
        return cards
