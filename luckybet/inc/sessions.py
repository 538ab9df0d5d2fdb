# luckybet/inc/sessions.py
# In-process session registry. One store is built at start-up and handed to the
# router; there is no module-level instance. Sessions live in this process only,
# so running several workers needs an external shared store.
from __future__ import annotations

import asyncio
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from luckybet.inc.cookies import DEFAULT_TTL_SECONDS, SAME_SITE, Cookie
from luckybet.inc.logging import logger

SESSION_COOKIE_NAME = "session_id"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_session_id() -> str:
    return secrets.token_urlsafe(32)


@dataclass
class SessionData:
    """What a session may hold: the authenticated user and an open card round."""

    user_id: Optional[int] = None
    round: Optional[Any] = None

    def clear(self) -> None:
        self.user_id = None
        self.round = None


@dataclass
class Session:
    id: str
    cookie: Cookie
    data: SessionData = field(default_factory=SessionData)
    # serializes card-round actions for this session
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False, compare=False)

    @property
    def expires(self) -> datetime:
        return self.cookie.expires

    @property
    def user_id(self) -> Optional[int]:
        return self.data.user_id

    @property
    def authenticated(self) -> bool:
        return self.data.user_id is not None

    def refresh(self, ttl_seconds: float = DEFAULT_TTL_SECONDS, now: Optional[datetime] = None) -> None:
        self.cookie.set_expires(ttl_seconds, now=now)

    def destroy(self) -> None:
        self.data.clear()
        self.cookie.set_expires()

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return self.cookie.is_expired(now)


class SessionStore:
    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        cookie_name: str = SESSION_COOKIE_NAME,
        secure_cookies: bool = False,
        same_site: str = SAME_SITE,
    ):
        self.ttl_seconds = ttl_seconds
        self.cookie_name = cookie_name
        self.secure_cookies = secure_cookies
        self.same_site = same_site
        self._sessions: Dict[str, Session] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def create(self, user_id: Optional[int] = None, now: Optional[datetime] = None) -> Session:
        sid = _new_session_id()
        while sid in self._sessions:
            sid = _new_session_id()
        cookie = Cookie(self.cookie_name, sid, secure=self.secure_cookies, same_site=self.same_site)
        session = Session(id=sid, cookie=cookie, data=SessionData(user_id=user_id))
        session.refresh(self.ttl_seconds, now=now)
        self._sessions[sid] = session
        logger.debug("[session] created session for user %s", user_id)
        return session

    def resolve(self, session_id: Optional[str], now: Optional[datetime] = None) -> Optional[Session]:
        """Look a session up by cookie value; expired or unknown ids resolve to None."""
        if not session_id:
            return None
        session = self._sessions.get(session_id)
        if session is None:
            return None
        if session.is_expired(now):
            self._sessions.pop(session_id, None)
            return None
        return session

    def refresh(self, session: Session, extension: Optional[float] = None, now: Optional[datetime] = None) -> Session:
        session.refresh(self.ttl_seconds if extension is None else extension, now=now)
        return session

    def destroy(self, session: Session) -> None:
        session.destroy()
        self._sessions.pop(session.id, None)

    def sweep(self, now: Optional[datetime] = None) -> int:
        now = now or _utcnow()
        stale = [sid for sid, s in self._sessions.items() if s.is_expired(now)]
        for sid in stale:
            self._sessions.pop(sid, None)
        if stale:
            logger.info("[session] swept %s expired sessions", len(stale))
        return len(stale)
