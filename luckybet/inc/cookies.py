# luckybet/inc/cookies.py
# Session cookie state. Path and HttpOnly are policy constants; SameSite and
# Secure come from the session store configuration.
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from email.utils import format_datetime, parsedate_to_datetime
from http.cookies import CookieError, Morsel, SimpleCookie
from typing import Any, Dict, Optional

DEFAULT_TTL_SECONDS = 3600
COOKIE_PATH = "/"
SAME_SITE = "Lax"
HTTP_ONLY = True

# far enough in the past that every client drops the cookie
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _whole_seconds(dt: datetime) -> datetime:
    # the wire format has second precision
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).replace(microsecond=0)


@dataclass
class Cookie:
    name: str
    value: str
    expires: datetime = EPOCH
    secure: bool = False
    same_site: str = SAME_SITE

    def __post_init__(self):
        self.expires = _whole_seconds(self.expires)

    def set_expires(self, ttl_seconds: Optional[float] = None, now: Optional[datetime] = None) -> None:
        """Move expiry to now + ttl; no ttl expires the cookie immediately."""
        if ttl_seconds is None:
            self.expires = EPOCH
            return
        self.expires = _whole_seconds((now or _utcnow()) + timedelta(seconds=ttl_seconds))

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return self.expires <= (now or _utcnow())

    def attributes(self) -> Dict[str, Any]:
        """Keyword arguments for aiohttp's `StreamResponse.set_cookie`."""
        return {
            "expires": format_datetime(self.expires, usegmt=True),
            "path": COOKIE_PATH,
            "secure": self.secure,
            "httponly": HTTP_ONLY,
            "samesite": self.same_site,
        }

    def morsel(self) -> Morsel:
        morsel = Morsel()
        morsel.set(self.name, self.value, self.value)
        for key, value in self.attributes().items():
            if value is not False:
                morsel[key] = value
        return morsel

    def serialize(self) -> str:
        return self.morsel().OutputString()

    __str__ = serialize

    @classmethod
    def parse(cls, header: str) -> "Cookie":
        """Parse one Set-Cookie header value back into a Cookie."""
        jar = SimpleCookie()
        try:
            jar.load(header)
        except CookieError as exc:
            raise ValueError(f"malformed cookie: {header!r}") from exc
        if len(jar) != 1:
            raise ValueError(f"malformed cookie: {header!r}")
        (morsel,) = jar.values()
        expires = parsedate_to_datetime(morsel["expires"]) if morsel["expires"] else EPOCH
        return cls(
            name=morsel.key,
            value=morsel.value,
            expires=expires,
            secure=bool(morsel["secure"]),
            same_site=morsel["samesite"] or SAME_SITE,
        )
