# -------
# luckybet: session-authenticated wagering service
# -------
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from luckybet.inc.logging import configure_logging, logger
from luckybet.inc.settings import Settings, load_settings
from luckybet.inc.sessions import SESSION_COOKIE_NAME, SessionStore
from luckybet.inc.cookies import DEFAULT_TTL_SECONDS, SAME_SITE
from luckybet.inc.deck_client import CardSource, DeckOfCardsClient
from luckybet.inc.models import UserRepository, parse_money
from luckybet.modules.credentials import DEFAULT_STARTING_BALANCE, MIN_PASSWORD_LENGTH, CredentialService
from luckybet.modules.wagers import WagerEngine
from luckybet.modules.blackjack import BlackjackTable

__version__ = "1.0.0"


@dataclass
class Services:
    """Everything a request handler may reach, built once at start-up."""

    settings: Settings
    store: SessionStore
    users: UserRepository
    credentials: CredentialService
    wagers: WagerEngine
    blackjack: BlackjackTable
    card_source: CardSource
    leaderboard_size: int = 10


def build_services(
    settings: Settings,
    users: UserRepository,
    card_source: Optional[CardSource] = None,
    rng: Any = None,
) -> Services:
    starting = parse_money(settings.get("GAMES.starting_balance", str(DEFAULT_STARTING_BALANCE)))
    if starting is None or starting < 0:
        raise RuntimeError("Config error: GAMES.starting_balance must be a non-negative amount")
    store = SessionStore(
        ttl_seconds=settings.get("SESSION.ttl_seconds", DEFAULT_TTL_SECONDS, cast=int),
        cookie_name=settings.get("SESSION.cookie_name", SESSION_COOKIE_NAME),
        secure_cookies=settings.get("SESSION.secure", False, cast=bool),
        same_site=settings.get("SESSION.same_site", SAME_SITE),
    )
    card_source = card_source or DeckOfCardsClient.from_settings(settings)
    return Services(
        settings=settings,
        store=store,
        users=users,
        credentials=CredentialService(
            users,
            starting_balance=starting,
            min_password_length=settings.get("GAMES.min_password_length", MIN_PASSWORD_LENGTH, cast=int),
        ),
        wagers=WagerEngine(users, rng=rng),
        blackjack=BlackjackTable(users, card_source),
        card_source=card_source,
        leaderboard_size=settings.get("GAMES.leaderboard_size", 10, cast=int),
    )


def create_server(services: Services):
    from luckybet.inc.webserver import LuckyBetServer
    interval = services.settings.get("SESSION.sweep_interval", 300, cast=float)
    return LuckyBetServer(services, sweep_interval=interval)


def initialize(settings: Optional[Settings] = None):
    """Load settings, configure logging and connect the database. Returns the server."""
    from luckybet.inc.database import Database

    settings = settings or load_settings()
    configure_logging(settings)
    logger.info("[boot] luckybet %s starting (config %s)", __version__, settings.path)

    database = Database(settings)
    database.initialize()
    return create_server(build_services(settings, database))
