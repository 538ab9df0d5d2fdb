# luckybet/inc/database.py
from __future__ import annotations

import threading
import time
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Tuple

import psycopg2
from psycopg2 import errors as pg_errors
from psycopg2.extras import RealDictCursor

from luckybet.inc.errors import DuplicateResourceError
from luckybet.inc.logging import logger
from luckybet.inc.models import User

_USER_COLUMNS = "id, username, email, password, balance, created_at"


class Database:
    """PostgreSQL-backed `UserRepository`."""

    def __init__(self, settings=None):
        self._settings = settings
        conn_info, retries, delay = self._build_connection_info()
        self._conn_info = conn_info
        self._connect_retries = retries
        self._connect_delay = delay

        self._lock = threading.RLock()
        self._initialized = False

    def initialize(self):
        with self._lock:
            if self._initialized:
                return
            self._ensure_tables()
            self._initialized = True

    # ---------------- connection helpers ----------------
    def _build_connection_info(self) -> Tuple[Dict[str, Any], int, float]:
        defaults = {
            "host": "127.0.0.1",
            "port": 5432,
            "user": "luckybet",
            "password": "",
            "dbname": "luckybet",
            "sslmode": "prefer",
            "connect_timeout": 5,
        }
        data = {}
        for key, default in defaults.items():
            cast = int if isinstance(default, int) else None
            val = self._settings.get(f"DATABASE.{key}", default, cast=cast) if self._settings else default
            data[key] = default if val is None else val
        retries = self._settings.get("DATABASE.connect_retries", 10, cast=int) if self._settings else 10
        delay = self._settings.get("DATABASE.connect_delay", 1.0, cast=float) if self._settings else 1.0
        return data, int(retries), float(delay)

    def _connect(self):
        attempts = max(1, self._connect_retries)
        for attempt in range(1, attempts + 1):
            try:
                return psycopg2.connect(**self._conn_info)
            except psycopg2.OperationalError as exc:
                if attempt >= attempts:
                    raise
                logger.warning("[database] Postgres unavailable (%s), retrying (%s/%s)", exc, attempt, attempts)
                time.sleep(self._connect_delay)

    def _execute(self, sql: str, params: Optional[Sequence] = None, fetch: bool = False):
        conn = self._connect()
        try:
            with conn:
                with conn.cursor(cursor_factory=RealDictCursor) as cur:
                    cur.execute(sql, params or ())
                    if fetch:
                        return cur.fetchall()
                    return cur.rowcount
        finally:
            conn.close()

    def _fetchone(self, sql: str, params: Optional[Sequence] = None) -> Optional[Dict[str, Any]]:
        rows = self._execute(sql, params, fetch=True)
        return rows[0] if rows else None

    @staticmethod
    def _to_user(row: Optional[Dict[str, Any]]) -> Optional[User]:
        if not row:
            return None
        return User(
            id=int(row["id"]),
            username=row["username"],
            email=row["email"],
            password=row["password"],
            balance=Decimal(row["balance"]),
            created_at=row["created_at"],
        )

    # ---------------- schema ----------------
    def _ensure_tables(self):
        logger.debug("[database] ensuring schema exists")
        self._execute(
            """
            CREATE TABLE IF NOT EXISTS users (
                id SERIAL PRIMARY KEY,
                username TEXT NOT NULL,
                email TEXT NOT NULL UNIQUE,
                password TEXT NOT NULL,
                balance NUMERIC(12,2) NOT NULL CHECK (balance >= 0),
                created_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP
            )
            """
        )
        self._execute("CREATE INDEX IF NOT EXISTS users_balance_idx ON users (balance DESC)")

    # ---------------- users ----------------
    def find_user_by_email(self, email: str) -> Optional[User]:
        row = self._fetchone(f"SELECT {_USER_COLUMNS} FROM users WHERE email = %s", (email,))
        return self._to_user(row)

    def get_user(self, user_id: int) -> Optional[User]:
        row = self._fetchone(f"SELECT {_USER_COLUMNS} FROM users WHERE id = %s", (int(user_id),))
        return self._to_user(row)

    def create_user(self, username: str, email: str, password: str, balance: Decimal) -> User:
        sql = f"""
        INSERT INTO users (username, email, password, balance)
        VALUES (%s, %s, %s, %s)
        RETURNING {_USER_COLUMNS}
        """
        try:
            row = self._fetchone(sql, (username, email, password, balance))
        except pg_errors.UniqueViolation:
            raise DuplicateResourceError("Email already registered")
        return self._to_user(row)

    def update_password(self, user_id: int, password: str) -> None:
        self._execute("UPDATE users SET password = %s WHERE id = %s", (password, int(user_id)))

    def update_profile(self, user_id: int, username: str, email: str) -> Optional[User]:
        sql = f"""
        UPDATE users SET username = %s, email = %s
        WHERE id = %s
        RETURNING {_USER_COLUMNS}
        """
        try:
            row = self._fetchone(sql, (username, email, int(user_id)))
        except pg_errors.UniqueViolation:
            raise DuplicateResourceError("Email is already taken")
        return self._to_user(row)

    def compare_and_set_balance(self, user_id: int, expected: Decimal, new: Decimal) -> bool:
        rowcount = self._execute(
            "UPDATE users SET balance = %s WHERE id = %s AND balance = %s",
            (new, int(user_id), expected),
        )
        return rowcount == 1

    def list_top_balances(self, limit: int) -> List[User]:
        rows = self._execute(
            f"SELECT {_USER_COLUMNS} FROM users ORDER BY balance DESC, id ASC LIMIT %s",
            (int(limit),),
            fetch=True,
        )
        return [self._to_user(r) for r in rows]
