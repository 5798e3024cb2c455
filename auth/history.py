"""
auth/history.py -- Login history ledger (session start/end audit trail).

The ledger is independent of token state: a row is opened when a login
succeeds and closed when the same user logs out (or ends the session by
changing password or deleting the account). Nothing reads it to make an
authentication decision.

Callers treat every method here as best-effort -- see _record() in
api/routes/auth.py. A ledger failure is logged and never fails the login or
logout that triggered it.

Open entries: more than one open row per user is possible (two logins from
two browsers). record_logout() closes only the most recent open row.

Layer rule: no imports from api/ or authclient/.
"""

from __future__ import annotations

import logging

from sqlalchemy import Column, Integer, String, Table, func, select
from sqlalchemy.engine import Engine

from auth.models import LoginHistoryEntry
from auth.store import make_engine, metadata, now_iso
from core.config import get_settings

logger = logging.getLogger("sessionkit.history")

_history = Table(
    "login_history",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    # No FOREIGN KEY: entries outlive the user they describe.
    Column("user_id", Integer, nullable=False, index=True),
    Column("logged_in_at", String(32), nullable=False),
    Column("logged_out_at", String(32)),
)


class LoginHistoryStore:
    """Repository for LoginHistoryEntry rows.

    Usage:
        ledger = LoginHistoryStore("sqlite:///:memory:")
        entry_id = ledger.record_login(user_id)
        ledger.record_logout(user_id)
    """

    def __init__(self, db_url: str | None = None) -> None:
        self.engine: Engine = make_engine(db_url or get_settings().database_url)

    def record_login(self, user_id: int, timestamp: str | None = None) -> int:
        """Open a new entry for user_id and return its ID."""
        with self.engine.connect() as conn:
            result = conn.execute(_history.insert().values(user_id=user_id, logged_in_at=timestamp or now_iso()))
            conn.commit()
        return result.inserted_primary_key[0]

    def record_logout(self, user_id: int, timestamp: str | None = None) -> None:
        """Close the most recent open entry for user_id. No-op if none is open."""
        latest_open = (
            select(func.max(_history.c.id))
            .where((_history.c.user_id == user_id) & (_history.c.logged_out_at.is_(None)))
            .scalar_subquery()
        )
        with self.engine.connect() as conn:
            result = conn.execute(
                _history.update().where(_history.c.id == latest_open).values(logged_out_at=timestamp or now_iso())
            )
            conn.commit()
        if result.rowcount == 0:
            logger.debug("No open login entry to close for user_id=%s", user_id)

    def list_for_user(self, user_id: int) -> list[LoginHistoryEntry]:
        """Return the user's entries, newest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _history.select().where(_history.c.user_id == user_id).order_by(_history.c.id.desc())
            ).fetchall()
        return [_row_to_entry(r) for r in rows]

    def list_all(self) -> list[LoginHistoryEntry]:
        """Return every entry, newest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(_history.select().order_by(_history.c.id.desc())).fetchall()
        return [_row_to_entry(r) for r in rows]

    def close(self) -> None:
        self.engine.dispose()


def _row_to_entry(row) -> LoginHistoryEntry:
    return LoginHistoryEntry(
        id=row.id,
        user_id=row.user_id,
        logged_in_at=row.logged_in_at,
        logged_out_at=row.logged_out_at,
    )
