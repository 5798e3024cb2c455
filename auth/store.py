"""
auth/store.py -- SQLAlchemy Core persistence layer for user credentials.

Pattern: Repository + Data Mapper. UserStore is the repository; _row_to_user
is the mapper. Route and dependency code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  Plaintext passwords enter through create_user() / change_password() /
  verify_credentials() and are hashed or compared here; the hash never
  leaves this module except inside the User dataclass, whose public_view()
  omits it.

  verify_credentials() always runs exactly one bcrypt comparison, against
  DUMMY_HASH when the username is unknown, so response time does not reveal
  which usernames exist.

Concurrency:
  Every public method is a single statement (or a read followed by a single
  write) on its own connection. Username/email uniqueness is enforced by
  UNIQUE constraints; the pre-insert lookup only produces a friendlier error,
  the IntegrityError catch covers the race between two concurrent registers.

Layer rule: no imports from api/ or authclient/.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, or_
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.models import PROFILE_FIELDS, User
from auth.passwords import DUMMY_HASH, hash_password, verify_password
from core.config import get_settings
from core.errors import ConflictError, NotFoundError

logger = logging.getLogger("sessionkit.auth")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(255), nullable=False, unique=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("hashed_password", Text, nullable=False),
    Column("firstname", String(255)),
    Column("lastname", String(255)),
    Column("age", Integer),
    Column("phone", String(50)),
    Column("address", Text),
    Column("created_at", String(32), nullable=False),
    Column("session_version", Integer, nullable=False, server_default="0"),
)


# ---------------------------------------------------------------------------
# Engine helpers (shared with auth/history.py)
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def make_engine(db_url: str) -> Engine:
    """Create an engine and the schema for db_url.

    check_same_thread=False is required because FastAPI runs sync route
    handlers in a thread pool.
    """
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_wal_mode)
    metadata.create_all(engine)
    return engine


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User records (the credential store).

    Usage:
        store = UserStore("sqlite:///:memory:")
        uid = store.create_user("alice", "longpass1", "a@x.com", {"firstname": "Alice"})
        user = store.verify_credentials("alice", "longpass1")
        store.close()
    """

    def __init__(self, db_url: str | None = None) -> None:
        self.engine: Engine = make_engine(db_url or get_settings().database_url)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_user(self, username: str, password: str, email: str, profile: dict | None = None) -> int:
        """Hash the password, insert the user and return the new ID.

        Raises ConflictError if the username or email is already registered.
        Unknown profile keys are ignored.
        """
        email = email.strip().lower()
        profile_values = {k: v for k, v in (profile or {}).items() if k in PROFILE_FIELDS}

        with self.engine.connect() as conn:
            existing = conn.execute(
                _users.select().where(or_(_users.c.username == username, _users.c.email == email))
            ).fetchone()
            if existing is not None:
                raise ConflictError("User already exists.")

        hashed = hash_password(password)
        try:
            with self.engine.connect() as conn:
                result = conn.execute(
                    _users.insert().values(
                        username=username,
                        email=email,
                        hashed_password=hashed,
                        created_at=now_iso(),
                        session_version=0,
                        **profile_values,
                    )
                )
                conn.commit()
        except IntegrityError as exc:
            # A concurrent register won the race between the lookup and the insert.
            raise ConflictError("User already exists.") from exc
        user_id = result.inserted_primary_key[0]
        logger.info("Created user id=%s username=%s", user_id, username)
        return user_id

    def update_profile(self, user_id: int, fields: dict) -> None:
        """Change only the supplied profile fields.

        Keys outside PROFILE_FIELDS are ignored. Raises NotFoundError if
        user_id does not exist, even when nothing would be changed.
        """
        updates = {k: v for k, v in fields.items() if k in PROFILE_FIELDS}
        if not updates:
            if self.get_by_id(user_id) is None:
                raise NotFoundError("User not found.")
            return
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(**updates))
            conn.commit()
        if result.rowcount == 0:
            raise NotFoundError("User not found.")

    def change_password(self, user_id: int, new_password: str) -> None:
        """Replace the stored hash. Outstanding tokens are untouched; see revoke_sessions()."""
        hashed = hash_password(new_password)
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(hashed_password=hashed))
            conn.commit()
        if result.rowcount == 0:
            raise NotFoundError("User not found.")

    def revoke_sessions(self, user_id: int) -> int:
        """Bump session_version so every token issued before now fails the guard.

        Returns the new version. Raises NotFoundError for an unknown user.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.update()
                .where(_users.c.id == user_id)
                .values(session_version=_users.c.session_version + 1)
            )
            conn.commit()
        if result.rowcount == 0:
            raise NotFoundError("User not found.")
        user = self.get_by_id(user_id)
        return user.session_version if user is not None else 0

    def delete_user(self, user_id: int) -> bool:
        """Permanently delete a user record. Returns True if deleted, False if not found.

        Login history rows for the user are kept; the ledger is an audit trail.
        Authorization (self-only delete) is the caller's responsibility.
        """
        with self.engine.connect() as conn:
            result = conn.execute(_users.delete().where(_users.c.id == user_id))
            conn.commit()
        if result.rowcount:
            logger.info("Deleted user id=%s", user_id)
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def verify_credentials(self, username: str, password: str) -> User | None:
        """Return the User if username/password match, else None.

        Unknown username and wrong password are indistinguishable, both in
        return value and in time spent.
        """
        user = self.get_by_username(username)
        if user is None or not user.hashed_password:
            verify_password(password, DUMMY_HASH)
            return None
        if not verify_password(password, user.hashed_password):
            return None
        return user

    def get_by_username(self, username: str) -> User | None:
        """Look up a user by exact username (case-sensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.username == username)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: int) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def list_all(self) -> list[User]:
        """Return all users ordered by ID."""
        with self.engine.connect() as conn:
            rows = conn.execute(_users.select().order_by(_users.c.id)).fetchall()
        return [_row_to_user(r) for r in rows]

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        username=row.username,
        email=row.email,
        hashed_password=row.hashed_password,
        firstname=row.firstname,
        lastname=row.lastname,
        age=row.age,
        phone=row.phone,
        address=row.address,
        created_at=row.created_at,
        session_version=row.session_version or 0,
    )
