"""
auth/store.py -- SQLAlchemy Core persistence layer for user accounts.

Pattern: Repository + Data Mapper (same as notes/store.py).
UserStore is the repository; _row_to_user is the mapper.
Route and service code never touches SQL directly.

Not-found handling: every lookup returns the User or None. A missing row is
never turned into an empty User -- callers check for None explicitly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  UNIQUE(oauth_provider, oauth_subject) is enforced in code rather than SQL
  because SQLite treats two NULL values as distinct in UNIQUE constraints,
  which would make the constraint meaningless for password-only accounts.
  create_oauth_user() checks get_by_oauth() first.

Layer rule: no imports from api/, web/, notes/, or files/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, Integer, MetaData, String, Table, Text, create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.errors import DuplicateEmail
from auth.models import User
from core.errors import Internal

_DEFAULT_DB_URL = "sqlite:///notebox.db"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),  # case-sensitive as stored
    Column("hashed_password", Text),  # NULL for OAuth-only users
    Column("totp_secret", String(64)),  # base32, NULL until enrolled
    Column("totp_enabled", Boolean, nullable=False, server_default="0"),
    Column("oauth_provider", String(30)),  # "google", "github"
    Column("oauth_subject", Text),  # provider's stable user ID
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

# Fields update_user() accepts. Everything else goes through a dedicated
# method that can enforce its own invariant (set_totp, enable_totp).
_UPDATABLE = {"email", "hashed_password"}


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User entities.

    Usage:
        store = UserStore("sqlite:///notebox.db")
        uid = store.create_user(User(email="a@b.com", hashed_password=hash_password("secret1")))
        user = store.get_by_email("a@b.com")
        store.close()
    """

    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Raises DuplicateEmail if the email already exists. The unique index is
        the single source of truth -- there is no check-then-insert race.
        """
        now = _now_iso()
        try:
            with self.engine.connect() as conn:
                result = conn.execute(
                    _users.insert().values(
                        email=user.email,
                        hashed_password=user.hashed_password,
                        totp_secret=user.totp_secret,
                        totp_enabled=bool(user.totp_enabled and user.totp_secret),
                        oauth_provider=user.oauth_provider,
                        oauth_subject=user.oauth_subject,
                        created_at=now,
                        updated_at=now,
                    )
                )
                conn.commit()
        except IntegrityError as exc:
            raise DuplicateEmail() from exc
        return result.inserted_primary_key[0]

    def create_oauth_user(self, email: str, provider: str, subject: str) -> User:
        """Create (or return the existing) account for a provider identity.

        The account has no password. If the (provider, subject) pair is
        already linked, that user is returned unchanged.
        """
        existing = self.get_by_oauth(provider, subject)
        if existing is not None:
            return existing
        user_id = self.create_user(User(email=email, oauth_provider=provider, oauth_subject=subject))
        created = self.get_by_id(user_id)
        if created is None:
            raise Internal("could not create user")
        return created

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_by_id(self, user_id: int) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by exact email (case-sensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_oauth(self, provider: str, subject: str) -> User | None:
        """Look up a user by (oauth_provider, oauth_subject). Returns None if not linked."""
        with self.engine.connect() as conn:
            row = conn.execute(
                _users.select().where((_users.c.oauth_provider == provider) & (_users.c.oauth_subject == subject))
            ).fetchone()
        return _row_to_user(row) if row is not None else None

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def set_totp(self, user_id: int, secret: str, enabled: bool) -> bool:
        """Store a freshly generated TOTP secret, optionally enabling it at once.

        Returns True if a row was updated, False if user_id was not found.
        """
        if not secret:
            raise ValueError("TOTP secret must not be empty")
        return self._update(user_id, totp_secret=secret, totp_enabled=enabled)

    def enable_totp(self, user_id: int) -> bool:
        """Turn on the second factor for a user who already holds a secret.

        Returns False (and changes nothing) if the user has no secret.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.update()
                .where((_users.c.id == user_id) & (_users.c.totp_secret.is_not(None)))
                .values(totp_enabled=True, updated_at=_now_iso())
            )
            conn.commit()
        return result.rowcount > 0

    def update_user(self, user_id: int, **fields) -> bool:
        """Update profile fields on an existing user.

        Accepted fields: email, hashed_password. Unknown keys raise ValueError
        rather than being silently ignored.

        Returns True if a row was updated, False if user_id was not found.
        Raises DuplicateEmail if the new email belongs to another account.
        """
        unknown = set(fields) - _UPDATABLE
        if unknown:
            raise ValueError(f"Unknown user fields: {unknown!r}")
        if not fields:
            return False
        try:
            return self._update(user_id, **fields)
        except IntegrityError as exc:
            raise DuplicateEmail() from exc

    def delete_user(self, user_id: int) -> bool:
        """Permanently delete a user record. Returns True if deleted, False if not found.

        Admin path only -- accounts are otherwise never removed. Notes owned by
        the user are the caller's concern.
        """
        with self.engine.connect() as conn:
            result = conn.execute(_users.delete().where(_users.c.id == user_id))
            conn.commit()
        return result.rowcount > 0

    def count_users(self) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(text("SELECT COUNT(*) FROM users")).scalar()
        return result or 0

    def _update(self, user_id: int, **values) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.update().where(_users.c.id == user_id).values(updated_at=_now_iso(), **values)
            )
            conn.commit()
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        hashed_password=row.hashed_password,
        totp_secret=row.totp_secret,
        totp_enabled=bool(row.totp_enabled),
        oauth_provider=row.oauth_provider,
        oauth_subject=row.oauth_subject,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
