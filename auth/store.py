"""
auth/store.py -- SQLAlchemy Core persistence layer for accounts and sessions.

Pattern: Repository + Data Mapper. AccountStore is the repository;
_row_to_account is the mapper. Route, service and gate code never touches
SQL directly.

Two tables:
  accounts        -- identity + profile. UNIQUE(email) is the source of truth
                     for email uniqueness; the service's up-front lookup only
                     gives a friendlier error in the common case.
  refresh_tokens  -- shadow records of issued refresh tokens, one row per
                     device session. Only the SHA-256 of the wire token is
                     stored, so a database leak does not leak usable tokens.

Session expiry is enforced twice:
  Passive: every read and delete filters on issued_at >= now - ttl, so an
      expired record is "absent" even if no purge has run yet.
  Active:  purge_expired_refresh_tokens() deletes stale rows; api/main.py
      runs it from a background task.

Rotation (rotate_refresh_token) is a single transaction whose DELETE row count
decides the winner. Two concurrent refreshes with the same token serialize on
the database write lock; the second one deletes nothing and inserts nothing.

Storage failures (driver errors, lock timeouts, pool exhaustion) are raised as
StorageUnavailable so callers can never mistake them for auth failures.

Security: all queries use bound parameters. No f-strings in SQL.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import hashlib
import json
import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import (
    Column,
    Float,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    event,
    func,
    select,
    text,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from auth.errors import DuplicateAccount, StorageUnavailable
from auth.models import Account, FarmerProfile, Profile, Role, VetProfile

logger = logging.getLogger("herdcare.store")

_DEFAULT_REFRESH_TTL = 7 * 24 * 60 * 60  # 7 days in seconds

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_accounts = Table(
    "accounts",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("hashed_password", Text, nullable=False),
    Column("role", String(10), nullable=False),
    Column("full_name", String(255), nullable=False),
    Column("phone", String(32), nullable=False),
    Column("language", String(8), nullable=False, server_default="en"),
    Column("profile", Text),  # JSON of FarmerProfile / VetProfile, NULL for admins
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_refresh_tokens = Table(
    "refresh_tokens",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("account_id", Integer, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False),
    Column("token_hash", String(64), nullable=False),  # SHA-256 hex of the wire token
    Column("issued_at", Float, nullable=False),  # epoch seconds
    Index("ix_refresh_tokens_account_hash", "account_id", "token_hash"),
    Index("ix_refresh_tokens_issued_at", "issued_at"),
)


# ---------------------------------------------------------------------------
# SQLite connection setup
# ---------------------------------------------------------------------------


def _configure_sqlite(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode and foreign keys on every new SQLite connection.

    PRAGMAs are per-connection, so they must be set in the connect hook
    rather than once at startup.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")
    dbapi_conn.execute("PRAGMA foreign_keys=ON")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _token_hash(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def normalize_email(email: str) -> str:
    return email.strip().lower()


@contextmanager
def _guard(operation: str) -> Iterator[None]:
    """Translate driver and pool failures into StorageUnavailable.

    IntegrityError passes through untouched: it is a domain signal (duplicate
    email) that the calling method handles itself.
    """
    try:
        yield
    except IntegrityError:
        raise
    except (DBAPIError, PoolTimeoutError) as exc:
        logger.error("Storage failure during %s: %s", operation, exc.__class__.__name__)
        raise StorageUnavailable(detail=operation) from exc


def _profile_to_json(profile: Profile) -> str | None:
    if profile is None:
        return None
    return json.dumps(asdict(profile))


def _profile_from_json(role: Role, raw: str | None) -> Profile:
    if role is Role.ADMIN:
        return None
    data: dict[str, Any] = json.loads(raw) if raw else {}
    if role is Role.FARMER:
        allowed = FarmerProfile.__dataclass_fields__
        data = {k: v for k, v in data.items() if k in allowed}
        if data.get("farm_location") is not None:
            data["farm_location"] = tuple(data["farm_location"])
        return FarmerProfile(**data)
    allowed = VetProfile.__dataclass_fields__
    return VetProfile(**{k: v for k, v in data.items() if k in allowed})


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class AccountStore:
    """Repository for Account entities and their refresh-token shadow records.

    Usage:
        store = AccountStore("sqlite:///herdcare.db")
        account_id = store.create_account(account)
        store.add_refresh_token(account_id, token)
        store.contains_refresh_token(account_id, token)   # True
        store.close()
    """

    _UPDATABLE_FIELDS: frozenset = frozenset({"full_name", "phone", "language", "profile"})

    def __init__(
        self,
        db_url: str,
        refresh_ttl_seconds: int = _DEFAULT_REFRESH_TTL,
        timeout_seconds: float = 5.0,
    ) -> None:
        self.refresh_ttl_seconds = refresh_ttl_seconds
        engine_kwargs: dict = {}
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
            # sqlite3 busy timeout: how long a writer waits for the lock
            connect_args["timeout"] = timeout_seconds
        else:
            engine_kwargs["pool_timeout"] = timeout_seconds
        self.engine: Engine = create_engine(db_url, connect_args=connect_args, **engine_kwargs)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _configure_sqlite)
        with _guard("create_schema"):
            _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        try:
            with _guard("ping"), self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except StorageUnavailable:
            return False
        return True

    # ------------------------------------------------------------------
    # Account queries
    # ------------------------------------------------------------------

    def create_account(self, account: Account) -> int:
        """Insert a new account and return its assigned database ID.

        Raises DuplicateAccount if the email is already registered, including
        when a concurrent registration won the race after the caller's lookup.
        """
        now = _now_iso()
        try:
            with _guard("create_account"), self.engine.connect() as conn:
                result = conn.execute(
                    _accounts.insert().values(
                        email=normalize_email(account.email),
                        hashed_password=account.hashed_password,
                        role=account.role.value,
                        full_name=account.full_name,
                        phone=account.phone,
                        language=account.language,
                        profile=_profile_to_json(account.profile),
                        created_at=now,
                        updated_at=now,
                    )
                )
                conn.commit()
                return result.inserted_primary_key[0]
        except IntegrityError as exc:
            raise DuplicateAccount() from exc

    def get_by_email(self, email: str) -> Account | None:
        """Look up an account by normalized email. Returns None if not found."""
        with _guard("get_by_email"), self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.email == normalize_email(email))).fetchone()
        return _row_to_account(row) if row is not None else None

    def get_by_id(self, account_id: int) -> Account | None:
        """Look up an account by primary key. Returns None if not found."""
        with _guard("get_by_id"), self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.id == account_id)).fetchone()
        return _row_to_account(row) if row is not None else None

    def list_accounts(self, role: Role | None = None, offset: int = 0, limit: int = 10) -> list[Account]:
        """Return accounts newest first, optionally filtered by role. Admin-only operation."""
        query = _accounts.select()
        if role is not None:
            query = query.where(_accounts.c.role == Role(role).value)
        query = query.order_by(_accounts.c.created_at.desc(), _accounts.c.id.desc()).offset(offset).limit(limit)
        with _guard("list_accounts"), self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_account(r) for r in rows]

    def count_accounts(self, role: Role | None = None) -> int:
        query = select(func.count()).select_from(_accounts)
        if role is not None:
            query = query.where(_accounts.c.role == Role(role).value)
        with _guard("count_accounts"), self.engine.connect() as conn:
            result = conn.execute(query).scalar()
        return result or 0

    def update_account(self, account_id: int, **fields) -> bool:
        """Update mutable fields on an existing account.

        Accepted fields: full_name, phone, language, profile (a Profile
        instance). Email, role and password hash are not updatable here.

        Returns True if a row was updated, False if account_id was not found.
        """
        unknown = set(fields) - self._UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown account fields: {unknown!r}")
        if "profile" in fields:
            fields["profile"] = _profile_to_json(fields["profile"])
        fields["updated_at"] = _now_iso()
        with _guard("update_account"), self.engine.connect() as conn:
            result = conn.execute(_accounts.update().where(_accounts.c.id == account_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def delete_account(self, account_id: int) -> bool:
        """Permanently delete an account and every refresh token it owns."""
        with _guard("delete_account"), self.engine.begin() as conn:
            conn.execute(_refresh_tokens.delete().where(_refresh_tokens.c.account_id == account_id))
            result = conn.execute(_accounts.delete().where(_accounts.c.id == account_id))
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Refresh-token shadow records
    # ------------------------------------------------------------------

    def _live_cutoff(self) -> float:
        return time.time() - self.refresh_ttl_seconds

    def _live_match(self, account_id: int, token: str):
        return (
            (_refresh_tokens.c.account_id == account_id)
            & (_refresh_tokens.c.token_hash == _token_hash(token))
            & (_refresh_tokens.c.issued_at >= self._live_cutoff())
        )

    def add_refresh_token(self, account_id: int, token: str, issued_at: float | None = None) -> None:
        """Record a newly issued refresh token. Never deduplicates.

        issued_at defaults to now; passing an explicit value is for backfills
        and tests.
        """
        with _guard("add_refresh_token"), self.engine.connect() as conn:
            conn.execute(
                _refresh_tokens.insert().values(
                    account_id=account_id,
                    token_hash=_token_hash(token),
                    issued_at=time.time() if issued_at is None else issued_at,
                )
            )
            conn.commit()

    def contains_refresh_token(self, account_id: int, token: str) -> bool:
        """Return True if a live (unexpired) shadow record exists for token."""
        with _guard("contains_refresh_token"), self.engine.connect() as conn:
            row = conn.execute(
                select(_refresh_tokens.c.id).where(self._live_match(account_id, token)).limit(1)
            ).fetchone()
        return row is not None

    def remove_refresh_token(self, account_id: int, token: str) -> bool:
        """Delete the live shadow record for token. Returns False if absent (no-op)."""
        with _guard("remove_refresh_token"), self.engine.connect() as conn:
            result = conn.execute(_refresh_tokens.delete().where(self._live_match(account_id, token)))
            conn.commit()
        return result.rowcount > 0

    def rotate_refresh_token(self, account_id: int, old_token: str, new_token: str) -> bool:
        """Atomically replace old_token with new_token.

        Compare-and-remove: the insert happens only if the delete removed a
        live record, both inside one transaction. Returns False when old_token
        was already consumed, revoked or expired.
        """
        with _guard("rotate_refresh_token"), self.engine.begin() as conn:
            deleted = conn.execute(_refresh_tokens.delete().where(self._live_match(account_id, old_token)))
            if deleted.rowcount == 0:
                return False
            conn.execute(
                _refresh_tokens.insert().values(
                    account_id=account_id,
                    token_hash=_token_hash(new_token),
                    issued_at=time.time(),
                )
            )
        return True

    def remove_all_refresh_tokens(self, account_id: int) -> int:
        """Delete every shadow record for an account. Returns the number removed."""
        with _guard("remove_all_refresh_tokens"), self.engine.connect() as conn:
            result = conn.execute(_refresh_tokens.delete().where(_refresh_tokens.c.account_id == account_id))
            conn.commit()
        return result.rowcount

    def count_refresh_tokens(self, account_id: int) -> int:
        """Return the number of live sessions for an account."""
        query = (
            select(func.count())
            .select_from(_refresh_tokens)
            .where(
                (_refresh_tokens.c.account_id == account_id) & (_refresh_tokens.c.issued_at >= self._live_cutoff())
            )
        )
        with _guard("count_refresh_tokens"), self.engine.connect() as conn:
            result = conn.execute(query).scalar()
        return result or 0

    def purge_expired_refresh_tokens(self) -> int:
        """Delete all shadow records older than the TTL. Returns number of rows removed."""
        with _guard("purge_expired_refresh_tokens"), self.engine.connect() as conn:
            result = conn.execute(_refresh_tokens.delete().where(_refresh_tokens.c.issued_at < self._live_cutoff()))
            conn.commit()
        return result.rowcount

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_account(row) -> Account:
    role = Role(row.role)
    return Account(
        id=row.id,
        email=row.email,
        hashed_password=row.hashed_password,
        role=role,
        full_name=row.full_name,
        phone=row.phone,
        language=row.language,
        profile=_profile_from_json(role, row.profile),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
