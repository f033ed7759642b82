"""
auth/store.py -- SQLAlchemy Core persistence layer for users.

Pattern: Repository + Data Mapper. UserStore is the repository; _row_to_user
is the mapper. Route, dependency and service code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  hashed_password is excluded from default reads. Callers that need it
  (login, password change) pass include_password=True explicitly, so a
  careless `return user.to_public()` can never leak a digest that was not
  asked for.

Validation:
  create() always validates. update_by_id() and save() validate unless
  validate=False. save() writes only the fields it is given -- the
  forgot-password flow touches the two reset fields and nothing else.
  The email UNIQUE constraint is enforced by the database in every mode and
  surfaces as DuplicateEmail.

Atomicity: every public method runs in its own connection and commits
once, so each call is an atomic read-modify-write for its record. Multi-step
flows (forgot-password set + rollback) are two separate atomic writes.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
import re
import uuid
from collections.abc import Iterable
from datetime import datetime, timezone

from sqlalchemy import Column, MetaData, String, Table, Text, create_engine, event, func, select, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.errors import DuplicateEmail, ValidationError
from auth.models import Role, User

logger = logging.getLogger("credgate.store")

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_NAME_MAX = 50

# Columns a caller may change through update_by_id(). Checked before any SQL
# is built so column names never come from raw input.
_UPDATABLE_FIELDS: frozenset[str] = frozenset(
    {"name", "email", "role", "hashed_password", "reset_token_hash", "reset_token_expire"}
)

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", String(32), primary_key=True),  # uuid4 hex
    Column("name", String(_NAME_MAX), nullable=False),
    Column("email", String(255), nullable=False, unique=True),  # always lowercase
    Column("hashed_password", Text, nullable=False),
    Column("role", String(10), nullable=False, server_default=Role.user.value),
    Column("reset_token_hash", String(64), index=True),  # SHA-256 hex
    Column("reset_token_expire", String(32)),  # ISO 8601 UTC
    Column("created_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _dt_to_iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.astimezone(timezone.utc).isoformat()


def _iso_to_dt(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _validate_fields(fields: dict) -> None:
    """Check the user-facing fields present in `fields`. Raises ValidationError."""
    errors: list[dict[str, str]] = []
    if "name" in fields:
        name = fields["name"]
        if not name or not str(name).strip():
            errors.append({"field": "name", "message": "Please add a name."})
        elif len(name) > _NAME_MAX:
            errors.append({"field": "name", "message": f"Name can not be more than {_NAME_MAX} characters."})
    if "email" in fields:
        email = fields["email"]
        if not email:
            errors.append({"field": "email", "message": "Please add an email."})
        elif not _EMAIL_RE.match(email):
            errors.append({"field": "email", "message": "Please add a valid email."})
    if "role" in fields:
        try:
            Role(fields["role"])
        except ValueError:
            errors.append({"field": "role", "message": f"`{fields['role']}` is not a valid role."})
    if "hashed_password" in fields and not fields["hashed_password"]:
        errors.append({"field": "password", "message": "Please add a password."})
    if errors:
        raise ValidationError(errors)


def _to_columns(fields: dict) -> dict:
    """Convert domain values to their column representation."""
    values = dict(fields)
    if values.get("email") is not None:
        values["email"] = values["email"].strip().lower()
    if isinstance(values.get("role"), Role):
        values["role"] = values["role"].value
    if "reset_token_expire" in values:
        values["reset_token_expire"] = _dt_to_iso(values["reset_token_expire"])
    return values


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User entities.

    Usage:
        store = UserStore(settings.database_url)
        user = store.create(User(name="Ada", email="ada@example.com", hashed_password=hash_password("secret")))
        same = store.find_by_email("ADA@example.com")
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def find_by_email(self, email: str, include_password: bool = False) -> User | None:
        """Look up a user by email (case-insensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email.strip().lower())).fetchone()
        return _row_to_user(row, include_password) if row is not None else None

    def find_by_id(self, user_id: str, include_password: bool = False) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row, include_password) if row is not None else None

    def find_by_reset_token(self, token_hash: str, now: datetime) -> User | None:
        """Return the user holding token_hash if that token expires after `now`.

        Expiry is compared on parsed datetimes rather than in SQL so the check
        does not depend on how each backend orders ISO strings.
        """
        with self.engine.connect() as conn:
            rows = conn.execute(_users.select().where(_users.c.reset_token_hash == token_hash)).fetchall()
        for row in rows:
            expires = _iso_to_dt(row.reset_token_expire)
            if expires is not None and expires > now:
                return _row_to_user(row)
        return None

    def list_users(self, offset: int = 0, limit: int = 25) -> list[User]:
        """Return one page of users ordered by creation time. Admin-only operation."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _users.select().order_by(_users.c.created_at, _users.c.id).offset(offset).limit(limit)
            ).fetchall()
        return [_row_to_user(r) for r in rows]

    def count_users(self) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_users)).scalar()
        return result or 0

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        with self.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(self, user: User) -> User:
        """Validate and insert a new user; return it as stored (without the digest).

        Raises ValidationError on bad fields and DuplicateEmail when the
        email is already registered.
        """
        fields = {
            "name": user.name,
            "email": user.email,
            "role": user.role,
            "hashed_password": user.hashed_password,
        }
        _validate_fields(fields)
        user_id = uuid.uuid4().hex
        values = _to_columns(fields)
        try:
            with self.engine.connect() as conn:
                conn.execute(
                    _users.insert().values(
                        id=user_id,
                        created_at=_now_iso(),
                        reset_token_hash=None,
                        reset_token_expire=None,
                        **values,
                    )
                )
                conn.commit()
        except IntegrityError as exc:
            raise DuplicateEmail() from exc
        created = self.find_by_id(user_id)
        if created is None:  # pragma: no cover -- row vanished between insert and read
            raise RuntimeError("User not found after insert.")
        return created

    def update_by_id(self, user_id: str, fields: dict, validate: bool = True) -> User | None:
        """Update the given fields and return the updated user, or None if absent.

        Unknown field names raise ValueError rather than being silently
        ignored. An empty `fields` dict is a no-op read.
        """
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown user fields: {unknown!r}")
        if validate:
            _validate_fields(fields)
        if fields:
            try:
                with self.engine.connect() as conn:
                    conn.execute(_users.update().where(_users.c.id == user_id).values(**_to_columns(fields)))
                    conn.commit()
            except IntegrityError as exc:
                raise DuplicateEmail() from exc
        return self.find_by_id(user_id)

    def save(self, user: User, fields: Iterable[str], validate: bool = True) -> bool:
        """Persist only the named fields of an already-loaded user.

        Columns not listed keep whatever is stored now, so a write based on
        an older snapshot (e.g. the forgot-password rollback after a slow
        mail call) cannot revert concurrent changes to other fields.

        Returns True if a row was updated, False if the user no longer exists.
        """
        if user.id is None:
            raise ValueError("Cannot save a user that has not been created.")
        names = set(fields)
        unknown = names - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown user fields: {unknown!r}")
        if not names:
            return self.find_by_id(user.id) is not None
        values = {name: getattr(user, name) for name in names}
        if validate:
            _validate_fields(values)
        try:
            with self.engine.connect() as conn:
                result = conn.execute(_users.update().where(_users.c.id == user.id).values(**_to_columns(values)))
                conn.commit()
        except IntegrityError as exc:
            raise DuplicateEmail() from exc
        return result.rowcount > 0

    def delete_by_id(self, user_id: str) -> User | None:
        """Permanently delete a user record. Returns the deleted user, or None if not found."""
        existing = self.find_by_id(user_id)
        if existing is None:
            return None
        with self.engine.connect() as conn:
            conn.execute(_users.delete().where(_users.c.id == user_id))
            conn.commit()
        return existing

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row, include_password: bool = False) -> User:
    return User(
        id=row.id,
        name=row.name,
        email=row.email,
        role=Role(row.role),
        hashed_password=row.hashed_password if include_password else None,
        reset_token_hash=row.reset_token_hash,
        reset_token_expire=_iso_to_dt(row.reset_token_expire),
        created_at=row.created_at,
    )
