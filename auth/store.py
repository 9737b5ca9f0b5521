"""
auth/store.py -- SQLAlchemy Core persistence layer for users and subscriptions.

Pattern: Repository + Data Mapper.
UserStore is the repository; _row_to_user / _row_to_subscription are the
mappers. The session core and the subscription mirror never touch SQL.

This is the backend store contract the auth subsystem consumes:
  upsert_user_by_subject(subject, email, name, picture) -> User
  read_subscription(user_id) -> SubscriptionRecord | None

save_subscription() exists for the external billing webhook collaborator
(and tests). Nothing in auth/ or billing/ writes subscriptions.

Security:
  All queries use bound parameters. No f-strings in SQL.

  UNIQUE(provider_subject) is enforced in SQL. The upsert is a read-then-write
  inside one transaction; a concurrent insert of the same subject surfaces as
  IntegrityError and is retried once as an update.

DB path: auth/honestinvoice_auth.db unless BACKEND_DB_URL says otherwise.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, MetaData, String, Table, Text, create_engine, event, func, select
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError

from auth.models import User
from billing.models import SubscriptionRecord, Tier
from core.config import get_settings

logger = logging.getLogger("honestinvoice.auth.store")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "user_profiles",
    _metadata,
    Column("id", String(36), primary_key=True),  # uuid4 string
    Column("provider_subject", String(255), nullable=False, unique=True),  # Google "sub"
    Column("email", String(320), nullable=False),
    Column("full_name", Text),
    Column("avatar_url", Text),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_subscribers = Table(
    "subscribers",
    _metadata,
    Column("user_id", String(36), primary_key=True),
    Column("subscription_tier", String(30), nullable=False, server_default="free"),
    Column("subscribed", Boolean, nullable=False, server_default="0"),
    Column("subscription_end", String(32)),
    Column("billing_customer_id", String(255)),  # processor customer reference
    Column("updated_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers never block on the writer.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User and SubscriptionRecord entities.

    Usage:
        store = UserStore()
        user = store.upsert_user_by_subject("1234", "a@example.com", "Ada", None)
        record = store.read_subscription(user.id)   # None until billing writes one
        store.close()
    """

    def __init__(self, db_url: str | None = None) -> None:
        db_url = db_url or get_settings().backend_db_url
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite") and ":memory:" not in db_url:
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # User queries
    # ------------------------------------------------------------------

    def upsert_user_by_subject(self, subject: str, email: str, name: str, picture: str | None) -> User:
        """Insert or update the user keyed on provider_subject and return it.

        Existing subject: email, full_name, avatar_url and updated_at are
        overwritten; id and created_at are preserved. Exactly one row per
        subject exists afterwards.
        """
        try:
            with self.engine.begin() as conn:
                return self._upsert(conn, subject, email, name, picture)
        except IntegrityError:
            # A concurrent sign-in inserted the same subject first; the row now exists.
            logger.info("Upsert race on subject %s -- retrying as update", subject)
            with self.engine.begin() as conn:
                return self._upsert(conn, subject, email, name, picture)

    def _upsert(self, conn: Connection, subject: str, email: str, name: str, picture: str | None) -> User:
        now = _now_iso()
        existing = conn.execute(select(_users.c.id).where(_users.c.provider_subject == subject)).fetchone()
        if existing is None:
            conn.execute(
                _users.insert().values(
                    id=str(uuid.uuid4()),
                    provider_subject=subject,
                    email=email,
                    full_name=name,
                    avatar_url=picture,
                    created_at=now,
                    updated_at=now,
                )
            )
        else:
            conn.execute(
                _users.update()
                .where(_users.c.provider_subject == subject)
                .values(email=email, full_name=name, avatar_url=picture, updated_at=now)
            )
        row = conn.execute(_users.select().where(_users.c.provider_subject == subject)).fetchone()
        return _row_to_user(row)

    def get_by_id(self, user_id: str) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_subject(self, subject: str) -> User | None:
        """Look up a user by the identity provider's subject id."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.provider_subject == subject)).fetchone()
        return _row_to_user(row) if row is not None else None

    def count_users(self) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_users)).scalar()
        return result or 0

    # ------------------------------------------------------------------
    # Subscription queries
    # ------------------------------------------------------------------

    def read_subscription(self, user_id: str) -> SubscriptionRecord | None:
        """Return the mirrored subscription for user_id, or None if there is none."""
        with self.engine.connect() as conn:
            row = conn.execute(_subscribers.select().where(_subscribers.c.user_id == user_id)).fetchone()
        return _row_to_subscription(row) if row is not None else None

    def save_subscription(self, record: SubscriptionRecord) -> None:
        """Insert or replace a subscriber row. Billing webhook write path."""
        values = {
            "subscription_tier": record.tier.value,
            "subscribed": record.subscribed,
            "subscription_end": record.period_end,
            "billing_customer_id": record.billing_customer_id,
            "updated_at": _now_iso(),
        }
        with self.engine.begin() as conn:
            result = conn.execute(_subscribers.update().where(_subscribers.c.user_id == record.user_id).values(**values))
            if result.rowcount == 0:
                conn.execute(_subscribers.insert().values(user_id=record.user_id, **values))

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        provider_subject=row.provider_subject,
        name=row.full_name or "",
        picture=row.avatar_url,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_subscription(row) -> SubscriptionRecord:
    tier = Tier.parse(row.subscription_tier)
    if tier is None:
        # Closed enumeration: anything the billing side writes that we do not
        # recognise grants nothing beyond free.
        logger.warning("Unknown subscription tier %r for user %s -- treating as free", row.subscription_tier, row.user_id)
        tier = Tier.FREE
    return SubscriptionRecord(
        user_id=row.user_id,
        tier=tier,
        subscribed=bool(row.subscribed),
        period_end=row.subscription_end,
        billing_customer_id=row.billing_customer_id,
    )
