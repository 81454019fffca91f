"""
auth/store.py -- SQLAlchemy Core persistence layer for user accounts.

Pattern: Repository + Data Mapper (same as tasks/store.py).
UserStore is the repository; _row_to_user is the mapper.
Route and dependency code never touches SQL directly.

Reads go through _fetch_one/_scalar; every write runs in its own
engine.begin() transaction via _write(). Values are always bound
parameters, and hashed_password is never logged.

DB path: auth/taskwarden_auth.db (sibling to tasks/taskwarden_tasks.db).

Layer rule: no imports from api/ or tasks/.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, func, or_, select
from sqlalchemy.engine import Engine

from auth.models import Role, User

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).parent / 'taskwarden_auth.db'}"

# Fields update_user() may change. Checked before building the UPDATE so
# keyword arguments can never name an arbitrary column.
_UPDATABLE_FIELDS = frozenset({"role", "is_active", "email"})

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(50), nullable=False, unique=True),
    Column("email", String(100), nullable=False, unique=True),
    Column("hashed_password", Text, nullable=False),
    Column("role", String(20), nullable=False, server_default=Role.user.value),
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("created_at", String(32), nullable=False),
    Column("last_login", String(32)),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    # journal_mode is per connection, so every pooled connection gets it.
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User entities.

    Usage:
        store = UserStore()
        uid = store.create_user(User(username="alice", email="alice@taskwarden.dev", hashed_password=h))
        user = store.get_by_username_or_email("alice@taskwarden.dev")
        store.close()
    """

    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        is_sqlite = db_url.startswith("sqlite")
        self.engine: Engine = create_engine(
            db_url,
            connect_args={"check_same_thread": False} if is_sqlite else {},
        )
        if is_sqlite:
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    def _fetch_one(self, *criteria) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(select(_users).where(*criteria)).fetchone()
        return None if row is None else _row_to_user(row)

    def _scalar(self, query) -> int:
        with self.engine.connect() as conn:
            return conn.execute(query).scalar() or 0

    def _write(self, statement) -> int:
        """Run one INSERT/UPDATE in its own transaction; return rows affected."""
        with self.engine.begin() as conn:
            return conn.execute(statement).rowcount

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def has_users(self) -> bool:
        return self._scalar(select(func.count()).select_from(_users)) > 0

    def get_by_id(self, user_id: int) -> User | None:
        return self._fetch_one(_users.c.id == user_id)

    def get_by_username_or_email(self, login: str) -> User | None:
        """Look up an account by either identifier. Login forms accept both."""
        return self._fetch_one(or_(_users.c.username == login, _users.c.email == login))

    def list_users(self) -> list[User]:
        with self.engine.connect() as conn:
            return [_row_to_user(r) for r in conn.execute(select(_users).order_by(_users.c.id))]

    def count_active_admins(self) -> int:
        return self._scalar(
            select(func.count())
            .select_from(_users)
            .where(_users.c.role == Role.admin.value, _users.c.is_active == 1)
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the username or email already
        exists. Callers turn that into a 409.
        """
        statement = _users.insert().values(
            username=user.username,
            email=user.email,
            hashed_password=user.hashed_password,
            role=user.role,
            is_active=int(user.is_active),
            created_at=_now_iso(),
        )
        with self.engine.begin() as conn:
            return conn.execute(statement).inserted_primary_key[0]

    def update_user(self, user_id: int, **fields) -> bool:
        """Update role / is_active / email. Returns True if a row changed."""
        unknown = fields.keys() - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update fields: {sorted(unknown)}")
        if "is_active" in fields:
            fields["is_active"] = int(bool(fields["is_active"]))
        return self._write(_users.update().where(_users.c.id == user_id).values(**fields)) > 0

    def update_password(self, user_id: int, hashed_password: str) -> bool:
        """Replace the stored hash. The old hash is not kept."""
        return self._write(_users.update().where(_users.c.id == user_id).values(hashed_password=hashed_password)) > 0

    def update_last_login(self, user_id: int) -> None:
        self._write(_users.update().where(_users.c.id == user_id).values(last_login=_now_iso()))

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    m = row._mapping
    return User(
        id=m["id"],
        username=m["username"],
        email=m["email"],
        hashed_password=m["hashed_password"],
        role=m["role"],
        is_active=bool(m["is_active"]),
        created_at=m["created_at"],
        last_login=m["last_login"],
    )
