"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper.
UserStore is the repository; _row_to_user / _row_to_role / _row_to_token are
the mappers. The Authenticator and routes never touch SQL directly.

Entity types are injected (user_cls, role_cls, token_cls) rather than looked
up by name, so a deployment can swap in subclasses of the auth/models.py
dataclasses. The mappers only pass the base fields; subclasses must give any
extra fields defaults.

Token semantics:
  get_token() never returns an expired row. An expired row found by lookup
  is deleted on the spot, so stale cookies clean up after themselves even
  between purge runs.

  regenerate_token() writes a new token value onto the same row and leaves
  expires untouched -- rotation does not extend the remember-me window.

Security:
  All queries use bound parameters. No f-strings in SQL.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import time
from collections.abc import Iterable
from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import Column, ForeignKey, Integer, MetaData, String, Table, Text, create_engine, event, func, select
from sqlalchemy.engine import Engine

from auth.models import AutoLoginToken, Role, User
from auth.tokens import generate_token

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).parent / 'authgate.db'}"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(255), nullable=False, unique=True),
    Column("email", String(255), unique=True),
    Column("hashed_password", Text),  # NULL = force_login only
    Column("logins", Integer, nullable=False, server_default="0"),
    Column("last_login", String(32)),
    Column("created_at", String(32), nullable=False),
)

_roles = Table(
    "roles",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(32), nullable=False, unique=True),
    Column("description", String(255)),
)

_roles_users = Table(
    "roles_users",
    _metadata,
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("role_id", Integer, ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
)

_user_tokens = Table(
    "user_tokens",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("user_agent", String(64), nullable=False),  # SHA-256 hex fingerprint
    Column("token", String(64), nullable=False, unique=True),
    Column("created", Integer, nullable=False),
    Column("expires", Integer, nullable=False, index=True),
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


def _now_epoch() -> int:
    return int(time.time())


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User, Role and AutoLoginToken entities.

    Usage:
        store = UserStore()
        uid = store.create_user(User(username="alice", hashed_password=hash_password("secret")))
        store.add_role(uid, store.create_role(Role(name="login")))
        user = store.get_by_unique_key("alice")
        store.close()
    """

    def __init__(
        self,
        db_url: str = _DEFAULT_DB_URL,
        user_cls: type[User] = User,
        role_cls: type[Role] = Role,
        token_cls: type[AutoLoginToken] = AutoLoginToken,
    ) -> None:
        self.user_cls = user_cls
        self.role_cls = role_cls
        self.token_cls = token_cls
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    def ping(self) -> bool:
        """Round-trip a trivial query. Raises on connectivity failure."""
        with self.engine.connect() as conn:
            conn.execute(_roles.select().limit(1)).fetchall()
        return True

    # ------------------------------------------------------------------
    # User queries
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the username or email is taken.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    username=user.username,
                    email=user.email,
                    hashed_password=user.hashed_password,
                    logins=user.logins,
                    last_login=user.last_login,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_by_id(self, user_id: int) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return self._row_to_user(row) if row is not None else None

    def get_by_username(self, username: str) -> User | None:
        """Look up a user by exact username (case-sensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.username == username)).fetchone()
        return self._row_to_user(row) if row is not None else None

    def get_by_email(self, email: str) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        return self._row_to_user(row) if row is not None else None

    def get_by_unique_key(self, value: str) -> User | None:
        """Resolve a login identifier: email if it contains "@", else username."""
        if "@" in value:
            return self.get_by_email(value)
        return self.get_by_username(value)

    def update_password(self, user_id: int, hashed_password: str) -> bool:
        """Replace the stored hash. Returns False if user_id was not found."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.update().where(_users.c.id == user_id).values(hashed_password=hashed_password)
            )
            conn.commit()
        return result.rowcount > 0

    def complete_login(self, user: User) -> None:
        """Bump the login counter and stamp last_login, on the row and on the object.

        The increment is done in SQL so two concurrent logins for the same
        user both count.
        """
        now = _now_iso()
        with self.engine.connect() as conn:
            conn.execute(
                _users.update().where(_users.c.id == user.id).values(logins=_users.c.logins + 1, last_login=now)
            )
            conn.commit()
        user.logins += 1
        user.last_login = now

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    def create_role(self, role: Role) -> int:
        """Insert a role and return its ID. Raises IntegrityError on a duplicate name."""
        with self.engine.connect() as conn:
            result = conn.execute(_roles.insert().values(name=role.name, description=role.description))
            conn.commit()
            return result.inserted_primary_key[0]

    def ensure_role(self, name: str, description: str | None = None) -> Role:
        """Return the named role, creating it first if it does not exist."""
        role = self.get_role_by_name(name)
        if role is None:
            role_id = self.create_role(self.role_cls(name=name, description=description))
            role = self.role_cls(id=role_id, name=name, description=description)
        return role

    def get_role_by_name(self, name: str) -> Role | None:
        with self.engine.connect() as conn:
            row = conn.execute(_roles.select().where(_roles.c.name == name)).fetchone()
        return self._row_to_role(row) if row is not None else None

    def get_roles_by_names(self, names: Iterable[str]) -> list[Role]:
        """Return the roles whose names are in `names`. Unknown names are simply absent."""
        names = list(names)
        if not names:
            return []
        with self.engine.connect() as conn:
            rows = conn.execute(_roles.select().where(_roles.c.name.in_(names))).fetchall()
        return [self._row_to_role(r) for r in rows]

    def list_roles(self) -> list[Role]:
        with self.engine.connect() as conn:
            rows = conn.execute(_roles.select().order_by(_roles.c.name)).fetchall()
        return [self._row_to_role(r) for r in rows]

    def add_role(self, user_id: int, role_id: int) -> bool:
        """Grant a role. Returns False if the user already held it."""
        if self.user_has_roles(user_id, [role_id]):
            return False
        with self.engine.connect() as conn:
            conn.execute(_roles_users.insert().values(user_id=user_id, role_id=role_id))
            conn.commit()
        return True

    def remove_role(self, user_id: int, role_id: int) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(
                _roles_users.delete().where((_roles_users.c.user_id == user_id) & (_roles_users.c.role_id == role_id))
            )
            conn.commit()
        return result.rowcount > 0

    def get_user_roles(self, user_id: int) -> list[Role]:
        with self.engine.connect() as conn:
            rows = conn.execute(
                _roles.select()
                .join(_roles_users, _roles_users.c.role_id == _roles.c.id)
                .where(_roles_users.c.user_id == user_id)
                .order_by(_roles.c.name)
            ).fetchall()
        return [self._row_to_role(r) for r in rows]

    def user_has_roles(self, user_id: int, role_ids: Iterable[int]) -> bool:
        """True if the user holds every one of role_ids (an "all" check, not "any")."""
        wanted = set(role_ids)
        if not wanted:
            return True
        with self.engine.connect() as conn:
            held = conn.execute(
                select(func.count())
                .select_from(_roles_users)
                .where((_roles_users.c.user_id == user_id) & (_roles_users.c.role_id.in_(wanted)))
            ).scalar()
        return (held or 0) == len(wanted)

    # ------------------------------------------------------------------
    # Auto-login tokens
    # ------------------------------------------------------------------

    def create_token(self, token: AutoLoginToken) -> AutoLoginToken:
        """Persist a new token row and return it with id, token value and created set.

        A token value already on the object is kept; otherwise a random one is
        generated.
        """
        value = token.token or generate_token()
        created = _now_epoch()
        with self.engine.connect() as conn:
            result = conn.execute(
                _user_tokens.insert().values(
                    user_id=token.user_id,
                    user_agent=token.user_agent,
                    token=value,
                    created=created,
                    expires=token.expires,
                )
            )
            conn.commit()
            token_id = result.inserted_primary_key[0]
        return self.token_cls(
            id=token_id,
            user_id=token.user_id,
            user_agent=token.user_agent,
            token=value,
            created=created,
            expires=token.expires,
        )

    def get_token(self, value: str) -> AutoLoginToken | None:
        """Look up a live token by value. Expired rows are deleted and reported as missing."""
        with self.engine.connect() as conn:
            row = conn.execute(_user_tokens.select().where(_user_tokens.c.token == value)).fetchone()
        if row is None:
            return None
        if row.expires <= _now_epoch():
            self.delete_token(row.id)
            return None
        return self._row_to_token(row)

    def get_user_tokens(self, user_id: int) -> list[AutoLoginToken]:
        with self.engine.connect() as conn:
            rows = conn.execute(
                _user_tokens.select().where(_user_tokens.c.user_id == user_id).order_by(_user_tokens.c.id)
            ).fetchall()
        return [self._row_to_token(r) for r in rows]

    def regenerate_token(self, token: AutoLoginToken) -> AutoLoginToken:
        """Replace the token value on an existing row; expires is carried over."""
        value = generate_token()
        with self.engine.connect() as conn:
            conn.execute(_user_tokens.update().where(_user_tokens.c.id == token.id).values(token=value))
            conn.commit()
        return self.token_cls(
            id=token.id,
            user_id=token.user_id,
            user_agent=token.user_agent,
            token=value,
            created=token.created,
            expires=token.expires,
        )

    def delete_token(self, token_id: int) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(_user_tokens.delete().where(_user_tokens.c.id == token_id))
            conn.commit()
        return result.rowcount > 0

    def delete_user_tokens(self, user_id: int) -> int:
        """Delete every token owned by a user (all devices). Returns rows removed."""
        with self.engine.connect() as conn:
            result = conn.execute(_user_tokens.delete().where(_user_tokens.c.user_id == user_id))
            conn.commit()
        return result.rowcount

    def purge_expired_tokens(self) -> int:
        """Delete all tokens whose expiry has passed. Returns rows removed."""
        with self.engine.connect() as conn:
            result = conn.execute(_user_tokens.delete().where(_user_tokens.c.expires <= _now_epoch()))
            conn.commit()
        return result.rowcount

    def close(self) -> None:
        self.engine.dispose()

    # ------------------------------------------------------------------
    # Row mappers (Data Mapper pattern)
    # ------------------------------------------------------------------

    def _row_to_user(self, row) -> User:
        return self.user_cls(
            id=row.id,
            username=row.username,
            email=row.email,
            hashed_password=row.hashed_password,
            logins=row.logins or 0,
            last_login=row.last_login,
            created_at=row.created_at,
        )

    def _row_to_role(self, row) -> Role:
        return self.role_cls(id=row.id, name=row.name, description=row.description)

    def _row_to_token(self, row) -> AutoLoginToken:
        return self.token_cls(
            id=row.id,
            user_id=row.user_id,
            user_agent=row.user_agent,
            token=row.token,
            created=row.created,
            expires=row.expires,
        )
