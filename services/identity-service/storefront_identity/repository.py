"""Database repository for storefront accounts."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterable, Iterator

from psycopg import OperationalError, errors as pg_errors
from psycopg.rows import tuple_row
from psycopg_pool import ConnectionPool, PoolTimeout

from .domain.account import Account, normalize_email
from .domain.contracts import NewAccount
from .domain.errors import DuplicateAccountError, StaleAccountError, StorageUnavailableError

logger = logging.getLogger(__name__)

_COLUMNS = """
    account_id, username, email, password_hash, created_at,
    verification_token, is_verified, is_seller, is_admin, location
"""

MUTABLE_COLUMNS = (
    "password_hash",
    "verification_token",
    "is_verified",
    "is_seller",
    "is_admin",
    "location",
)

# Sentinel meaning "overwrite regardless of the stored token".
ANY_TOKEN: Any = object()


class AccountRepository:
    """Postgres-backed account persistence.

    Expects an ``accounts`` table with unique ``username`` and ``email``
    columns; see DESIGN.md for the DDL.
    """

    def __init__(self, pool: ConnectionPool) -> None:
        """Store the connection pool used for all database interactions."""
        self._pool = pool

    @contextmanager
    def _connection(self) -> Iterator[Any]:
        try:
            with self._pool.connection() as conn:
                yield conn
        except (OperationalError, PoolTimeout) as exc:
            logger.error("account store unavailable: %s", exc)
            raise StorageUnavailableError("account store unavailable") from exc

    def find_by_username(self, username: str) -> Account | None:
        """Return the account owning ``username`` or ``None``."""
        return self._fetch_one("username = %s", (username,))

    def find_by_email(self, email: str) -> Account | None:
        """Return the account for ``email`` (case-insensitive) or ``None``."""
        return self._fetch_one("email = %s", (normalize_email(email),))

    def create(self, payload: NewAccount) -> Account:
        """Insert an unverified account and return it with its assigned id."""
        with self._connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                try:
                    cur.execute(
                        f"""
                        INSERT INTO accounts (username, email, password_hash, verification_token, location)
                        VALUES (%s, %s, %s, %s, %s)
                        RETURNING {_COLUMNS}
                        """,
                        (
                            payload.username,
                            normalize_email(payload.email),
                            payload.password_hash,
                            payload.verification_token,
                            payload.location,
                        ),
                    )
                except pg_errors.UniqueViolation as exc:
                    conn.rollback()
                    constraint = (exc.diag.constraint_name or "").lower()
                    field = "username" if "username" in constraint else "email"
                    raise DuplicateAccountError(field) from exc
                row = cur.fetchone()
                conn.commit()
        return self._map_record(row)

    def save(
        self,
        account: Account,
        *,
        columns: Iterable[str],
        expected_token: Any = ANY_TOKEN,
        pending_only: bool = False,
    ) -> Account:
        """Persist the named ``columns`` of ``account``; other columns keep their stored values.

        ``is_verified`` only ever moves from false to true. When
        ``expected_token`` is given the update only applies if the stored
        ``verification_token`` still equals it, and ``pending_only`` restricts
        it to unverified accounts. A guard that does not hold raises
        ``StaleAccountError`` and nothing changes.
        """
        columns = tuple(columns)
        unknown = set(columns) - set(MUTABLE_COLUMNS)
        if not columns or unknown:
            raise ValueError(f"unsupported columns: {columns!r}")

        assignments = []
        params: list[Any] = []
        for column in columns:
            if column == "is_verified":
                assignments.append("is_verified = is_verified OR %s")
            else:
                assignments.append(f"{column} = %s")
            params.append(getattr(account, column))

        clauses = ["account_id = %s"]
        params.append(account.account_id)
        if expected_token is not ANY_TOKEN:
            clauses.append("verification_token IS NOT DISTINCT FROM %s")
            params.append(expected_token)
        if pending_only:
            clauses.append("NOT is_verified")

        set_sql = ", ".join(assignments)
        where_sql = " AND ".join(clauses)
        with self._connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(
                    f"""
                    UPDATE accounts
                    SET {set_sql}
                    WHERE {where_sql}
                    RETURNING {_COLUMNS}
                    """,
                    params,
                )
                row = cur.fetchone()
                conn.commit()
        if row is None:
            raise StaleAccountError(f"account {account.account_id} changed concurrently")
        return self._map_record(row)

    def _fetch_one(self, where_sql: str, params: tuple[Any, ...]) -> Account | None:
        with self._connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(
                    f"""
                    SELECT {_COLUMNS}
                    FROM accounts
                    WHERE {where_sql}
                    LIMIT 1
                    """,
                    params,
                )
                row = cur.fetchone()
                if not row:
                    return None
        return self._map_record(row)

    def _map_record(self, row: tuple) -> Account:
        """Convert a raw database tuple into the domain ``Account`` dataclass."""
        return Account(
            account_id=row[0],
            username=row[1],
            email=row[2],
            password_hash=row[3],
            created_at=row[4],
            verification_token=row[5],
            is_verified=row[6],
            is_seller=row[7],
            is_admin=row[8],
            location=row[9],
        )
