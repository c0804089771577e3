"""
PostgreSQL repository adapters - Implement the account and pending
registration repository protocols.

Raw SQL over a psycopg3 connection pool; no ORM.

Atomicity Design:
-----------------
Every mutation the domain relies on for race safety is one statement:

1. **upsert**: INSERT ... SELECT ... WHERE NOT EXISTS (account) ON CONFLICT
   (email) DO UPDATE replaces an abandoned signup wholesale; concurrent
   signups for one email leave a single row, and none once an account exists.

2. **rotate_token**: UPDATE ... WHERE email = %s AND expires_at > %s, so a
   resend never resurrects an expired registration.

3. **create (accounts)**: the UNIQUE constraint on accounts.email is the
   backstop against double verification; UniqueViolation surfaces as the
   domain's DuplicateAccount.

4. **consume_reset_token**: matches and clears the reset token in the same
   UPDATE, so a reset link works exactly once.

Any other psycopg error is logged and raised as the domain InternalError.
"""

import logging
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from uuid import UUID

import psycopg
from psycopg import errors
from psycopg.sql import SQL, Identifier, Placeholder
from psycopg_pool import ConnectionPool

from src.domain.exceptions import AccountNotFound, DuplicateAccount, InternalError
from src.domain.models import Account, AuthProvider, PendingRegistration, Role

logger = logging.getLogger(__name__)

_ACCOUNT_COLUMNS = """
    id, email, display_name, role, auth_provider, is_email_verified,
    password_hash, avatar_url, phone, external_subject_id, created_at, updated_at
"""

_PENDING_COLUMNS = """
    email, password_hash, display_name, phone, expires_at, created_at, updated_at
"""

_PROFILE_COLUMNS = frozenset({"display_name", "avatar_url", "phone"})


@contextmanager
def _storage_errors(operation: str) -> Iterator[None]:
    """Translate driver errors into the domain InternalError."""
    try:
        yield
    except psycopg.Error as e:
        logger.error("Storage failure during %s: %s", operation, e)
        raise InternalError(f"Storage failure during {operation}") from e


def _row_to_account(row: tuple) -> Account:
    return Account(
        id=row[0],
        email=row[1],
        display_name=row[2],
        role=Role(row[3]),
        auth_provider=AuthProvider(row[4]),
        is_email_verified=row[5],
        password_hash=row[6],
        avatar_url=row[7],
        phone=row[8],
        external_subject_id=row[9],
        created_at=row[10],
        updated_at=row[11],
    )


def _row_to_pending(row: tuple) -> PendingRegistration:
    return PendingRegistration(
        email=row[0],
        password_hash=row[1],
        display_name=row[2],
        phone=row[3],
        expires_at=row[4],
        created_at=row[5],
        updated_at=row[6],
    )


class PostgresPendingRegistrationRepository:
    """
    Implements PendingRegistrationRepository protocol via psycopg3.

    Expired rows are returned as-is; the caller decides what expiry means.
    """

    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool

    def upsert(
        self,
        email: str,
        password_hash: str,
        display_name: str,
        phone: str | None,
        token_hash: str,
        expires_at: datetime,
    ) -> bool:
        # Account check and write are one statement; a verified email gets no row
        sql = """
            INSERT INTO pending_registrations
                (email, password_hash, display_name, phone, token_hash, expires_at)
            SELECT %(email)s, %(password_hash)s, %(display_name)s, %(phone)s,
                   %(token_hash)s, %(expires_at)s
            WHERE NOT EXISTS (SELECT 1 FROM accounts WHERE email = %(email)s)
            ON CONFLICT (email) DO UPDATE
            SET password_hash = EXCLUDED.password_hash,
                display_name = EXCLUDED.display_name,
                phone = EXCLUDED.phone,
                token_hash = EXCLUDED.token_hash,
                expires_at = EXCLUDED.expires_at,
                created_at = NOW(),
                updated_at = NOW()
        """
        params = {
            "email": email,
            "password_hash": password_hash,
            "display_name": display_name,
            "phone": phone,
            "token_hash": token_hash,
            "expires_at": expires_at,
        }
        with _storage_errors("pending upsert"):
            with self._pool.connection() as conn, conn.cursor() as cursor:
                cursor.execute(sql, params)
                conn.commit()
                return cursor.rowcount == 1

    def get_by_email(self, email: str) -> PendingRegistration | None:
        sql = f"SELECT {_PENDING_COLUMNS} FROM pending_registrations WHERE email = %s"
        with _storage_errors("pending lookup"):
            with self._pool.connection() as conn, conn.cursor() as cursor:
                cursor.execute(sql, (email,))
                row = cursor.fetchone()
        return _row_to_pending(row) if row is not None else None

    def find_by_token(self, token_hash: str) -> PendingRegistration | None:
        sql = f"SELECT {_PENDING_COLUMNS} FROM pending_registrations WHERE token_hash = %s"
        with _storage_errors("pending token lookup"):
            with self._pool.connection() as conn, conn.cursor() as cursor:
                cursor.execute(sql, (token_hash,))
                row = cursor.fetchone()
        return _row_to_pending(row) if row is not None else None

    def rotate_token(
        self, email: str, token_hash: str, expires_at: datetime, now: datetime
    ) -> bool:
        sql = """
            UPDATE pending_registrations
            SET token_hash = %s, expires_at = %s, updated_at = NOW()
            WHERE email = %s AND expires_at > %s
        """
        with _storage_errors("pending token rotation"):
            with self._pool.connection() as conn, conn.cursor() as cursor:
                cursor.execute(sql, (token_hash, expires_at, email, now))
                conn.commit()
                return cursor.rowcount == 1

    def delete(self, email: str) -> bool:
        with _storage_errors("pending delete"):
            with self._pool.connection() as conn, conn.cursor() as cursor:
                cursor.execute("DELETE FROM pending_registrations WHERE email = %s", (email,))
                conn.commit()
                return cursor.rowcount == 1

    def delete_expired(self, email: str, now: datetime) -> bool:
        sql = "DELETE FROM pending_registrations WHERE email = %s AND expires_at <= %s"
        with _storage_errors("pending expired delete"):
            with self._pool.connection() as conn, conn.cursor() as cursor:
                cursor.execute(sql, (email, now))
                conn.commit()
                return cursor.rowcount == 1

    def purge_expired(self, now: datetime) -> int:
        with _storage_errors("pending purge"):
            with self._pool.connection() as conn, conn.cursor() as cursor:
                cursor.execute("DELETE FROM pending_registrations WHERE expires_at <= %s", (now,))
                conn.commit()
                return cursor.rowcount


class PostgresAccountRepository:
    """
    Implements AccountRepository protocol via psycopg3.

    Integrity errors on email or subject surface as DuplicateAccount.
    """

    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool

    def _fetch_one(self, operation: str, where: str, params: tuple) -> Account | None:
        sql = f"SELECT {_ACCOUNT_COLUMNS} FROM accounts WHERE {where}"
        with _storage_errors(operation):
            with self._pool.connection() as conn, conn.cursor() as cursor:
                cursor.execute(sql, params)
                row = cursor.fetchone()
        return _row_to_account(row) if row is not None else None

    def get_by_email(self, email: str) -> Account | None:
        return self._fetch_one("account lookup", "email = %s", (email,))

    def get_by_id(self, account_id: UUID) -> Account | None:
        return self._fetch_one("account lookup", "id = %s", (account_id,))

    def get_by_external_subject(self, subject: str) -> Account | None:
        return self._fetch_one("account lookup", "external_subject_id = %s", (subject,))

    def get_by_verification_token(self, token_hash: str) -> Account | None:
        return self._fetch_one(
            "account token lookup", "verification_token_hash = %s", (token_hash,)
        )

    def create(
        self,
        *,
        email: str,
        display_name: str,
        role: Role,
        auth_provider: AuthProvider,
        is_email_verified: bool,
        password_hash: str | None = None,
        phone: str | None = None,
        avatar_url: str | None = None,
        external_subject_id: str | None = None,
        verification_token_hash: str | None = None,
    ) -> Account:
        """
        Insert a new account.

        Raises:
            DuplicateAccount: If email or external_subject_id already exists
        """
        sql = f"""
            INSERT INTO accounts
                (email, display_name, role, auth_provider, is_email_verified,
                 password_hash, phone, avatar_url, external_subject_id,
                 verification_token_hash)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING {_ACCOUNT_COLUMNS}
        """
        params = (
            email,
            display_name,
            role.value,
            auth_provider.value,
            is_email_verified,
            password_hash,
            phone,
            avatar_url,
            external_subject_id,
            verification_token_hash,
        )
        with _storage_errors("account create"):
            try:
                with self._pool.connection() as conn, conn.cursor() as cursor:
                    cursor.execute(sql, params)
                    row = cursor.fetchone()
                    conn.commit()
            except errors.UniqueViolation as e:
                raise DuplicateAccount(email) from e
        return _row_to_account(row)

    def link_external_identity(
        self, account_id: UUID, subject: str, avatar_url: str | None
    ) -> Account:
        sql = f"""
            UPDATE accounts
            SET external_subject_id = %s,
                auth_provider = 'external',
                is_email_verified = TRUE,
                avatar_url = COALESCE(avatar_url, %s),
                updated_at = NOW()
            WHERE id = %s
            RETURNING {_ACCOUNT_COLUMNS}
        """
        with _storage_errors("account link"):
            try:
                with self._pool.connection() as conn, conn.cursor() as cursor:
                    cursor.execute(sql, (subject, avatar_url, account_id))
                    row = cursor.fetchone()
                    conn.commit()
            except errors.UniqueViolation as e:
                raise DuplicateAccount(subject) from e
        if row is None:
            raise AccountNotFound(str(account_id))
        return _row_to_account(row)

    def update_profile(
        self, account_id: UUID, changes: Mapping[str, str | None]
    ) -> Account | None:
        unknown = set(changes) - _PROFILE_COLUMNS
        if unknown:
            raise ValueError(f"Not profile columns: {sorted(unknown)}")
        if not changes:
            return self.get_by_id(account_id)

        assignments = SQL(", ").join(
            SQL("{} = {}").format(Identifier(column), Placeholder(column))
            for column in changes
        )
        query = SQL(
            "UPDATE accounts SET {}, updated_at = NOW() WHERE id = {} RETURNING {}"
        ).format(assignments, Placeholder("account_id"), SQL(_ACCOUNT_COLUMNS))
        with _storage_errors("account profile update"):
            with self._pool.connection() as conn, conn.cursor() as cursor:
                cursor.execute(query, {**changes, "account_id": account_id})
                row = cursor.fetchone()
                conn.commit()
        return _row_to_account(row) if row is not None else None

    def set_password(self, account_id: UUID, password_hash: str) -> None:
        sql = "UPDATE accounts SET password_hash = %s, updated_at = NOW() WHERE id = %s"
        with _storage_errors("account password update"):
            with self._pool.connection() as conn, conn.cursor() as cursor:
                cursor.execute(sql, (password_hash, account_id))
                conn.commit()

    def set_reset_token(self, email: str, token_hash: str, expires_at: datetime) -> bool:
        sql = """
            UPDATE accounts
            SET reset_token_hash = %s, reset_expires_at = %s, updated_at = NOW()
            WHERE email = %s AND password_hash IS NOT NULL
        """
        with _storage_errors("account reset token"):
            with self._pool.connection() as conn, conn.cursor() as cursor:
                cursor.execute(sql, (token_hash, expires_at, email))
                conn.commit()
                return cursor.rowcount == 1

    def consume_reset_token(self, token_hash: str, password_hash: str, now: datetime) -> bool:
        sql = """
            UPDATE accounts
            SET password_hash = %s,
                reset_token_hash = NULL,
                reset_expires_at = NULL,
                updated_at = NOW()
            WHERE reset_token_hash = %s AND reset_expires_at > %s
        """
        with _storage_errors("account password reset"):
            with self._pool.connection() as conn, conn.cursor() as cursor:
                cursor.execute(sql, (password_hash, token_hash, now))
                conn.commit()
                return cursor.rowcount == 1


MIGRATIONS_DIR = Path(__file__).resolve().parents[3] / "migrations"

# Serializes migrations when several workers start at once
_MIGRATION_LOCK_ID = 7_340_021


def run_migrations(pool: ConnectionPool, migrations_dir: Path = MIGRATIONS_DIR) -> list[str]:
    """
    Apply pending migrations/*.sql files in filename order.

    Applied file names are recorded in schema_migrations; each file runs
    in its own transaction together with its bookkeeping row.

    Returns:
        Names of the files applied by this call

    Raises:
        RuntimeError: If a migration fails (its transaction is rolled back)
    """
    sql_files = sorted(migrations_dir.glob("*.sql"))
    if not sql_files:
        logger.warning("No migrations found in %s", migrations_dir)
        return []

    applied: list[str] = []
    with pool.connection() as conn:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS schema_migrations (
                filename   TEXT PRIMARY KEY,
                applied_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            )
            """
        )
        conn.commit()

        for sql_file in sql_files:
            try:
                with conn.transaction():
                    conn.execute("SELECT pg_advisory_xact_lock(%s)", (_MIGRATION_LOCK_ID,))
                    done = conn.execute(
                        "SELECT 1 FROM schema_migrations WHERE filename = %s", (sql_file.name,)
                    ).fetchone()
                    if done:
                        continue
                    conn.execute(sql_file.read_text())
                    conn.execute(
                        "INSERT INTO schema_migrations (filename) VALUES (%s)", (sql_file.name,)
                    )
            except psycopg.Error as e:
                logger.error("Migration %s failed: %s", sql_file.name, e)
                raise RuntimeError(f"Database migration failed: {sql_file.name}") from e
            applied.append(sql_file.name)
            logger.info("Applied migration %s", sql_file.name)

    return applied
