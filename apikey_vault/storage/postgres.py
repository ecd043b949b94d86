"""
PostgreSQL storage backend on an asyncpg connection pool.

Uniqueness and ownership live in the schema: named unique constraints on
email, credential lookup and (identity, provider), and a cascading foreign
key from secrets to identities. Every public method issues one statement.

Security Note:
    Never log ciphertext, hashes or lookup values. Only log ids, providers
    and constraint names.
"""
import re
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Optional

import asyncpg

from ..exceptions import DuplicateKeyError, IdentityNotFound, StoreError
from ..models import Identity, SecretRecord
from ..providers import Provider
from .abstract import StorageBackend

logger = logging.getLogger("apikey_vault")

_SCHEMA_NAME = re.compile(r"^[a-z_][a-z0-9_]*$")

_CONSTRAINT_FIELDS = {
    "identities_pkey": "identity_id",
    "identities_email_key": "email",
    "identities_credential_lookup_key": "credential_lookup",
    "secrets_pkey": "secret_id",
    "secrets_identity_provider_key": "identity_provider",
}

# ---------------------------------------------------------------------------
# SQL statements ({schema} is substituted once, at construction)
# ---------------------------------------------------------------------------

_CREATE_SCHEMA = """
CREATE SCHEMA IF NOT EXISTS {schema};

CREATE TABLE IF NOT EXISTS {schema}.identities (
    identity_id TEXT NOT NULL,
    email TEXT NOT NULL,
    credential_hash BYTEA NOT NULL,
    credential_lookup TEXT NOT NULL,
    credential_ciphertext BYTEA,
    created_at TIMESTAMPTZ NOT NULL,
    updated_at TIMESTAMPTZ NOT NULL,
    CONSTRAINT identities_pkey PRIMARY KEY (identity_id),
    CONSTRAINT identities_email_key UNIQUE (email),
    CONSTRAINT identities_credential_lookup_key UNIQUE (credential_lookup)
);

CREATE TABLE IF NOT EXISTS {schema}.secrets (
    secret_id TEXT NOT NULL,
    identity_id TEXT NOT NULL,
    provider TEXT NOT NULL,
    ciphertext BYTEA NOT NULL,
    last_used TIMESTAMPTZ,
    created_at TIMESTAMPTZ NOT NULL,
    updated_at TIMESTAMPTZ NOT NULL,
    CONSTRAINT secrets_pkey PRIMARY KEY (secret_id),
    CONSTRAINT secrets_identity_provider_key UNIQUE (identity_id, provider),
    CONSTRAINT secrets_identity_fkey FOREIGN KEY (identity_id)
        REFERENCES {schema}.identities (identity_id) ON DELETE CASCADE
);
"""

_IDENTITY_COLUMNS = (
    "identity_id, email, credential_hash, credential_lookup, "
    "credential_ciphertext, created_at, updated_at"
)

_SECRET_COLUMNS = (
    "secret_id, identity_id, provider, ciphertext, last_used, "
    "created_at, updated_at"
)

_INSERT_IDENTITY = f"""
INSERT INTO {{schema}}.identities ({_IDENTITY_COLUMNS})
VALUES ($1, $2, $3, $4, $5, $6, $7)
"""

_SELECT_IDENTITY_BY = f"""
SELECT {_IDENTITY_COLUMNS}
FROM {{schema}}.identities
WHERE {{column}} = $1
"""

_REPLACE_CREDENTIAL = f"""
UPDATE {{schema}}.identities
SET credential_hash = $2, credential_lookup = $3,
    credential_ciphertext = $4, updated_at = $5
WHERE identity_id = $1
RETURNING {_IDENTITY_COLUMNS}
"""

_DELETE_IDENTITY = """
DELETE FROM {schema}.identities
WHERE identity_id = $1
"""

_INSERT_SECRET = f"""
INSERT INTO {{schema}}.secrets ({_SECRET_COLUMNS})
VALUES ($1, $2, $3, $4, $5, $6, $7)
"""

_SELECT_SECRET = f"""
SELECT {_SECRET_COLUMNS}
FROM {{schema}}.secrets
WHERE identity_id = $1 AND provider = $2
"""

_TOUCH_SECRET = """
UPDATE {schema}.secrets
SET last_used = $3
WHERE identity_id = $1 AND provider = $2
"""

_UPDATE_SECRET = f"""
UPDATE {{schema}}.secrets
SET ciphertext = $3, updated_at = $4
WHERE identity_id = $1 AND provider = $2
RETURNING {_SECRET_COLUMNS}
"""

_DELETE_SECRET = """
DELETE FROM {schema}.secrets
WHERE identity_id = $1 AND provider = $2
"""

_SELECT_ALL_SECRETS = f"""
SELECT {_SECRET_COLUMNS}
FROM {{schema}}.secrets
WHERE identity_id = $1
ORDER BY provider
"""


def _affected(status: str) -> int:
    """Row count from an asyncpg command status such as ``'DELETE 1'``."""
    try:
        return int(status.rsplit(" ", 1)[-1])
    except (AttributeError, ValueError):
        return 0


def _duplicate(err: asyncpg.UniqueViolationError) -> DuplicateKeyError:
    constraint = getattr(err, "constraint_name", None) or ""
    field = _CONSTRAINT_FIELDS.get(constraint, constraint or "unknown")
    logger.debug("Unique constraint %s violated", constraint)
    return DuplicateKeyError(field)


class PostgresBackend(StorageBackend):
    """Vault storage in two PostgreSQL tables.

    Args:
        pool: asyncpg-compatible connection pool.
        schema: Schema holding the ``identities`` and ``secrets`` tables.
    """

    def __init__(self, pool: Any, schema: str = "vault"):
        if not _SCHEMA_NAME.match(schema):
            raise ValueError(f"Invalid schema name: {schema!r}")
        self._db = pool
        self._schema = schema

    def __repr__(self) -> str:
        return f"<PostgresBackend schema={self._schema}>"

    def _sql(self, statement: str, **kwargs) -> str:
        return statement.format(schema=self._schema, **kwargs)

    @asynccontextmanager
    async def _connection(self) -> AsyncIterator[Any]:
        """Pooled connection; driver and socket failures surface as StoreError."""
        try:
            async with self._db.acquire() as conn:
                yield conn
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as err:
            logger.error("Vault store operation failed: %s", type(err).__name__)
            raise StoreError("Vault database operation failed") from err

    async def init_schema(self) -> None:
        """Create the schema and tables if they do not exist."""
        async with self._connection() as conn:
            await conn.execute(self._sql(_CREATE_SCHEMA))
        logger.info("Vault schema %s ready", self._schema)

    async def close(self) -> None:
        await self._db.close()

    # ------------------------------------------------------------------
    # Identities
    # ------------------------------------------------------------------

    async def insert_identity(self, identity: Identity) -> None:
        async with self._connection() as conn:
            try:
                await conn.execute(
                    self._sql(_INSERT_IDENTITY),
                    identity.identity_id,
                    identity.email,
                    identity.credential_hash,
                    identity.credential_lookup,
                    identity.credential_ciphertext,
                    identity.created_at,
                    identity.updated_at,
                )
            except asyncpg.UniqueViolationError as err:
                raise _duplicate(err) from err

    async def _identity_by(self, column: str, value: str) -> Optional[Identity]:
        async with self._connection() as conn:
            row = await conn.fetchrow(
                self._sql(_SELECT_IDENTITY_BY, column=column), value,
            )
        return Identity(**dict(row)) if row else None

    async def get_identity(self, identity_id: str) -> Optional[Identity]:
        return await self._identity_by("identity_id", identity_id)

    async def get_identity_by_email(self, email: str) -> Optional[Identity]:
        return await self._identity_by("email", email)

    async def get_identity_by_lookup(self, lookup: str) -> Optional[Identity]:
        return await self._identity_by("credential_lookup", lookup)

    async def replace_credential(
        self,
        identity_id: str,
        credential_hash: bytes,
        credential_lookup: str,
        credential_ciphertext: Optional[bytes],
        updated_at: datetime,
    ) -> Optional[Identity]:
        async with self._connection() as conn:
            try:
                row = await conn.fetchrow(
                    self._sql(_REPLACE_CREDENTIAL),
                    identity_id,
                    credential_hash,
                    credential_lookup,
                    credential_ciphertext,
                    updated_at,
                )
            except asyncpg.UniqueViolationError as err:
                raise _duplicate(err) from err
        return Identity(**dict(row)) if row else None

    async def delete_identity(self, identity_id: str) -> bool:
        async with self._connection() as conn:
            status = await conn.execute(self._sql(_DELETE_IDENTITY), identity_id)
        return _affected(status) > 0

    # ------------------------------------------------------------------
    # Secrets
    # ------------------------------------------------------------------

    async def insert_secret(self, record: SecretRecord) -> None:
        async with self._connection() as conn:
            try:
                await conn.execute(
                    self._sql(_INSERT_SECRET),
                    record.secret_id,
                    record.identity_id,
                    record.provider.value,
                    record.ciphertext,
                    record.last_used,
                    record.created_at,
                    record.updated_at,
                )
            except asyncpg.UniqueViolationError as err:
                raise _duplicate(err) from err
            except asyncpg.ForeignKeyViolationError as err:
                raise IdentityNotFound(record.identity_id) from err

    async def get_secret(
        self, identity_id: str, provider: Provider
    ) -> Optional[SecretRecord]:
        async with self._connection() as conn:
            row = await conn.fetchrow(
                self._sql(_SELECT_SECRET), identity_id, provider.value,
            )
        return SecretRecord(**dict(row)) if row else None

    async def touch_secret(
        self, identity_id: str, provider: Provider, when: datetime
    ) -> bool:
        async with self._connection() as conn:
            status = await conn.execute(
                self._sql(_TOUCH_SECRET), identity_id, provider.value, when,
            )
        return _affected(status) > 0

    async def update_secret(
        self,
        identity_id: str,
        provider: Provider,
        ciphertext: bytes,
        updated_at: datetime,
    ) -> Optional[SecretRecord]:
        async with self._connection() as conn:
            row = await conn.fetchrow(
                self._sql(_UPDATE_SECRET),
                identity_id, provider.value, ciphertext, updated_at,
            )
        return SecretRecord(**dict(row)) if row else None

    async def delete_secret(self, identity_id: str, provider: Provider) -> bool:
        async with self._connection() as conn:
            status = await conn.execute(
                self._sql(_DELETE_SECRET), identity_id, provider.value,
            )
        return _affected(status) > 0

    async def list_secrets(self, identity_id: str) -> list[SecretRecord]:
        async with self._connection() as conn:
            rows = await conn.fetch(self._sql(_SELECT_ALL_SECRETS), identity_id)
        return [SecretRecord(**dict(row)) for row in rows]


async def connect(dsn: str, schema: str = "vault", **pool_kwargs) -> PostgresBackend:
    """Create an asyncpg pool for ``dsn`` and wrap it in a PostgresBackend."""
    try:
        pool = await asyncpg.create_pool(dsn, **pool_kwargs)
    except (OSError, asyncpg.PostgresError) as err:
        raise StoreError("Cannot connect to the vault database") from err
    return PostgresBackend(pool, schema=schema)
