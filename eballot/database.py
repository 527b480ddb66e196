"""
Async database utilities.
Uses asyncpg for non-blocking PostgreSQL access with connection pooling.
"""
import json
import logging
from contextlib import asynccontextmanager

import asyncpg

from eballot import config

logger = logging.getLogger(__name__)


# Candidates are embedded in the election row as a JSONB array.
# The (election_id, user_id) key on votes is what guarantees one vote
# per voter per election, not the pre-check in the voting module.
SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id            UUID PRIMARY KEY,
    full_name     TEXT NOT NULL,
    email         TEXT NOT NULL,
    voter_id      TEXT NOT NULL,
    password_hash TEXT NOT NULL,
    age           INTEGER NOT NULL CHECK (age BETWEEN 18 AND 120),
    phone         TEXT NULL,
    role          TEXT NOT NULL DEFAULT 'voter' CHECK (role IN ('voter', 'admin')),
    is_verified   BOOLEAN NOT NULL DEFAULT FALSE,
    is_active     BOOLEAN NOT NULL DEFAULT TRUE,
    created_at    TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
    CONSTRAINT users_email_key UNIQUE (email),
    CONSTRAINT users_voter_id_key UNIQUE (voter_id)
);

CREATE TABLE IF NOT EXISTS elections (
    id          UUID PRIMARY KEY,
    title       TEXT NOT NULL,
    description TEXT NOT NULL,
    start_date  TIMESTAMPTZ NOT NULL,
    end_date    TIMESTAMPTZ NOT NULL,
    status      TEXT NOT NULL CHECK (status IN ('upcoming', 'active', 'completed')),
    candidates  JSONB NOT NULL DEFAULT '[]'::jsonb,
    created_by  UUID NOT NULL REFERENCES users (id),
    created_at  TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
    CHECK (end_date > start_date)
);

CREATE INDEX IF NOT EXISTS elections_start_date_idx ON elections (start_date DESC);

CREATE TABLE IF NOT EXISTS votes (
    id           UUID PRIMARY KEY,
    election_id  UUID NOT NULL REFERENCES elections (id),
    user_id      UUID NOT NULL REFERENCES users (id),
    candidate_id UUID NOT NULL,
    cast_at      TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
    audit_hash   TEXT NULL,
    CONSTRAINT votes_election_user_key UNIQUE (election_id, user_id)
);
"""


async def _init_connection(conn: asyncpg.Connection) -> None:
    await conn.set_type_codec(
        "jsonb", encoder=json.dumps, decoder=json.loads, schema="pg_catalog",
    )


class Database:
    """Async database connection pool manager."""

    _pool: asyncpg.Pool | None = None

    @classmethod
    async def get_pool(cls) -> asyncpg.Pool:
        """Return the existing pool or create one lazily."""
        if cls._pool is None:
            cls._pool = await asyncpg.create_pool(
                host=config.DB_HOST,
                port=config.DB_PORT,
                database=config.DB_NAME,
                user=config.DB_USER,
                password=config.DB_PASSWORD,
                min_size=config.DB_POOL_MIN,
                max_size=config.DB_POOL_MAX,
                init=_init_connection,
            )
            logger.info(f"Database pool opened ({config.DB_HOST}:{config.DB_PORT}/{config.DB_NAME})")
        return cls._pool

    @classmethod
    async def close(cls) -> None:
        """Gracefully close the pool (called on app shutdown)."""
        if cls._pool is not None:
            await cls._pool.close()
            cls._pool = None

    @classmethod
    @asynccontextmanager
    async def connection(cls):
        """Acquire a connection from the pool (auto-released on exit)."""
        pool = await cls.get_pool()
        async with pool.acquire() as conn:
            yield conn

    @classmethod
    @asynccontextmanager
    async def transaction(cls):
        """Acquire a connection and open a transaction (auto-committed/rolled-back)."""
        pool = await cls.get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                yield conn

    @classmethod
    async def init_schema(cls) -> None:
        """Create tables and indexes if they do not exist yet. Idempotent."""
        async with cls.connection() as conn:
            await conn.execute(SCHEMA)
