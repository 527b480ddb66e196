"""
PostgreSQL persistence for users, elections and votes.

All SQL lives here. Rows come back as plain dicts; unique-key violations
are re-raised as ``DuplicateKeyError`` so callers never touch asyncpg
exceptions directly.
"""
import logging
from uuid import UUID

import asyncpg

from eballot.database import Database
from eballot.errors import DuplicateKeyError

logger = logging.getLogger(__name__)

ELECTION_COLUMNS = (
    "id, title, description, start_date, end_date, status, candidates, created_by, created_at"
)
USER_COLUMNS = (
    "id, full_name, email, voter_id, password_hash, age, phone, role, "
    "is_verified, is_active, created_at"
)
VOTE_COLUMNS = "id, election_id, user_id, candidate_id, cast_at, audit_hash"

ELECTION_UPDATABLE = {"title", "description", "start_date", "end_date", "status", "candidates"}
USER_UPDATABLE = {"full_name", "email", "voter_id", "age", "phone", "is_active", "is_verified"}


def _row(record) -> dict | None:
    return dict(record) if record is not None else None


def _affected(status: str) -> int:
    """Row count from an asyncpg command tag such as ``DELETE 3``."""
    return int(status.split()[-1])


def _age_filter(min_age: int | None, max_age: int | None, start: int = 1) -> tuple[str, list]:
    clauses, args = [], []
    if min_age is not None:
        args.append(min_age)
        clauses.append(f"age >= ${start + len(args) - 1}")
    if max_age is not None:
        args.append(max_age)
        clauses.append(f"age <= ${start + len(args) - 1}")
    sql = "".join(f" AND {c}" for c in clauses)
    return sql, args


def _set_clause(fields: dict, allowed: set[str]) -> tuple[str, list]:
    unknown = set(fields) - allowed
    if unknown:
        raise ValueError(f"Cannot update column(s): {', '.join(sorted(unknown))}")
    names = list(fields)
    sql = ", ".join(f"{name} = ${i + 2}" for i, name in enumerate(names))
    return sql, [fields[n] for n in names]


class PostgresRepository:
    """Repository backed by the shared asyncpg pool."""

    # ── Elections ────────────────────────────────────────────────────────────

    async def list_elections(self) -> list[dict]:
        async with Database.connection() as conn:
            rows = await conn.fetch(
                f"SELECT {ELECTION_COLUMNS} FROM elections ORDER BY start_date DESC"
            )
        return [dict(r) for r in rows]

    async def get_election(self, election_id: UUID) -> dict | None:
        async with Database.connection() as conn:
            row = await conn.fetchrow(
                f"SELECT {ELECTION_COLUMNS} FROM elections WHERE id = $1", election_id,
            )
        return _row(row)

    async def insert_election(self, election: dict) -> dict:
        async with Database.transaction() as conn:
            row = await conn.fetchrow(
                f"""
                INSERT INTO elections
                    (id, title, description, start_date, end_date, status,
                     candidates, created_by, created_at)
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
                RETURNING {ELECTION_COLUMNS}
                """,
                election["id"], election["title"], election["description"],
                election["start_date"], election["end_date"], election["status"],
                election["candidates"], election["created_by"], election["created_at"],
            )
        return dict(row)

    async def update_election(self, election_id: UUID, fields: dict) -> dict | None:
        set_sql, args = _set_clause(fields, ELECTION_UPDATABLE)
        async with Database.transaction() as conn:
            row = await conn.fetchrow(
                f"UPDATE elections SET {set_sql} WHERE id = $1 RETURNING {ELECTION_COLUMNS}",
                election_id, *args,
            )
        return _row(row)

    async def delete_election(self, election_id: UUID) -> tuple[int, int]:
        """Delete an election and its votes atomically.

        Returns ``(votes_deleted, elections_deleted)``.
        """
        async with Database.transaction() as conn:
            votes = await conn.execute("DELETE FROM votes WHERE election_id = $1", election_id)
            elections = await conn.execute("DELETE FROM elections WHERE id = $1", election_id)
        return _affected(votes), _affected(elections)

    # ── Votes ────────────────────────────────────────────────────────────────

    async def find_vote(self, election_id: UUID, user_id: UUID) -> dict | None:
        async with Database.connection() as conn:
            row = await conn.fetchrow(
                f"SELECT {VOTE_COLUMNS} FROM votes WHERE election_id = $1 AND user_id = $2",
                election_id, user_id,
            )
        return _row(row)

    async def insert_vote(self, vote: dict) -> dict:
        try:
            async with Database.transaction() as conn:
                row = await conn.fetchrow(
                    f"""
                    INSERT INTO votes (id, election_id, user_id, candidate_id, cast_at, audit_hash)
                    VALUES ($1, $2, $3, $4, $5, $6)
                    RETURNING {VOTE_COLUMNS}
                    """,
                    vote["id"], vote["election_id"], vote["user_id"],
                    vote["candidate_id"], vote["cast_at"], vote.get("audit_hash"),
                )
        except asyncpg.UniqueViolationError as e:
            raise DuplicateKeyError(e.constraint_name) from e
        return dict(row)

    async def list_votes(self, election_id: UUID) -> list[dict]:
        async with Database.connection() as conn:
            rows = await conn.fetch(
                f"SELECT {VOTE_COLUMNS} FROM votes WHERE election_id = $1", election_id,
            )
        return [dict(r) for r in rows]

    # ── Users ────────────────────────────────────────────────────────────────

    async def get_user(self, user_id: UUID) -> dict | None:
        async with Database.connection() as conn:
            row = await conn.fetchrow(f"SELECT {USER_COLUMNS} FROM users WHERE id = $1", user_id)
        return _row(row)

    async def find_user_by_voter_id(self, voter_id: str) -> dict | None:
        async with Database.connection() as conn:
            row = await conn.fetchrow(
                f"SELECT {USER_COLUMNS} FROM users WHERE voter_id = $1", voter_id,
            )
        return _row(row)

    async def find_user_conflict(
        self, email: str | None, voter_id: str | None, exclude_id: UUID | None = None,
    ) -> dict | None:
        """Any user other than ``exclude_id`` holding the email or the voter id."""
        async with Database.connection() as conn:
            row = await conn.fetchrow(
                f"""
                SELECT {USER_COLUMNS} FROM users
                WHERE (email = $1 OR voter_id = $2)
                  AND ($3::uuid IS NULL OR id <> $3)
                LIMIT 1
                """,
                email, voter_id, exclude_id,
            )
        return _row(row)

    async def insert_user(self, user: dict) -> dict:
        try:
            async with Database.transaction() as conn:
                row = await conn.fetchrow(
                    f"""
                    INSERT INTO users
                        (id, full_name, email, voter_id, password_hash, age, phone,
                         role, is_verified, is_active, created_at)
                    VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11)
                    RETURNING {USER_COLUMNS}
                    """,
                    user["id"], user["full_name"], user["email"], user["voter_id"],
                    user["password_hash"], user["age"], user.get("phone"),
                    user["role"], user["is_verified"], user["is_active"], user["created_at"],
                )
        except asyncpg.UniqueViolationError as e:
            raise DuplicateKeyError(e.constraint_name) from e
        return dict(row)

    async def update_user(self, user_id: UUID, fields: dict) -> dict | None:
        set_sql, args = _set_clause(fields, USER_UPDATABLE)
        try:
            async with Database.transaction() as conn:
                row = await conn.fetchrow(
                    f"UPDATE users SET {set_sql} WHERE id = $1 RETURNING {USER_COLUMNS}",
                    user_id, *args,
                )
        except asyncpg.UniqueViolationError as e:
            raise DuplicateKeyError(e.constraint_name) from e
        return _row(row)

    async def list_voters(self, min_age: int | None = None, max_age: int | None = None) -> list[dict]:
        age_sql, args = _age_filter(min_age, max_age)
        async with Database.connection() as conn:
            rows = await conn.fetch(
                f"""
                SELECT {USER_COLUMNS} FROM users
                WHERE role = 'voter' AND is_active{age_sql}
                ORDER BY created_at DESC
                """,
                *args,
            )
        return [dict(r) for r in rows]

    async def count_voters(self, min_age: int | None = None, max_age: int | None = None) -> int:
        age_sql, args = _age_filter(min_age, max_age)
        async with Database.connection() as conn:
            return await conn.fetchval(
                f"SELECT COUNT(*) FROM users WHERE role = 'voter' AND is_active{age_sql}",
                *args,
            )
