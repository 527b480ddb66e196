"""
Seed the database with admin accounts, sample voters and sample elections.

Usage:
    python -m eballot.seed [--reset]

Sample elections are placed relative to the current time so that one is
upcoming, one active and one completed whenever the seed runs.
"""
import asyncio
import os
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import click

from eballot.database import Database
from eballot.elections import effective_status
from eballot.repository import PostgresRepository
from eballot.security import hash_password

ADMIN_USERS = [
    {
        "full_name": "Admin User",
        "email": os.getenv("ADMIN_EMAIL", "admin@eballot.org"),
        "voter_id": "ADMIN001",
        "password": os.getenv("ADMIN_PASSWORD", "admin123"),
        "age": 35,
    },
    {
        "full_name": "Second Admin",
        "email": "admin2@eballot.org",
        "voter_id": "ADMIN002",
        "password": "admin456",
        "age": 30,
    },
]

SAMPLE_VOTERS = [
    {"full_name": "John Doe", "email": "john.doe@eballot.org", "voter_id": "VOT123456",
     "password": "password123", "age": 25},
    {"full_name": "Jane Smith", "email": "jane.smith@eballot.org", "voter_id": "VOT654321",
     "password": "password123", "age": 45},
    {"full_name": "Robert Wilson", "email": "robert.wilson@eballot.org", "voter_id": "VOT789012",
     "password": "password123", "age": 65},
    {"full_name": "Maria Garcia", "email": "maria.garcia@eballot.org", "voter_id": "VOT345678",
     "password": "password123", "age": 32},
]

# (title, description, start offset, duration, candidates as (name, party, bio))
SAMPLE_ELECTIONS = [
    (
        "City Mayor Election",
        "Vote for the next mayor of your city.",
        timedelta(days=7), timedelta(days=2),
        [
            ("Jane Smith", "Progressive Party", "Current city council member with 8 years of experience."),
            ("Michael Johnson", "Civic Alliance", "Business owner and community advocate."),
            ("Patricia Williams", "Unity Coalition", "Former school principal and nonprofit director."),
        ],
    ),
    (
        "Community Board Election",
        "Select representatives for the community board.",
        timedelta(days=-1), timedelta(days=3),
        [
            ("Robert Chen", "Independent", "Local business owner and longtime resident."),
            ("Sarah Johnson", "Community First", "Social worker with experience in community organizing."),
            ("David Patel", "Neighborhood Alliance", "Urban planner and volunteer."),
        ],
    ),
    (
        "School District Budget Vote",
        "Vote on the proposed school district budget.",
        timedelta(days=-10), timedelta(days=9),
        [
            ("Approve Budget", "Budget Plan A", "Approve with 3% funding increase and new tech initiatives."),
            ("Reject Budget", "Budget Plan B", "Reject and revise with current spending levels."),
        ],
    ),
]


async def _reset() -> None:
    async with Database.transaction() as conn:
        await conn.execute("TRUNCATE votes, elections, users")


async def _seed_users(repo, users: list[dict], role: str, now: datetime) -> list[dict]:
    seeded = []
    for u in users:
        existing = await repo.find_user_conflict(u["email"], u["voter_id"])
        if existing is not None:
            click.echo(f"  skip {u['voter_id']} (already exists)")
            seeded.append(existing)
            continue
        seeded.append(await repo.insert_user({
            "id": uuid4(),
            "full_name": u["full_name"],
            "email": u["email"],
            "voter_id": u["voter_id"],
            "password_hash": hash_password(u["password"]),
            "age": u["age"],
            "phone": None,
            "role": role,
            "is_verified": True,
            "is_active": True,
            "created_at": now,
        }))
    return seeded


async def seed(reset: bool) -> dict:
    now = datetime.now(timezone.utc)
    await Database.get_pool()
    try:
        await Database.init_schema()
        if reset:
            await _reset()
            click.echo("Cleared existing data")

        repo = PostgresRepository()
        admins = await _seed_users(repo, ADMIN_USERS, "admin", now)
        click.echo("Created admin users")
        await _seed_users(repo, SAMPLE_VOTERS, "voter", now)
        click.echo("Created sample voters")

        existing_titles = {e["title"] for e in await repo.list_elections()}
        for title, description, offset, duration, candidates in SAMPLE_ELECTIONS:
            if title in existing_titles:
                click.echo(f"  skip '{title}' (already exists)")
                continue
            start = now + offset
            end = start + duration
            await repo.insert_election({
                "id": uuid4(),
                "title": title,
                "description": description,
                "start_date": start,
                "end_date": end,
                "status": effective_status(start, end, now),
                "candidates": [
                    {"id": str(uuid4()), "name": n, "party": p, "bio": b} for n, p, b in candidates
                ],
                "created_by": admins[0]["id"],
                "created_at": now,
            })
        click.echo("Created sample elections")

        return {
            "voters_61_plus": await repo.count_voters(61, None),
            "admins": len(admins),
            "elections": len(await repo.list_elections()),
        }
    finally:
        await Database.close()


@click.command()
@click.option("--reset", is_flag=True, help="Delete all users, elections and votes first")
def main(reset):
    """Populate the E-Ballot database with sample data."""
    stats = asyncio.run(seed(reset))
    click.echo("\nDatabase Summary:")
    click.echo("----------------")
    click.echo(f"Voters (61+): {stats['voters_61_plus']}")
    click.echo(f"Admins: {stats['admins']}")
    click.echo(f"Elections: {stats['elections']}")


if __name__ == "__main__":
    main()
