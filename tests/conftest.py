import asyncio
import os
from copy import deepcopy
from datetime import datetime, timedelta, timezone
from uuid import uuid4

# Must be set before eballot.config is imported.
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("ENVIRONMENT", "test")

import pytest
from fastapi.testclient import TestClient

from eballot.app import create_app
from eballot.errors import DuplicateKeyError
from eballot.security import create_access_token, hash_password


class MemoryRepository:
    """In-process stand-in for PostgresRepository with the same unique keys."""

    def __init__(self):
        self.users: dict = {}
        self.elections: dict = {}
        self.votes: dict = {}

    # ── Elections ────────────────────────────────────────────────────────────

    async def list_elections(self):
        rows = sorted(self.elections.values(), key=lambda e: e["start_date"], reverse=True)
        return deepcopy(rows)

    async def get_election(self, election_id):
        return deepcopy(self.elections.get(election_id))

    async def insert_election(self, election):
        self.elections[election["id"]] = deepcopy(election)
        return deepcopy(election)

    async def update_election(self, election_id, fields):
        if election_id not in self.elections:
            return None
        self.elections[election_id].update(deepcopy(fields))
        return deepcopy(self.elections[election_id])

    async def delete_election(self, election_id):
        vote_ids = [k for k, v in self.votes.items() if v["election_id"] == election_id]
        for k in vote_ids:
            del self.votes[k]
        deleted = 1 if self.elections.pop(election_id, None) is not None else 0
        return len(vote_ids), deleted

    # ── Votes ────────────────────────────────────────────────────────────────

    async def find_vote(self, election_id, user_id):
        for v in self.votes.values():
            if v["election_id"] == election_id and v["user_id"] == user_id:
                return deepcopy(v)
        return None

    async def insert_vote(self, vote):
        for v in self.votes.values():
            if v["election_id"] == vote["election_id"] and v["user_id"] == vote["user_id"]:
                raise DuplicateKeyError("votes_election_user_key")
        self.votes[vote["id"]] = deepcopy(vote)
        return deepcopy(vote)

    async def list_votes(self, election_id):
        return [deepcopy(v) for v in self.votes.values() if v["election_id"] == election_id]

    # ── Users ────────────────────────────────────────────────────────────────

    async def get_user(self, user_id):
        return deepcopy(self.users.get(user_id))

    async def find_user_by_voter_id(self, voter_id):
        for u in self.users.values():
            if u["voter_id"] == voter_id:
                return deepcopy(u)
        return None

    async def find_user_conflict(self, email, voter_id, exclude_id=None):
        for u in self.users.values():
            if u["id"] == exclude_id:
                continue
            if u["email"] == email or u["voter_id"] == voter_id:
                return deepcopy(u)
        return None

    def _check_unique(self, user_id, email, voter_id):
        for u in self.users.values():
            if u["id"] == user_id:
                continue
            if u["email"] == email:
                raise DuplicateKeyError("users_email_key")
            if u["voter_id"] == voter_id:
                raise DuplicateKeyError("users_voter_id_key")

    async def insert_user(self, user):
        self._check_unique(user["id"], user["email"], user["voter_id"])
        self.users[user["id"]] = deepcopy(user)
        return deepcopy(user)

    async def update_user(self, user_id, fields):
        if user_id not in self.users:
            return None
        merged = {**self.users[user_id], **fields}
        self._check_unique(user_id, merged["email"], merged["voter_id"])
        self.users[user_id] = merged
        return deepcopy(merged)

    def _voters(self, min_age, max_age):
        return [
            u for u in self.users.values()
            if u["role"] == "voter" and u["is_active"]
            and (min_age is None or u["age"] >= min_age)
            and (max_age is None or u["age"] <= max_age)
        ]

    async def list_voters(self, min_age=None, max_age=None):
        rows = sorted(self._voters(min_age, max_age), key=lambda u: u["created_at"], reverse=True)
        return deepcopy(rows)

    async def count_voters(self, min_age=None, max_age=None):
        return len(self._voters(min_age, max_age))


def run(coro):
    return asyncio.run(coro)


def now_utc():
    return datetime.now(timezone.utc)


@pytest.fixture
def repo():
    return MemoryRepository()


@pytest.fixture
def client(repo):
    with TestClient(create_app(repository=repo)) as c:
        yield c


@pytest.fixture
def make_user(repo):
    def _make(role="voter", age=30, password="password123", is_active=True, is_verified=True, **overrides):
        suffix = uuid4().hex[:8]
        user = {
            "id": uuid4(),
            "full_name": f"User {suffix}",
            "email": f"user-{suffix}@ballot.org",
            "voter_id": f"VOT{suffix}",
            "password_hash": hash_password(password),
            "age": age,
            "phone": None,
            "role": role,
            "is_verified": is_verified,
            "is_active": is_active,
            "created_at": now_utc(),
        }
        user.update(overrides)
        return run(repo.insert_user(user))
    return _make


@pytest.fixture
def make_election(repo, make_user):
    """Insert an election whose window is given as offsets from now."""
    def _make(start=timedelta(days=1), end=timedelta(days=2), names=("Alice", "Bob"),
              stored_status="upcoming", creator=None):
        creator = creator or make_user(role="admin")
        current = now_utc()
        election = {
            "id": uuid4(),
            "title": "Board Election",
            "description": "Annual board election",
            "start_date": current + start,
            "end_date": current + end,
            "status": stored_status,
            "candidates": [
                {"id": str(uuid4()), "name": n, "party": f"{n} Party", "bio": f"About {n}"}
                for n in names
            ],
            "created_by": creator["id"],
            "created_at": current,
        }
        return run(repo.insert_election(election))
    return _make


@pytest.fixture
def auth_header():
    def _header(user):
        return {"Authorization": f"Bearer {create_access_token(user)}"}
    return _header


@pytest.fixture
def admin(make_user):
    return make_user(role="admin", age=40)


@pytest.fixture
def voter(make_user):
    return make_user(role="voter")
