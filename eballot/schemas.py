"""
Pydantic schemas — request validation and response serialisation.

Organised by bounded context:
    1. Accounts   — registration, login, profile, voter administration
    2. Elections  — CRUD with embedded candidates
    3. Voting     — vote casting and per-voter vote status
    4. Results    — tallies and winners
    5. Common     — health, messages
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Literal
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, StringConstraints, ValidationInfo, field_validator

NonEmptyStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
PHONE_PATTERN = r"^\+?[1-9]\d{9,14}$"
MIN_AGE = 18
MAX_AGE = 120


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# ══════════════════════════════════════════════════════════════════════════════
# 1. ACCOUNTS
# ══════════════════════════════════════════════════════════════════════════════

class RegisterRequest(BaseModel):
    full_name: NonEmptyStr
    email: EmailStr
    voter_id: NonEmptyStr
    password: str = Field(min_length=8)
    age: int = Field(ge=MIN_AGE, le=MAX_AGE)
    phone: str | None = Field(default=None, pattern=PHONE_PATTERN)

    @field_validator("email")
    @classmethod
    def lower_email(cls, value: str) -> str:
        return value.lower()


class LoginRequest(BaseModel):
    voter_id: NonEmptyStr
    password: str


class ProfileUpdate(BaseModel):
    full_name: NonEmptyStr | None = None
    email: EmailStr | None = None
    voter_id: NonEmptyStr | None = None
    age: int | None = Field(default=None, ge=MIN_AGE, le=MAX_AGE)
    phone: str | None = Field(default=None, pattern=PHONE_PATTERN)

    @field_validator("email")
    @classmethod
    def lower_email(cls, value: str | None) -> str | None:
        return value.lower() if value else value


class UserOut(BaseModel):
    id: UUID
    full_name: str
    email: str
    voter_id: str
    age: int
    phone: str | None = None
    role: Literal["voter", "admin"]
    is_verified: bool
    is_active: bool
    created_at: datetime


class RegisterResponse(BaseModel):
    message: str
    user_id: UUID


class LoginResponse(BaseModel):
    token: str
    user: UserOut


class VoterStats(BaseModel):
    total: int
    age_18_to_60: int
    age_61_plus: int


class VoterListResponse(BaseModel):
    voters: list[UserOut]
    stats: VoterStats


# ══════════════════════════════════════════════════════════════════════════════
# 2. ELECTIONS
# ══════════════════════════════════════════════════════════════════════════════

class CandidateIn(BaseModel):
    id: UUID | None = None
    name: NonEmptyStr
    party: NonEmptyStr
    bio: NonEmptyStr


def _check_unique_candidate_ids(candidates: list[CandidateIn] | None) -> list[CandidateIn] | None:
    if not candidates:
        return candidates
    ids = [c.id for c in candidates if c.id is not None]
    if len(ids) != len(set(ids)):
        raise ValueError("Candidate ids must be unique within an election")
    return candidates


def _check_window(end_date: datetime | None, info: ValidationInfo) -> datetime | None:
    # start_date is absent from info.data when it failed its own validation.
    end_date = _as_utc(end_date)
    start_date = info.data.get("start_date")
    if end_date is not None and start_date is not None and end_date <= start_date:
        raise ValueError("End date must be after start date")
    return end_date


class ElectionCreate(BaseModel):
    title: NonEmptyStr
    description: NonEmptyStr
    start_date: datetime
    end_date: datetime
    candidates: list[CandidateIn] = Field(min_length=2)

    @field_validator("start_date")
    @classmethod
    def normalise_start(cls, value: datetime) -> datetime:
        return _as_utc(value)

    @field_validator("end_date")
    @classmethod
    def check_window(cls, value: datetime, info: ValidationInfo) -> datetime:
        return _check_window(value, info)

    @field_validator("candidates")
    @classmethod
    def check_candidates(cls, value: list[CandidateIn]) -> list[CandidateIn]:
        return _check_unique_candidate_ids(value)


class ElectionUpdate(BaseModel):
    """Partial update; omitted fields keep their stored values."""

    title: NonEmptyStr | None = None
    description: NonEmptyStr | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    candidates: Annotated[list[CandidateIn], Field(min_length=2)] | None = None

    @field_validator("start_date")
    @classmethod
    def normalise_start(cls, value: datetime | None) -> datetime | None:
        return _as_utc(value)

    @field_validator("end_date")
    @classmethod
    def check_window(cls, value: datetime | None, info: ValidationInfo) -> datetime | None:
        return _check_window(value, info)

    @field_validator("candidates")
    @classmethod
    def check_candidates(cls, value: list[CandidateIn] | None) -> list[CandidateIn] | None:
        return _check_unique_candidate_ids(value)


class CandidateOut(BaseModel):
    id: UUID
    name: str
    party: str
    bio: str


class CandidatePublic(BaseModel):
    id: UUID
    name: str
    party: str


class ElectionOut(BaseModel):
    id: UUID
    title: str
    description: str
    start_date: datetime
    end_date: datetime
    status: Literal["upcoming", "active", "completed"]
    candidates: list[CandidateOut]
    created_by: UUID
    created_at: datetime


class ElectionDeleted(BaseModel):
    message: str
    deleted_election_id: UUID
    deleted_elections_count: int
    deleted_votes_count: int


# ══════════════════════════════════════════════════════════════════════════════
# 3. VOTING
# ══════════════════════════════════════════════════════════════════════════════

class CastVoteRequest(BaseModel):
    # Kept as a string so malformed ids map to InvalidIdentifier, not a 422.
    candidate_id: str


class VoteResponse(BaseModel):
    message: str
    vote_id: UUID
    election_id: UUID
    candidate_id: UUID
    cast_at: datetime


class VoteStatus(BaseModel):
    has_voted: bool
    vote_id: UUID | None = None
    cast_at: datetime | None = None
    candidate: CandidatePublic | None = None


# ══════════════════════════════════════════════════════════════════════════════
# 4. RESULTS
# ══════════════════════════════════════════════════════════════════════════════

class CandidateResult(BaseModel):
    candidate: CandidateOut
    votes: int
    percentage: float


class ElectionResults(BaseModel):
    election_id: UUID
    title: str
    description: str
    total_votes: int
    results: list[CandidateResult]
    winners: list[CandidateOut]
    is_tie: bool
    end_date: datetime
    last_updated: datetime


# ══════════════════════════════════════════════════════════════════════════════
# 5. COMMON
# ══════════════════════════════════════════════════════════════════════════════

class HealthResponse(BaseModel):
    status: str
    service: str


class MessageResponse(BaseModel):
    message: str
