"""
Election lifecycle — list, get, create, update and delete elections.

The stored ``status`` column is only a hint written at create/update time.
Every read substitutes the effective status derived from the current time
and the election window, and every state check (edit, delete, vote,
results) uses that derived value.
"""
import logging
from datetime import datetime, timezone
from uuid import UUID, uuid4

from fastapi import APIRouter, Depends

from eballot.deps import Principal, get_repository, require_admin
from eballot.errors import Conflict, NotFound, ValidationError, parse_id
from eballot.schemas import (
    CandidateIn, ElectionCreate, ElectionDeleted, ElectionOut, ElectionUpdate,
)

logger = logging.getLogger(__name__)

UPCOMING = "upcoming"
ACTIVE = "active"
COMPLETED = "completed"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def effective_status(start_date: datetime, end_date: datetime, now: datetime | None = None) -> str:
    """Upcoming before the window, completed after it, active inside it (bounds inclusive)."""
    now = now or utcnow()
    if now < start_date:
        return UPCOMING
    if now > end_date:
        return COMPLETED
    return ACTIVE


def with_effective_status(election: dict, now: datetime | None = None) -> dict:
    return {**election, "status": effective_status(election["start_date"], election["end_date"], now)}


def candidate_documents(candidates: list[CandidateIn]) -> list[dict]:
    """Embedded candidate documents; re-supplied ids are kept, missing ones generated."""
    return [
        {"id": str(c.id or uuid4()), "name": c.name, "party": c.party, "bio": c.bio}
        for c in candidates
    ]


def find_candidate(election: dict, candidate_id: UUID | str) -> dict | None:
    wanted = str(candidate_id)
    for candidate in election["candidates"]:
        if str(candidate["id"]) == wanted:
            return candidate
    return None


async def load_election(repo, election_id: UUID | str) -> dict:
    """Fetch the stored election or raise NotFound. Identifier is validated first."""
    eid = parse_id(election_id, "election ID")
    election = await repo.get_election(eid)
    if election is None:
        raise NotFound("Election not found", election_id=str(eid))
    return election


def ensure_editable(election: dict, action: str, now: datetime | None = None) -> None:
    """Only upcoming elections may be changed; raise Conflict otherwise."""
    status = effective_status(election["start_date"], election["end_date"], now)
    if status == ACTIVE:
        raise Conflict(
            f"Cannot {action} an active election",
            start_date=election["start_date"], end_date=election["end_date"],
        )
    if status == COMPLETED:
        raise Conflict(f"Cannot {action} a completed election", end_date=election["end_date"])


# ── Service operations ───────────────────────────────────────────────────────

async def list_elections(repo, now: datetime | None = None) -> list[dict]:
    now = now or utcnow()
    return [with_effective_status(e, now) for e in await repo.list_elections()]


async def get_election(repo, election_id, now: datetime | None = None) -> dict:
    return with_effective_status(await load_election(repo, election_id), now)


async def create_election(repo, data: ElectionCreate, creator_id: UUID, now: datetime | None = None) -> dict:
    now = now or utcnow()
    election = {
        "id": uuid4(),
        "title": data.title,
        "description": data.description,
        "start_date": data.start_date,
        "end_date": data.end_date,
        "status": effective_status(data.start_date, data.end_date, now),
        "candidates": candidate_documents(data.candidates),
        "created_by": creator_id,
        "created_at": now,
    }
    created = await repo.insert_election(election)
    logger.info(
        f"Election created: {created['id']} '{created['title']}' "
        f"({len(created['candidates'])} candidates, status {created['status']}) by {creator_id}"
    )
    return with_effective_status(created, now)


async def update_election(repo, election_id, data: ElectionUpdate, now: datetime | None = None) -> dict:
    now = now or utcnow()
    election = await load_election(repo, election_id)
    try:
        ensure_editable(election, "update", now)
    except Conflict:
        logger.warning(f"Rejected update of election {election['id']}: not upcoming")
        raise

    fields = data.model_dump(exclude_none=True, exclude={"candidates"})
    start = fields.get("start_date", election["start_date"])
    end = fields.get("end_date", election["end_date"])
    if end <= start:
        raise ValidationError([{"field": "end_date", "message": "End date must be after start date"}])
    if data.candidates is not None:
        fields["candidates"] = candidate_documents(data.candidates)
    if not fields:
        return with_effective_status(election, now)

    fields["status"] = effective_status(start, end, now)
    updated = await repo.update_election(election["id"], fields)
    if updated is None:
        raise NotFound("Election not found", election_id=str(election["id"]))
    logger.info(f"Election updated: {updated['id']} fields={sorted(fields)}")
    return with_effective_status(updated, now)


async def delete_election(repo, election_id, now: datetime | None = None) -> dict:
    now = now or utcnow()
    election = await load_election(repo, election_id)
    try:
        ensure_editable(election, "delete", now)
    except Conflict:
        logger.warning(f"Rejected delete of election {election['id']}: not upcoming")
        raise

    votes_deleted, elections_deleted = await repo.delete_election(election["id"])
    if elections_deleted == 0:
        raise NotFound("Election not found", election_id=str(election["id"]))
    logger.info(f"Election deleted: {election['id']} ({votes_deleted} votes removed)")
    return {
        "message": "Election deleted successfully",
        "deleted_election_id": election["id"],
        "deleted_elections_count": elections_deleted,
        "deleted_votes_count": votes_deleted,
    }


# ── Routes ───────────────────────────────────────────────────────────────────

router = APIRouter(prefix="/elections", tags=["elections"])


@router.get("", response_model=list[ElectionOut])
async def list_elections_route(repo=Depends(get_repository)):
    """All elections, newest start date first."""
    return await list_elections(repo)


@router.get("/{election_id}", response_model=ElectionOut)
async def get_election_route(election_id: str, repo=Depends(get_repository)):
    return await get_election(repo, election_id)


@router.post("", response_model=ElectionOut, status_code=201)
async def create_election_route(
    data: ElectionCreate,
    admin: Principal = Depends(require_admin),
    repo=Depends(get_repository),
):
    return await create_election(repo, data, admin.id)


@router.put("/{election_id}", response_model=ElectionOut)
async def update_election_route(
    election_id: str,
    data: ElectionUpdate,
    admin: Principal = Depends(require_admin),
    repo=Depends(get_repository),
):
    return await update_election(repo, election_id, data)


@router.delete("/{election_id}", response_model=ElectionDeleted)
async def delete_election_route(
    election_id: str,
    admin: Principal = Depends(require_admin),
    repo=Depends(get_repository),
):
    return await delete_election(repo, election_id)
