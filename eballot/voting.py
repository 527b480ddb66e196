"""
Voting ledger — one vote per (election, voter), never modified once cast.

The pre-check for an existing vote gives a friendly error in the common
case; the unique key on ``votes (election_id, user_id)`` is what actually
enforces the rule when two requests race past the pre-check.
"""
import logging
from datetime import datetime
from uuid import UUID, uuid4

from fastapi import APIRouter, Depends, Request

from eballot.deps import Principal, get_current_user, get_repository
from eballot.elections import ACTIVE, effective_status, find_candidate, load_election, utcnow
from eballot.errors import AlreadyVoted, DuplicateKeyError, InvalidCandidate, InvalidState, parse_id
from eballot.schemas import CastVoteRequest, VoteResponse, VoteStatus
from eballot.security import compute_audit_hash

logger = logging.getLogger(__name__)


async def cast_vote(
    repo,
    election_id,
    candidate_id,
    voter: UUID,
    audit_hash: str | None = None,
    now: datetime | None = None,
) -> dict:
    now = now or utcnow()
    eid = parse_id(election_id, "election ID")
    cid = parse_id(candidate_id, "candidate ID")

    election = await load_election(repo, eid)

    status = effective_status(election["start_date"], election["end_date"], now)
    if status != ACTIVE:
        logger.warning(f"Vote rejected: election {eid} is {status} (voter {voter})")
        raise InvalidState(
            "This election is not currently active",
            status=status, start_date=election["start_date"], end_date=election["end_date"],
        )

    if find_candidate(election, cid) is None:
        logger.warning(f"Vote rejected: candidate {cid} not in election {eid} (voter {voter})")
        raise InvalidCandidate()

    if await repo.find_vote(eid, voter) is not None:
        raise AlreadyVoted()

    vote = {
        "id": uuid4(),
        "election_id": eid,
        "user_id": voter,
        "candidate_id": cid,
        "cast_at": now,
        "audit_hash": audit_hash,
    }
    try:
        created = await repo.insert_vote(vote)
    except DuplicateKeyError:
        # A concurrent request for the same voter won the insert.
        logger.warning(f"Duplicate vote blocked by unique key: election {eid}, voter {voter}")
        raise AlreadyVoted()

    logger.info(f"Vote recorded: election {eid}, voter {voter}")
    return {
        "message": "Vote recorded successfully",
        "vote_id": created["id"],
        "election_id": created["election_id"],
        "candidate_id": created["candidate_id"],
        "cast_at": created["cast_at"],
    }


async def get_vote_status(repo, election_id, voter: UUID) -> dict:
    """Whether ``voter`` has voted, with the chosen candidate's public details."""
    election = await load_election(repo, election_id)
    vote = await repo.find_vote(election["id"], voter)
    if vote is None:
        return {"has_voted": False}

    status = {"has_voted": True, "vote_id": vote["id"], "cast_at": vote["cast_at"]}
    candidate = find_candidate(election, vote["candidate_id"])
    if candidate is not None:
        status["candidate"] = {
            "id": candidate["id"], "name": candidate["name"], "party": candidate["party"],
        }
    return status


# ── Routes ───────────────────────────────────────────────────────────────────

router = APIRouter(prefix="/elections", tags=["voting"])


@router.post("/{election_id}/vote", response_model=VoteResponse, status_code=201)
async def cast_vote_route(
    election_id: str,
    data: CastVoteRequest,
    request: Request,
    user: Principal = Depends(get_current_user),
    repo=Depends(get_repository),
):
    client_ip = request.client.host if request.client else None
    audit_hash = compute_audit_hash(client_ip, request.headers.get("user-agent"))
    return await cast_vote(repo, election_id, data.candidate_id, user.id, audit_hash=audit_hash)


@router.get("/{election_id}/vote-status", response_model=VoteStatus)
async def vote_status_route(
    election_id: str,
    user: Principal = Depends(get_current_user),
    repo=Depends(get_repository),
):
    return await get_vote_status(repo, election_id, user.id)
