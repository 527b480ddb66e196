"""
Results — tally votes for a completed election.

Results are computed on demand from the vote rows on every call; nothing
is cached.
"""
import logging
from collections import Counter
from datetime import datetime

from fastapi import APIRouter, Depends

from eballot.deps import get_repository
from eballot.elections import COMPLETED, effective_status, load_election, utcnow
from eballot.errors import NotYetAvailable
from eballot.schemas import ElectionResults

logger = logging.getLogger(__name__)


def tally(candidates: list[dict], votes: list[dict]) -> dict:
    """Count votes per candidate and pick the winner(s).

    Every candidate gets a row, zero-vote ones included, with its unrounded
    share of the total. Rows are ordered by vote count, highest first; equal
    counts keep candidate list order.
    Winners are all candidates sharing the top count, so with no votes at
    all every candidate is a winner and the result is a tie.
    """
    counts = Counter(str(v["candidate_id"]) for v in votes)
    total = len(votes)

    rows = []
    for candidate in candidates:
        n = counts.get(str(candidate["id"]), 0)
        pct = (n / total * 100) if total > 0 else 0
        rows.append({
            "candidate": {
                "id": candidate["id"],
                "name": candidate["name"],
                "party": candidate["party"],
                "bio": candidate["bio"],
            },
            "votes": n,
            "percentage": pct,
        })
    rows.sort(key=lambda r: r["votes"], reverse=True)

    top = max((r["votes"] for r in rows), default=0)
    winners = [r["candidate"] for r in rows if r["votes"] == top]
    return {
        "total_votes": total,
        "results": rows,
        "winners": winners,
        "is_tie": len(winners) > 1,
    }


async def compute_results(repo, election_id, now: datetime | None = None) -> dict:
    now = now or utcnow()
    election = await load_election(repo, election_id)

    if effective_status(election["start_date"], election["end_date"], now) != COMPLETED:
        raise NotYetAvailable(end_date=election["end_date"])

    votes = await repo.list_votes(election["id"])
    outcome = tally(election["candidates"], votes)
    logger.info(
        f"Results computed for {election['id']}: {outcome['total_votes']} votes, "
        f"{len(outcome['winners'])} winner(s)"
    )
    return {
        "election_id": election["id"],
        "title": election["title"],
        "description": election["description"],
        **outcome,
        "end_date": election["end_date"],
        "last_updated": utcnow(),
    }


# ── Routes ───────────────────────────────────────────────────────────────────

router = APIRouter(prefix="/elections", tags=["results"])


@router.get("/{election_id}/results", response_model=ElectionResults)
async def results_route(election_id: str, repo=Depends(get_repository)):
    """Results, available only after the election has ended."""
    return await compute_results(repo, election_id)
