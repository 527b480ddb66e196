import asyncio
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from eballot import elections
from eballot.errors import Conflict
from eballot.schemas import ElectionUpdate

START = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)
END = datetime(2026, 3, 2, 17, 0, tzinfo=timezone.utc)


def election_payload(**overrides):
    now = datetime.now(timezone.utc)
    payload = {
        "title": "Student Council",
        "description": "Choose the student council president",
        "start_date": (now + timedelta(days=3)).isoformat(),
        "end_date": (now + timedelta(days=5)).isoformat(),
        "candidates": [
            {"name": "Alice", "party": "Blue", "bio": "Treasurer"},
            {"name": "Bob", "party": "Green", "bio": "Secretary"},
        ],
    }
    payload.update(overrides)
    return payload


@pytest.mark.parametrize("now, expected", [
    (START - timedelta(seconds=1), "upcoming"),
    (START, "active"),
    (START + timedelta(hours=5), "active"),
    (END, "active"),
    (END + timedelta(seconds=1), "completed"),
])
def test_effective_status_follows_clock(now, expected):
    assert elections.effective_status(START, END, now) == expected


def test_list_substitutes_time_derived_status(client, make_election):
    make_election(start=timedelta(days=-1), end=timedelta(days=1), stored_status="completed")
    make_election(start=timedelta(days=-5), end=timedelta(days=-2), stored_status="upcoming")
    make_election(start=timedelta(days=2), end=timedelta(days=4), stored_status="active")

    resp = client.get("/api/elections")

    assert resp.status_code == 200
    assert [e["status"] for e in resp.json()] == ["upcoming", "active", "completed"]


def test_list_is_ordered_by_start_date_descending(client, make_election):
    early = make_election(start=timedelta(days=1), end=timedelta(days=2))
    late = make_election(start=timedelta(days=10), end=timedelta(days=12))

    ids = [e["id"] for e in client.get("/api/elections").json()]

    assert ids == [str(late["id"]), str(early["id"])]


def test_get_election_derives_status_regardless_of_stored_value(client, make_election):
    election = make_election(start=timedelta(days=-1), end=timedelta(days=1), stored_status="upcoming")

    resp = client.get(f"/api/elections/{election['id']}")

    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "active"
    assert [c["name"] for c in body["candidates"]] == ["Alice", "Bob"]


def test_get_election_malformed_id_is_distinct_from_not_found(client):
    malformed = client.get("/api/elections/not-a-uuid")
    missing = client.get(f"/api/elections/{uuid4()}")

    assert malformed.status_code == 400
    assert malformed.json()["detail"] == "Invalid election ID format"
    assert missing.status_code == 404
    assert missing.json()["detail"] == "Election not found"


def test_create_election_as_admin(client, admin, auth_header):
    resp = client.post("/api/elections", json=election_payload(), headers=auth_header(admin))

    assert resp.status_code == 201
    body = resp.json()
    assert body["status"] == "upcoming"
    assert body["created_by"] == str(admin["id"])
    assert len({c["id"] for c in body["candidates"]}) == 2


def test_create_election_initial_status_from_dates(client, admin, auth_header):
    now = datetime.now(timezone.utc)
    payload = election_payload(
        start_date=(now - timedelta(hours=1)).isoformat(),
        end_date=(now + timedelta(hours=1)).isoformat(),
    )

    resp = client.post("/api/elections", json=payload, headers=auth_header(admin))

    assert resp.status_code == 201
    assert resp.json()["status"] == "active"


def test_create_election_requires_admin(client, voter, auth_header):
    as_voter = client.post("/api/elections", json=election_payload(), headers=auth_header(voter))
    anonymous = client.post("/api/elections", json=election_payload())

    assert as_voter.status_code == 403
    assert anonymous.status_code == 401


def test_create_election_reports_every_invalid_field(client, admin, auth_header):
    payload = election_payload(
        title="   ",
        candidates=[{"name": "Alice", "party": "", "bio": "Treasurer"}],
    )
    del payload["description"]

    resp = client.post("/api/elections", json=payload, headers=auth_header(admin))

    assert resp.status_code == 400
    fields = {e["field"] for e in resp.json()["errors"]}
    assert {"title", "description", "candidates.0.party"} <= fields


def test_create_election_requires_two_candidates(client, admin, auth_header):
    payload = election_payload(candidates=[{"name": "Alice", "party": "Blue", "bio": "Treasurer"}])

    resp = client.post("/api/elections", json=payload, headers=auth_header(admin))

    assert resp.status_code == 400
    assert [e["field"] for e in resp.json()["errors"]] == ["candidates"]


def test_create_election_rejects_end_before_start(client, admin, auth_header):
    now = datetime.now(timezone.utc)
    payload = election_payload(
        start_date=(now + timedelta(days=3)).isoformat(),
        end_date=(now + timedelta(days=3)).isoformat(),
    )

    resp = client.post("/api/elections", json=payload, headers=auth_header(admin))

    assert resp.status_code == 400
    (error,) = resp.json()["errors"]
    assert error["field"] == "end_date"
    assert "End date must be after start date" in error["message"]


def test_create_election_reports_window_with_other_field_errors(client, admin, auth_header):
    now = datetime.now(timezone.utc)
    payload = election_payload(
        title="  ",
        start_date=(now + timedelta(days=5)).isoformat(),
        end_date=(now + timedelta(days=4)).isoformat(),
    )

    resp = client.post("/api/elections", json=payload, headers=auth_header(admin))

    assert resp.status_code == 400
    assert {e["field"] for e in resp.json()["errors"]} == {"title", "end_date"}


def test_create_election_rejects_unparseable_dates(client, admin, auth_header):
    resp = client.post(
        "/api/elections", json=election_payload(start_date="next tuesday"), headers=auth_header(admin),
    )

    assert resp.status_code == 400
    assert "start_date" in {e["field"] for e in resp.json()["errors"]}


def test_update_preserves_candidates_when_omitted(client, admin, auth_header, make_election):
    election = make_election()

    resp = client.put(
        f"/api/elections/{election['id']}", json={"title": "Renamed"}, headers=auth_header(admin),
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["title"] == "Renamed"
    assert [c["id"] for c in body["candidates"]] == [c["id"] for c in election["candidates"]]


def test_update_keeps_resupplied_candidate_ids(client, admin, auth_header, make_election):
    election = make_election()
    kept = election["candidates"][0]
    candidates = [
        {"id": kept["id"], "name": kept["name"], "party": kept["party"], "bio": "Updated bio"},
        {"name": "Carol", "party": "Orange", "bio": "Newcomer"},
    ]

    resp = client.put(
        f"/api/elections/{election['id']}", json={"candidates": candidates}, headers=auth_header(admin),
    )

    assert resp.status_code == 200
    returned = resp.json()["candidates"]
    assert returned[0]["id"] == kept["id"]
    assert returned[0]["bio"] == "Updated bio"
    assert returned[1]["name"] == "Carol"
    assert returned[1]["id"] not in {c["id"] for c in election["candidates"]}


def test_update_revalidates_candidates(client, admin, auth_header, make_election):
    election = make_election()

    resp = client.put(
        f"/api/elections/{election['id']}",
        json={"candidates": [{"name": "Solo", "party": "One", "bio": "Alone"}]},
        headers=auth_header(admin),
    )

    assert resp.status_code == 400
    assert "candidates" in {e["field"] for e in resp.json()["errors"]}


def test_update_rejects_window_inverted_by_partial_change(client, admin, auth_header, make_election):
    election = make_election(start=timedelta(days=5), end=timedelta(days=6))
    new_end = (election["start_date"] - timedelta(hours=1)).isoformat()

    resp = client.put(
        f"/api/elections/{election['id']}", json={"end_date": new_end}, headers=auth_header(admin),
    )

    assert resp.status_code == 400
    assert resp.json()["errors"][0]["field"] == "end_date"


def test_update_rejects_inverted_window_alongside_bad_title(client, admin, auth_header, make_election):
    election = make_election(start=timedelta(days=5), end=timedelta(days=6))
    payload = {
        "title": "",
        "start_date": (election["start_date"] + timedelta(days=3)).isoformat(),
        "end_date": (election["start_date"] + timedelta(days=2)).isoformat(),
    }

    resp = client.put(f"/api/elections/{election['id']}", json=payload, headers=auth_header(admin))

    assert resp.status_code == 400
    assert {e["field"] for e in resp.json()["errors"]} == {"title", "end_date"}


@pytest.mark.parametrize("start, end, message", [
    (timedelta(days=-1), timedelta(days=1), "Cannot update an active election"),
    (timedelta(days=-3), timedelta(days=-1), "Cannot update a completed election"),
])
def test_update_only_allowed_while_upcoming(client, admin, auth_header, make_election, start, end, message):
    election = make_election(start=start, end=end)

    resp = client.put(
        f"/api/elections/{election['id']}", json={"title": "Too late"}, headers=auth_header(admin),
    )

    assert resp.status_code == 400
    body = resp.json()
    assert body["detail"] == message
    assert "end_date" in body


def test_delete_upcoming_election_cascades_votes(client, repo, admin, voter, auth_header, make_election):
    election = make_election()
    repo.votes[uuid4()] = {
        "id": uuid4(), "election_id": election["id"], "user_id": voter["id"],
        "candidate_id": election["candidates"][0]["id"], "cast_at": election["created_at"],
        "audit_hash": None,
    }

    resp = client.delete(f"/api/elections/{election['id']}", headers=auth_header(admin))

    assert resp.status_code == 200
    body = resp.json()
    assert body["deleted_votes_count"] == 1
    assert body["deleted_elections_count"] == 1
    assert repo.elections == {}
    assert repo.votes == {}


@pytest.mark.parametrize("start, end", [
    (timedelta(days=-1), timedelta(days=1)),
    (timedelta(days=-3), timedelta(days=-1)),
])
def test_delete_refused_once_started(client, repo, admin, voter, auth_header, make_election, start, end):
    election = make_election(start=start, end=end)
    vote_id = uuid4()
    repo.votes[vote_id] = {
        "id": vote_id, "election_id": election["id"], "user_id": voter["id"],
        "candidate_id": election["candidates"][0]["id"], "cast_at": election["created_at"],
        "audit_hash": None,
    }

    resp = client.delete(f"/api/elections/{election['id']}", headers=auth_header(admin))

    assert resp.status_code == 400
    assert election["id"] in repo.elections
    assert vote_id in repo.votes


def test_delete_requires_admin(client, voter, auth_header, make_election):
    election = make_election()

    resp = client.delete(f"/api/elections/{election['id']}", headers=auth_header(voter))

    assert resp.status_code == 403


def test_ensure_editable_carries_window_dates(repo, make_election):
    election = make_election(start=timedelta(days=-1), end=timedelta(days=1))

    with pytest.raises(Conflict) as exc:
        elections.ensure_editable(election, "delete")

    assert exc.value.extra["start_date"] == election["start_date"]
    assert exc.value.extra["end_date"] == election["end_date"]


def test_update_service_with_no_changes_returns_current(repo, make_election):
    election = make_election()

    result = asyncio.run(elections.update_election(repo, election["id"], ElectionUpdate()))

    assert result["title"] == election["title"]
    assert result["status"] == "upcoming"
