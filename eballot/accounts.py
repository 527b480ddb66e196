"""
Account registry — registration, login, profile and voter administration.

Accounts are never physically deleted: deactivation clears ``is_active``
so past votes keep pointing at a real user row.
"""
import logging
from datetime import datetime, timezone
from uuid import UUID, uuid4

from fastapi import APIRouter, Depends, Query

from eballot import config
from eballot.deps import Principal, get_current_user, get_repository, require_admin
from eballot.errors import (
    Conflict, DuplicateKeyError, Forbidden, InvalidCredentials, NotFound, Unauthorized, parse_id,
)
from eballot.schemas import (
    LoginRequest, LoginResponse, MessageResponse, ProfileUpdate, RegisterRequest,
    RegisterResponse, UserOut, VoterListResponse,
)
from eballot.security import create_access_token, hash_password, verify_password

logger = logging.getLogger(__name__)

REGISTRATION_MESSAGE = "Registration successful! Please check your email to verify your account."

# Age brackets accepted by the voter list filter: (min_age, max_age).
AGE_RANGES = {
    "18-60": (18, 60),
    "61+": (61, None),
}


def public_user(user: dict) -> dict:
    return {k: v for k, v in user.items() if k != "password_hash"}


async def load_user(repo, user_id: UUID, label: str = "User") -> dict:
    user = await repo.get_user(user_id)
    if user is None:
        raise NotFound(f"{label} not found")
    return user


# ── Service operations ───────────────────────────────────────────────────────

async def register(repo, data: RegisterRequest) -> dict:
    if await repo.find_user_conflict(data.email, data.voter_id) is not None:
        logger.warning(f"Registration rejected: email or voter ID already in use ({data.voter_id})")
        raise Conflict("User with this email or voter ID already exists")

    user = {
        "id": uuid4(),
        "full_name": data.full_name,
        "email": data.email,
        "voter_id": data.voter_id,
        "password_hash": hash_password(data.password),
        "age": data.age,
        "phone": data.phone,
        "role": "voter",
        # Verification email is not implemented; every account starts verified.
        "is_verified": True,
        "is_active": True,
        "created_at": datetime.now(timezone.utc),
    }
    try:
        created = await repo.insert_user(user)
    except DuplicateKeyError:
        raise Conflict("User with this email or voter ID already exists")

    logger.info(f"User registered: {created['id']} ({created['voter_id']})")
    return {"message": REGISTRATION_MESSAGE, "user_id": created["id"]}


async def login(repo, data: LoginRequest) -> dict:
    user = await repo.find_user_by_voter_id(data.voter_id)
    # Same message for unknown voter ID and wrong password.
    if user is None or not verify_password(data.password, user["password_hash"]):
        logger.warning(f"Failed login for voter ID {data.voter_id}")
        raise InvalidCredentials()
    if not user["is_active"]:
        raise Forbidden("Account has been deleted")
    if not user["is_verified"] and config.is_production():
        raise Unauthorized("Please verify your email before logging in")

    logger.info(f"User logged in: {user['id']} ({user['role']})")
    return {"token": create_access_token(user), "user": public_user(user)}


async def get_profile(repo, user_id: UUID) -> dict:
    return public_user(await load_user(repo, user_id))


async def update_profile(repo, user_id: UUID, data: ProfileUpdate) -> dict:
    fields = data.model_dump(exclude_none=True)
    if "email" in fields or "voter_id" in fields:
        clash = await repo.find_user_conflict(fields.get("email"), fields.get("voter_id"), exclude_id=user_id)
        if clash is not None:
            raise Conflict("Email or Voter ID is already in use by another user")
    if not fields:
        return await get_profile(repo, user_id)

    try:
        updated = await repo.update_user(user_id, fields)
    except DuplicateKeyError:
        raise Conflict("Email or Voter ID is already in use by another user")
    if updated is None:
        raise NotFound("User not found")
    logger.info(f"Profile updated: {user_id} fields={sorted(fields)}")
    return public_user(updated)


async def list_voters(repo, age_range: str | None = None) -> dict:
    """Active voters, optionally limited to one age bracket, plus per-bracket counts."""
    min_age, max_age = AGE_RANGES.get(age_range or "", (None, None))
    voters = await repo.list_voters(min_age, max_age)
    stats = {
        "total": await repo.count_voters(),
        "age_18_to_60": await repo.count_voters(*AGE_RANGES["18-60"]),
        "age_61_plus": await repo.count_voters(*AGE_RANGES["61+"]),
    }
    return {"voters": [public_user(v) for v in voters], "stats": stats}


async def _deactivate(repo, user: dict) -> None:
    updated = await repo.update_user(user["id"], {"is_active": False})
    if updated is None:
        raise NotFound("User not found")
    logger.info(f"Account deactivated: {user['id']} ({user['voter_id']})")


async def deactivate_self(repo, user_id: UUID) -> dict:
    user = await load_user(repo, user_id)
    if user["role"] == "admin":
        raise Forbidden("Admin accounts cannot be deactivated")
    await _deactivate(repo, user)
    return {"message": "Account has been deleted successfully"}


async def deactivate_voter(repo, target_id) -> dict:
    user = await load_user(repo, parse_id(target_id, "voter ID"), label="Voter")
    if user["role"] == "admin":
        logger.warning(f"Rejected deactivation of admin account {user['id']}")
        raise Forbidden("Cannot delete admin accounts")
    await _deactivate(repo, user)
    return {"message": "Voter deleted successfully"}


# ── Routes ───────────────────────────────────────────────────────────────────

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", response_model=RegisterResponse, status_code=201)
async def register_route(data: RegisterRequest, repo=Depends(get_repository)):
    return await register(repo, data)


@router.post("/login", response_model=LoginResponse)
async def login_route(data: LoginRequest, repo=Depends(get_repository)):
    return await login(repo, data)


@router.get("/profile", response_model=UserOut)
async def get_profile_route(user: Principal = Depends(get_current_user), repo=Depends(get_repository)):
    return await get_profile(repo, user.id)


@router.put("/profile", response_model=UserOut)
async def update_profile_route(
    data: ProfileUpdate,
    user: Principal = Depends(get_current_user),
    repo=Depends(get_repository),
):
    return await update_profile(repo, user.id, data)


@router.get("/voters", response_model=VoterListResponse)
async def list_voters_route(
    age_range: str | None = Query(None, alias="ageRange"),
    admin: Principal = Depends(require_admin),
    repo=Depends(get_repository),
):
    return await list_voters(repo, age_range)


@router.post("/deactivate", response_model=MessageResponse)
async def deactivate_self_route(user: Principal = Depends(get_current_user), repo=Depends(get_repository)):
    return await deactivate_self(repo, user.id)


@router.post("/voters/{voter_id}/deactivate", response_model=MessageResponse)
async def deactivate_voter_route(
    voter_id: str,
    admin: Principal = Depends(require_admin),
    repo=Depends(get_repository),
):
    return await deactivate_voter(repo, voter_id)
