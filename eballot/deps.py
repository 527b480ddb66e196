"""FastAPI dependencies: repository access and bearer-token authentication."""
import logging
from dataclasses import dataclass
from uuid import UUID

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from eballot.errors import Forbidden, InvalidIdentifier, Unauthorized, parse_id
from eballot.security import decode_access_token

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Principal:
    """Identity carried by a validated session token."""

    id: UUID
    role: str
    voter_id: str

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def get_repository(request: Request):
    return request.app.state.repository


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    repo=Depends(get_repository),
) -> Principal:
    """Validate the bearer token and re-read the account it names.

    Deactivation takes effect immediately: a token issued before the account
    was deactivated is rejected even though it has not expired.
    """
    if credentials is None:
        raise Unauthorized("Access token required")
    claims = decode_access_token(credentials.credentials)
    try:
        user_id = parse_id(claims["sub"])
    except InvalidIdentifier:
        raise Unauthorized("Invalid token")

    user = await repo.get_user(user_id)
    if user is None or not user["is_active"]:
        logger.warning(f"Rejected token for missing or inactive account {user_id}")
        raise Unauthorized("Account is no longer active")
    return Principal(id=user["id"], role=user["role"], voter_id=user["voter_id"])


def require_admin(user: Principal = Depends(get_current_user)) -> Principal:
    if not user.is_admin:
        raise Forbidden("Admin access required")
    return user
