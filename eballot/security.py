"""
Security utilities.

Covers:
  - Password hashing (bcrypt via passlib)
  - Session tokens (HS256 JWT via python-jose)
  - Vote audit hashes (SHA-256 over client metadata)
"""
import hashlib
from datetime import datetime, timedelta, timezone

from jose import jwt, JWTError
from passlib.context import CryptContext

from eballot import config
from eballot.errors import Unauthorized

# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------
pwd_context = CryptContext(
    schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=config.BCRYPT_ROUNDS,
)


def hash_password(password: str) -> str:
    """Hash a password using bcrypt via passlib."""
    return pwd_context.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    """Verify a password against a bcrypt hash."""
    return pwd_context.verify(password, hashed)


# ---------------------------------------------------------------------------
# Session tokens
# ---------------------------------------------------------------------------

def create_access_token(user: dict, expires_hours: int | None = None) -> str:
    """Issue a signed session token carrying the user id, role and login key."""
    hours = config.TOKEN_EXPIRE_HOURS if expires_hours is None else expires_hours
    payload = {
        "sub": str(user["id"]),
        "role": user["role"],
        "voter_id": user["voter_id"],
        "exp": datetime.now(timezone.utc) + timedelta(hours=hours),
    }
    return jwt.encode(payload, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)


def decode_access_token(token: str) -> dict:
    """Return the token claims, raising Unauthorized when invalid or expired."""
    try:
        payload = jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGORITHM])
    except JWTError as e:
        msg = "Token expired" if "expired" in str(e).lower() else "Invalid token"
        raise Unauthorized(msg)
    if not payload.get("sub") or not payload.get("role"):
        raise Unauthorized("Invalid token")
    return payload


# ---------------------------------------------------------------------------
# Hash utilities
# ---------------------------------------------------------------------------

def compute_audit_hash(client_ip: str | None, user_agent: str | None) -> str:
    """SHA-256 over the caller's address and user agent, salted."""
    data = f"{client_ip or ''}|{user_agent or ''}|{config.AUDIT_HASH_SALT}"
    return hashlib.sha256(data.encode()).hexdigest()
