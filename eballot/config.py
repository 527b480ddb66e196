"""
Runtime configuration, read once from environment variables.

Environment variables:
    DB_HOST / DB_PORT / DB_NAME     PostgreSQL location
    DB_USER / DB_PASSWORD           PostgreSQL credentials
    DB_POOL_MIN / DB_POOL_MAX       asyncpg pool bounds
    JWT_SECRET                      HMAC key for session tokens
    JWT_ALGORITHM                   Signing algorithm (default HS256)
    TOKEN_EXPIRE_HOURS              Session token lifetime (default 8)
    BCRYPT_ROUNDS                   bcrypt work factor (default 12)
    ENVIRONMENT                     "production" enables verification checks
                                    and hides internal error detail
    CORS_ORIGINS                    Comma separated list of allowed origins
    LOG_LEVEL                       Root log level (default INFO)
    AUDIT_HASH_SALT                 Salt mixed into per-vote audit hashes
"""
import os

# ── Database ─────────────────────────────────────────────────────────────────
DB_HOST = os.getenv("DB_HOST", "localhost")
DB_PORT = int(os.getenv("DB_PORT", "5432"))
DB_NAME = os.getenv("DB_NAME", "e_ballot")
DB_USER = os.getenv("DB_USER", "e_ballot")
DB_PASSWORD = os.getenv("DB_PASSWORD", "e_ballot")
DB_POOL_MIN = int(os.getenv("DB_POOL_MIN", "2"))
DB_POOL_MAX = int(os.getenv("DB_POOL_MAX", "20"))

# ── Auth ─────────────────────────────────────────────────────────────────────
JWT_SECRET = os.getenv("JWT_SECRET", "your-secret-key-change-in-production")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
TOKEN_EXPIRE_HOURS = int(os.getenv("TOKEN_EXPIRE_HOURS", "8"))
BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))

# ── Service ──────────────────────────────────────────────────────────────────
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
AUDIT_HASH_SALT = os.getenv("AUDIT_HASH_SALT", "audit-salt-change-in-production")


def is_production() -> bool:
    return ENVIRONMENT.lower() == "production"
