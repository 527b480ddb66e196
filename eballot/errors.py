"""
Error taxonomy for the service layer and the FastAPI handlers that render it.

Every service failure is an ``EBallotError`` subclass carrying the HTTP
status it maps to and an optional ``extra`` payload merged into the JSON
body next to ``detail`` (e.g. the dates that made an election immutable).
"""
import logging
from uuid import UUID

import asyncpg
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from eballot import config

logger = logging.getLogger(__name__)


class EBallotError(Exception):
    status_code = 500
    default_detail = "Internal server error"

    def __init__(self, detail: str | None = None, **extra):
        self.detail = detail or self.default_detail
        self.extra = extra
        super().__init__(self.detail)


class InvalidIdentifier(EBallotError):
    status_code = 400
    default_detail = "Invalid ID format"


class ValidationError(EBallotError):
    status_code = 400
    default_detail = "Validation error"

    def __init__(self, errors: list[dict], detail: str | None = None):
        super().__init__(detail, errors=errors)
        self.errors = errors


class NotFound(EBallotError):
    status_code = 404
    default_detail = "Not found"


class Conflict(EBallotError):
    status_code = 400
    default_detail = "Operation conflicts with current state"


class InvalidState(EBallotError):
    status_code = 400
    default_detail = "This election is not currently active"


class InvalidCandidate(EBallotError):
    status_code = 400
    default_detail = "Invalid candidate for this election"


class AlreadyVoted(EBallotError):
    status_code = 400
    default_detail = "You have already voted in this election"


class NotYetAvailable(EBallotError):
    status_code = 403
    default_detail = "Results are not available until the election is complete"


class InvalidCredentials(EBallotError):
    status_code = 400
    default_detail = "Invalid credentials"


class Forbidden(EBallotError):
    status_code = 403
    default_detail = "Access denied"


class Unauthorized(EBallotError):
    status_code = 401
    default_detail = "Authentication required"


class InfrastructureError(EBallotError):
    status_code = 500
    default_detail = "Server error, please try again later"


class DuplicateKeyError(Exception):
    """Raised by a repository when an insert/update hits a unique key."""

    def __init__(self, constraint: str | None = None):
        self.constraint = constraint
        super().__init__(constraint or "duplicate key")


# ── Handlers ─────────────────────────────────────────────────────────────────

def _error_body(detail: str, extra: dict) -> dict:
    body = {"detail": detail}
    body.update(jsonable_encoder(extra))
    return body


async def eballot_error_handler(request: Request, exc: EBallotError):
    return JSONResponse(status_code=exc.status_code, content=_error_body(exc.detail, exc.extra))


async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = [
        {
            "field": ".".join(str(p) for p in err["loc"] if p != "body"),
            "message": err["msg"],
        }
        for err in exc.errors()
    ]
    logger.warning(f"Rejected {request.method} {request.url.path}: {len(errors)} validation error(s)")
    return JSONResponse(status_code=400, content={"detail": "Validation error", "errors": errors})


async def infrastructure_error_handler(request: Request, exc: Exception):
    logger.exception(f"Infrastructure failure on {request.method} {request.url.path}")
    extra = {} if config.is_production() else {"error": str(exc)}
    return JSONResponse(
        status_code=InfrastructureError.status_code,
        content=_error_body(InfrastructureError.default_detail, extra),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(EBallotError, eballot_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(asyncpg.PostgresError, infrastructure_error_handler)
    app.add_exception_handler(OSError, infrastructure_error_handler)


def parse_id(value, label: str = "ID") -> UUID:
    """Parse an opaque identifier, rejecting malformed values before any lookup."""
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (TypeError, ValueError, AttributeError):
        raise InvalidIdentifier(f"Invalid {label} format")
