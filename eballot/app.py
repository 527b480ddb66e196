"""
E-Ballot API — elections, voting, results and accounts behind one FastAPI app.

Routers (all mounted under /api):
  1. /auth                        — register, login, profile, voter admin
  2. /elections                   — election CRUD
  3. /elections/{id}/vote*        — vote casting and vote status
  4. /elections/{id}/results      — tallies for completed elections

Run with:  uvicorn eballot.app:app
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from eballot import __version__, accounts, config, elections, results, voting
from eballot.database import Database
from eballot.errors import register_exception_handlers
from eballot.repository import PostgresRepository
from eballot.schemas import HealthResponse

logger = logging.getLogger("e-ballot")


def configure_logging() -> None:
    logging.basicConfig(
        level=config.LOG_LEVEL,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def create_app(repository=None) -> FastAPI:
    """Build the app. Without a ``repository`` the lifespan opens the PostgreSQL pool."""
    configure_logging()

    @asynccontextmanager
    async def lifespan(application: FastAPI):
        if repository is not None:
            application.state.repository = repository
            yield
            return
        await Database.get_pool()
        await Database.init_schema()
        application.state.repository = PostgresRepository()
        logger.info(f"E-Ballot started (environment: {config.ENVIRONMENT})")
        yield
        await Database.close()

    application = FastAPI(
        title="E-Ballot",
        description="Elections, one-vote-per-voter ballots and results",
        version=__version__,
        lifespan=lifespan,
    )
    application.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(application)

    @application.get("/api/health", response_model=HealthResponse)
    async def health():
        return {"status": "healthy", "service": "e-ballot"}

    for module in (accounts, elections, voting, results):
        application.include_router(module.router, prefix="/api")

    return application


app = create_app()
