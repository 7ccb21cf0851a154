"""Health check endpoint."""

from fastapi import APIRouter
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from harvest_api.schemas import HealthResponse
from harvest_kernel import __version__
from harvest_kernel.db.engine import session_scope
from harvest_kernel.logging_config import get_logger

logger = get_logger("api.health")

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
def health_check() -> HealthResponse:
    """Report API liveness and database reachability."""
    try:
        with session_scope() as session:
            session.execute(text("SELECT 1"))
        database = "up"
    except (SQLAlchemyError, RuntimeError):
        logger.warning("health_database_unreachable", exc_info=True)
        database = "down"
    return HealthResponse(
        status="ok" if database == "up" else "degraded",
        database=database,
        version=__version__,
    )
