import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from dataweb.app import database
from dataweb.app.schemas.health import HealthResponse
from dataweb.app.services.analysis_client import AnalysisClient, get_analysis_client

logger = logging.getLogger("dataweb.health")

router = APIRouter()


def check_database() -> bool:
    # Engine setup runs inside the guard so an unreachable store reports "error"
    try:
        database.get_engine()
        with database.SessionLocal() as db:
            db.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError as e:
        logger.error("Health check: database unreachable: %s", e)
        return False


@router.get("/health", response_model=HealthResponse)
def health(client: AnalysisClient = Depends(get_analysis_client)):
    db_status = "connected" if check_database() else "error"
    analysis_status = "connected" if client.is_healthy() else "unavailable"

    return HealthResponse(
        status="ok" if db_status == "connected" else "degraded",
        database=db_status,
        analysis_service=analysis_status,
        timestamp=datetime.now(timezone.utc),
    )
