from fastapi import APIRouter, Depends, Request
import logging
from sqlalchemy import text
from sqlmodel import Session

from ..database import get_session
from ..schemas.common.common import HealthResponse, SchedulerJob

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthResponse)
def health_check(request: Request, session: Session = Depends(get_session)):
    database_ok = True
    try:
        session.exec(text("SELECT 1"))
    except Exception as e:
        logger.error(f"Database health check failed: {str(e)}")
        database_ok = False

    sweeper = getattr(request.app.state, "sweeper", None)
    running = bool(sweeper and sweeper.scheduler.running)
    jobs = [SchedulerJob(**job) for job in sweeper.get_jobs()] if running else []
    return HealthResponse(
        status="healthy" if database_ok else "degraded",
        database=database_ok,
        scheduler_running=running,
        jobs=jobs,
    )
