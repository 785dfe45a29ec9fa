import logging
from enum import Enum
from typing import List

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.dependencies import get_clock
from app.core.timeutils import Clock
from app.db.session import get_db
from app.schemas.health import HealthCheck, HealthServices

logger = logging.getLogger(__name__)

router = APIRouter()
group_tags: List[str | Enum] = ["Health"]


@router.get(
    "",
    tags=group_tags,
    response_model=HealthCheck,
    status_code=status.HTTP_200_OK,
)
def get_health(db: Session = Depends(get_db), clock: Clock = Depends(get_clock)):
    """Service liveness plus a database probe. 503 when the database is unreachable."""
    database = "healthy"
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error("health check database probe failed: %s", e)
        db.rollback()
        database = "unhealthy"

    body = HealthCheck(
        status=database,
        version=settings.VERSION,
        timestamp=clock().isoformat(),
        services=HealthServices(database=database),
    )
    if database != "healthy":
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content=body.model_dump(by_alias=True),
        )
    return body
