"""
Health check endpoints
"""
import logging
from datetime import datetime, timezone
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from travelvoice.core.config import settings
from travelvoice.core.database import get_db, health_check as database_health_check

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("")
async def health_check(db: AsyncSession = Depends(get_db)):
    """
    Liveness plus a database round trip.
    """
    database = await database_health_check(db)
    checks = {"api_service": "healthy", "database": database["status"]}

    healthy = all(value == "healthy" for value in checks.values())
    body = {
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "service": settings.PROJECT_NAME,
        "environment": settings.ENVIRONMENT,
        "checks": checks,
    }
    return JSONResponse(status_code=200 if healthy else 503, content=body)
