import logging
from fastapi import APIRouter, HTTPException, status, Depends
from pymongo.errors import PyMongoError
from app.schemas import APIResponse
from app.database import get_database

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/healthcheck", tags=["healthcheck"])


@router.get("", response_model=APIResponse)
async def healthcheck(db=Depends(get_database)):
    """Liveness plus a ping to the database"""
    if db is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database is not connected"
        )
    try:
        await db.command("ping")
    except PyMongoError as e:
        logger.warning("Database ping failed: %s", e)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database is unreachable"
        )
    return APIResponse(data={"status": "ok"}, message="Service is healthy")
