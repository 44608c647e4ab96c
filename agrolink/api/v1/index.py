from fastapi import APIRouter, Depends, HTTPException, status
from loguru import logger
from sqlmodel import Session, text

from agrolink.core.access_matrix import ACCESS_MATRIX_VERSION
from agrolink.core.config import settings
from agrolink.db.core import get_session

router = APIRouter()


@router.get("/", status_code=status.HTTP_200_OK, summary="Service Info")
def index():
    return {
        "service": settings.app_name,
        "status": "running",
        "access_matrix_version": ACCESS_MATRIX_VERSION
    }


@router.get(
    "/readiness",
    status_code=status.HTTP_200_OK,
    summary="Readiness Probe",
    description="Fails with 503 while the relationship store cannot be queried."
)
def readiness(session: Session = Depends(get_session)):
    try:
        session.exec(text("SELECT 1"))
    except Exception:
        logger.exception("Relationship store unreachable")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Relationship store not ready"
        )

    return {"status": "ready", "database": "online"}
