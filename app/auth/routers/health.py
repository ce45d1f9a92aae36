import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlmodel import Session, text

from app.db.session import get_session

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
def health_app():
    return {"ok": True, "service": "auth-service"}


@router.get("/health/db")
def health_db(db: Session = Depends(get_session)):
    # Migration is a deployment concern. Runtime only verifies DB connectivity.
    try:
        db.exec(text("SELECT 1"))
        return {"ok": True}
    except Exception:
        logger.exception("database readiness check failed")
        return JSONResponse(status_code=503, content={"ok": False})
