from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from renraku.config import settings
from renraku.database import get_db
from renraku.websocket.manager import manager

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(db: Session = Depends(get_db)):
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        content = {"status": "unhealthy", "database": "disconnected"}
        if settings.DEBUG:
            content["error"] = str(exc)
        return JSONResponse(status_code=503, content=content)
    return {"status": "healthy", "database": "connected", "connections": manager.connection_count}
