import logging
from typing import Any, Dict

from fastapi import FastAPI, HTTPException, Request, status
from sqlalchemy import text
from starlette.responses import JSONResponse

from .achievements import install_achievement_listener
from .db.monitoring import get_pool_snapshot
from .db.session import get_engine
from .errors import InvariantViolation
from .logging_config import configure_logging
from .placement_routes import router as placement_router


configure_logging()
install_achievement_listener()
logger = logging.getLogger(__name__)
app = FastAPI(title="Skill Ladder Placement Engine", version="0.1.0")
app.include_router(placement_router)


@app.exception_handler(InvariantViolation)
async def invariant_violation_handler(request: Request, exc: InvariantViolation) -> JSONResponse:
    logger.error("Invariant violation on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": {"code": exc.code, "message": str(exc), "retryable": False}},
    )


@app.get("/healthz")
def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.get("/healthz/database")
def database_health() -> Dict[str, Any]:
    try:
        engine = get_engine()
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
    except Exception as exc:  # noqa: BLE001
        logger.warning("Database health check failed: %s", exc)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return {"status": "ok", "dialect": engine.dialect.name, "pool": get_pool_snapshot(engine)}
