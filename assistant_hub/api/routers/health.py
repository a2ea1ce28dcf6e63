"""Health check API router."""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from assistant_hub.infra.config import config
from assistant_hub.infra.database import get_db
from assistant_hub.infra.metrics import get_metrics_response

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

# The assistant cannot answer without these
REQUIRED_TABLES = ("tenants", "tenant_settings", "pending_directives")


@router.get("/health")
async def health_check():
    """Process is up; reports the configured defaults."""
    return {
        "status": "ok",
        "service": "assistant-hub",
        "version": "1.0.0",
        "environment": config.APP_ENV,
        "default_provider": config.DEFAULT_PROVIDER,
    }


@router.get("/health/live")
async def liveness_probe():
    return {"status": "alive"}


@router.get("/health/ready")
async def readiness_probe(db: Session = Depends(get_db)):
    """Ready when the database answers and the assistant tables exist."""
    try:
        for table in REQUIRED_TABLES:
            db.execute(text(f"SELECT 1 FROM {table} LIMIT 1"))
    except SQLAlchemyError as e:
        logger.warning("Readiness check failed", extra={"error": str(e)})
        return JSONResponse(status_code=503, content={"status": "not_ready"})
    return {"status": "ready"}


@router.get("/metrics")
async def metrics():
    """Prometheus metrics endpoint."""
    return get_metrics_response()
