"""Operational endpoints: /metrics, /health and /ready."""

from fastapi import APIRouter, Depends, Response
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from sqlalchemy.orm import Session

from ..database import get_db
from ..dependencies import get_storage
from ..domain.attachments.ports import AttachmentStoragePort
from .health import (
    HealthStatus,
    check_attachment_storage_health,
    check_database_health,
    get_overall_health,
)

router = APIRouter(tags=["Observability"])


@router.get("/metrics", include_in_schema=False)
def metrics():
    """Prometheus exposition of every registered metric."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@router.get("/health", summary="Health of the document and attachment stores")
async def health_check(
    db: Session = Depends(get_db),
    storage: AttachmentStoragePort = Depends(get_storage),
):
    """Returns 200 unless a component is unhealthy, in which case 503."""
    components = {
        "database": check_database_health(db),
        "attachment_storage": await check_attachment_storage_health(storage),
    }
    overall = get_overall_health(components)
    body = {
        "status": overall.value,
        "components": {name: comp.to_dict() for name, comp in components.items()},
    }
    return JSONResponse(body, status_code=503 if overall == HealthStatus.UNHEALTHY else 200)


@router.get("/ready", summary="Readiness probe")
def readiness_check(db: Session = Depends(get_db)):
    database = check_database_health(db)
    if database.status != HealthStatus.HEALTHY:
        return JSONResponse({"status": "not_ready", "message": database.message}, status_code=503)
    return {"status": "ready"}
