"""Health checks for the document store and the attachment store."""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..domain.attachments.ports import AttachmentStoragePort, StorageError

logger = logging.getLogger(__name__)


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


@dataclass
class ComponentHealth:
    status: HealthStatus
    message: Optional[str] = None
    latency_ms: Optional[float] = None

    def to_dict(self) -> dict:
        return {"status": self.status.value, "message": self.message, "latency_ms": self.latency_ms}


def _healthy(message: str, started: float) -> ComponentHealth:
    elapsed_ms = (time.perf_counter() - started) * 1000
    return ComponentHealth(HealthStatus.HEALTHY, message, round(elapsed_ms, 2))


def check_database_health(db: Session) -> ComponentHealth:
    """Round-trip a trivial query through the session."""
    started = time.perf_counter()
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error(f"Document store unreachable: {e}", exc_info=True)
        return ComponentHealth(HealthStatus.UNHEALTHY, "Database unavailable")
    return _healthy("Database reachable", started)


async def check_attachment_storage_health(storage: AttachmentStoragePort) -> ComponentHealth:
    """Ask the configured attachment store whether it can accept writes."""
    started = time.perf_counter()
    try:
        await storage.verify_storage_ready()
    except StorageError as e:
        logger.error(f"Attachment store not ready: {e}")
        return ComponentHealth(HealthStatus.UNHEALTHY, str(e))
    return _healthy("Attachment storage writable", started)


def get_overall_health(components: Dict[str, ComponentHealth]) -> HealthStatus:
    """Worst component status wins."""
    statuses = {c.status for c in components.values()}
    if HealthStatus.UNHEALTHY in statuses:
        return HealthStatus.UNHEALTHY
    if HealthStatus.DEGRADED in statuses:
        return HealthStatus.DEGRADED
    return HealthStatus.HEALTHY
