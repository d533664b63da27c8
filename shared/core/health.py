"""
Health and metrics endpoints for the fulfillment service.

Liveness answers without touching dependencies; readiness checks the order
database, local resources and whether the carrier integration is configured.
"""

import os
import time
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Optional

import psutil
from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.engine import Engine

from .logging_config import get_logger

logger = get_logger(__name__)


class HealthStatus(str, Enum):
    PASS = "pass"
    FAIL = "fail"
    WARN = "warn"


def _now() -> str:
    return datetime.utcnow().isoformat() + "Z"


class ServiceHealth:
    """
    Builds the health router for a service.

    ``engine_factory`` returns the SQLAlchemy engine to check; it is resolved
    lazily so the router can be created before the database is configured.
    ``carrier_configured`` reports whether manual shipping is the only
    available route (a warning, not a failure).
    """

    def __init__(
        self,
        service_name: str,
        version: str = "1.0.0",
        engine_factory: Optional[Callable[[], Engine]] = None,
        carrier_configured: Optional[Callable[[], bool]] = None,
    ):
        self.service_name = service_name
        self.version = version
        self.engine_factory = engine_factory
        self.carrier_configured = carrier_configured
        self.start_time = time.time()
        self.checks_performed = 0

    def create_health_router(self) -> APIRouter:
        router = APIRouter(tags=["health"])

        @router.get("/health", status_code=status.HTTP_200_OK)
        async def health_check() -> Dict[str, Any]:
            return {
                "status": HealthStatus.PASS,
                "service": self.service_name,
                "version": self.version,
                "releaseId": os.getenv("RELEASE_ID", "unknown"),
                "timestamp": _now()
            }

        @router.get("/health/live", status_code=status.HTTP_200_OK)
        async def liveness() -> Dict[str, Any]:
            return {"status": "alive"}

        @router.get("/health/ready")
        async def readiness() -> JSONResponse:
            checks = self.readiness_checks()
            overall_status = self.overall_status(checks)
            status_code = (
                status.HTTP_503_SERVICE_UNAVAILABLE
                if overall_status == HealthStatus.FAIL
                else status.HTTP_200_OK
            )
            return JSONResponse(status_code=status_code, content={
                "status": overall_status,
                "version": self.version,
                "serviceId": self.service_name,
                "checks": checks,
                "timestamp": _now()
            })

        @router.get("/metrics")
        async def metrics() -> Dict[str, Any]:
            process = psutil.Process()
            memory = process.memory_info()
            return {
                "service": self.service_name,
                "version": self.version,
                "uptime_seconds": time.time() - self.start_time,
                "checks_performed": self.checks_performed,
                "timestamp": _now(),
                "system": {
                    "memory_rss_bytes": memory.rss,
                    "cpu_percent": process.cpu_percent(),
                    "num_threads": process.num_threads()
                }
            }

        return router

    def readiness_checks(self) -> Dict[str, Dict[str, Any]]:
        self.checks_performed += 1
        checks = {
            "database:connectivity": self._check_database(),
            "system:memory": self._check_memory(),
        }
        if self.carrier_configured is not None:
            checks["carrier:configuration"] = self._check_carrier()
        return checks

    def _check_database(self) -> Dict[str, Any]:
        if self.engine_factory is None:
            return {"status": HealthStatus.WARN, "componentType": "datastore",
                    "output": "No database configured", "time": _now()}
        try:
            start_time = time.time()
            with self.engine_factory().connect() as conn:
                conn.execute(text("SELECT 1")).fetchone()
            return {
                "status": HealthStatus.PASS,
                "componentType": "datastore",
                "observedValue": f"{(time.time() - start_time) * 1000:.2f}",
                "observedUnit": "ms",
                "time": _now()
            }
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            return {"status": HealthStatus.FAIL, "componentType": "datastore",
                    "output": str(e), "time": _now()}

    def _check_memory(self) -> Dict[str, Any]:
        available_mb = psutil.virtual_memory().available / (1024 ** 2)
        if available_mb < 100:
            status_val = HealthStatus.FAIL
        elif available_mb < 500:
            status_val = HealthStatus.WARN
        else:
            status_val = HealthStatus.PASS
        return {
            "status": status_val,
            "componentType": "system",
            "observedValue": f"{available_mb:.2f}",
            "observedUnit": "MB",
            "time": _now()
        }

    def _check_carrier(self) -> Dict[str, Any]:
        if self.carrier_configured():
            return {"status": HealthStatus.PASS, "componentType": "component", "time": _now()}
        # Without a carrier every shipment falls back to manual tracking.
        return {"status": HealthStatus.WARN, "componentType": "component",
                "output": "Carrier integration not configured", "time": _now()}

    @staticmethod
    def overall_status(checks: Dict[str, Dict[str, Any]]) -> HealthStatus:
        statuses = [check.get("status", HealthStatus.PASS) for check in checks.values()]
        if HealthStatus.FAIL in statuses:
            return HealthStatus.FAIL
        if HealthStatus.WARN in statuses:
            return HealthStatus.WARN
        return HealthStatus.PASS
