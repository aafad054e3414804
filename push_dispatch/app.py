from __future__ import annotations

import logging

from fastapi import FastAPI

from push_dispatch.api.routes import router
from push_dispatch.config import settings
from push_dispatch.models.db import SessionLocal, init_db
from push_dispatch.notifications.errors import ClientInitError
from push_dispatch.notifications.providers import create_client_provider
from push_dispatch.notifications.service import PushDispatchService
from push_dispatch.storage.repository import AuditLog, MemoryAuditLog, SqlAuditLog
from push_dispatch.storage.stats import MemoryStatStorage

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)

app = FastAPI(
    title="push_dispatch",
    description="Android push notification dispatch with per-recipient audit logging",
    version="0.1.0",
    debug=settings.app_debug,
)


def _build_audit_log() -> AuditLog:
    if settings.audit_log_backend == "database":
        init_db()
        logging.info("Audit log database initialized", extra={"backend": settings.audit_log_backend})
        return SqlAuditLog(SessionLocal)
    return MemoryAuditLog(max_entries=settings.audit_log_max_entries)


@app.on_event("startup")
def startup_event() -> None:
    client_provider = create_client_provider(settings)
    try:
        client_provider.get()
    except ClientInitError:
        # dispatches retry creation and answer 503 until it succeeds
        logging.exception("Delivery client initialization failed", extra={"provider": settings.push_provider})

    app.state.push_service = PushDispatchService(
        client_provider=client_provider,
        stats=MemoryStatStorage(),
        audit_log=_build_audit_log(),
        settings=settings,
    )


app.include_router(router)
