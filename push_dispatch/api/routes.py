from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Query, Request

from push_dispatch.models.notification import AuditEntry, PushRequest, PushResponse, PushStatus
from push_dispatch.notifications.errors import ClientInitError, PayloadError, PushValidationError, TransportError
from push_dispatch.notifications.service import PushDispatchService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["push-dispatch"])


def _service(request: Request) -> PushDispatchService:
    return request.app.state.push_service


@router.get("/health")
def health() -> dict:
    return {"status": "ok"}


@router.post("/push", response_model=PushResponse)
def push(req: PushRequest, request: Request):
    service = _service(request)

    for notification in req.notifications:
        try:
            service.validator(notification)
        except PushValidationError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

    counts = 0
    failed_logs = []
    for notification in req.notifications:
        counts += len(notification.tokens)
        try:
            result = service.dispatch(notification)
        except PayloadError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except ClientInitError as exc:
            raise HTTPException(status_code=503, detail=str(exc)) from exc
        except TransportError as exc:
            raise HTTPException(
                status_code=502,
                detail={"error": str(exc), "logs": [log.model_dump(mode="json") for log in exc.result.logs]},
            ) from exc
        failed_logs.extend(log for log in result.logs if log.status == PushStatus.FAILED_PUSH)

    return PushResponse(counts=counts, logs=failed_logs)


@router.get("/stat/app")
def stat_app(request: Request) -> dict:
    return _service(request).stats.snapshot()


@router.get("/logs", response_model=list[AuditEntry])
def list_logs(request: Request, limit: int = Query(100, ge=1, le=1000)):
    return _service(request).audit_log.list_entries(limit=limit)
