from __future__ import annotations

import logging
from functools import partial
from typing import Callable

from push_dispatch.config import Settings, get_settings
from push_dispatch.models.notification import (
    AuditEntry,
    DeliveryResponse,
    DispatchResult,
    LogEntry,
    PushNotification,
    PushStatus,
)
from push_dispatch.notifications.builder import build_android_payload
from push_dispatch.notifications.errors import ClientInitError, PayloadError, PushValidationError, TransportError
from push_dispatch.notifications.providers import DeliveryClientProvider
from push_dispatch.storage.repository import AuditLog
from push_dispatch.storage.stats import StatStorage
from push_dispatch.utils.tokens import hide_token
from push_dispatch.utils.validation import check_message

logger = logging.getLogger(__name__)
access_logger = logging.getLogger("push_dispatch.access")

PLATFORM = "android"


class PushDispatchService:
    """Validate, build, send and reconcile one Android push request at a time.

    The service holds no per-request state, so concurrent ``dispatch`` calls
    only share the client provider, the stat storage and the audit log.
    """

    def __init__(
        self,
        client_provider: DeliveryClientProvider,
        stats: StatStorage,
        audit_log: AuditLog,
        validator: Callable[[PushNotification], None] | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.client_provider = client_provider
        self.stats = stats
        self.audit_log = audit_log
        self.settings = settings or get_settings()
        self.validator = validator or partial(check_message, max_tokens=self.settings.max_notification)

    def dispatch(self, req: PushNotification) -> DispatchResult:
        logger.debug("Start push notification for Android V1", extra={"tokens": len(req.tokens)})

        try:
            self.validator(req)
        except PushValidationError as exc:
            logger.error("Push request rejected", extra={"error": str(exc)})
            raise

        try:
            payload = build_android_payload(req)
        except PayloadError as exc:
            logger.error("FCM payload build failed", extra={"error": str(exc)})
            raise

        try:
            client = self.client_provider.get()
        except ClientInitError as exc:
            logger.error("FCM client unavailable", extra={"error": str(exc)})
            raise

        try:
            response = client.send_multicast(payload)
        except Exception as exc:
            logger.error("FCM send message error", extra={"error": str(exc), "tokens": len(req.tokens)})
            result = DispatchResult(
                logs=[LogEntry(token=token, status=PushStatus.FAILED_PUSH, error=str(exc)) for token in req.tokens]
            )
            self._record(req, result)
            self.stats.add_error(PLATFORM, len(req.tokens))
            raise TransportError(str(exc), result) from exc

        self.stats.add_success(PLATFORM, response.success_count)
        self.stats.add_error(PLATFORM, response.failure_count)

        result = self._reconcile(req, response)
        self._record(req, result)
        return result

    @staticmethod
    def _reconcile(req: PushNotification, response: DeliveryResponse) -> DispatchResult:
        # outcomes are paired with tokens by position; extra outcomes fall back to the legacy recipient
        logs: list[LogEntry] = []
        for index, outcome in enumerate(response.responses):
            token = req.tokens[index] if index < len(req.tokens) else req.to
            if outcome.error is not None:
                logs.append(LogEntry(token=token, status=PushStatus.FAILED_PUSH, error=outcome.error))
            else:
                logs.append(LogEntry(token=token, status=PushStatus.SUCCEEDED_PUSH))
        return DispatchResult(logs=logs)

    def _record(self, req: PushNotification, result: DispatchResult) -> None:
        entries: list[AuditEntry] = []
        for log in result.logs:
            token = hide_token(log.token) if self.settings.log_hide_token else log.token
            entry = AuditEntry(
                status=log.status,
                platform=PLATFORM,
                token=token,
                message=req.message,
                error=log.error,
            )
            entries.append(entry)
            if entry.status == PushStatus.FAILED_PUSH:
                access_logger.error(
                    "[%s] %s %s",
                    entry.status.value,
                    entry.token,
                    entry.error,
                    extra={"platform": PLATFORM},
                )
            else:
                access_logger.info("[%s] %s", entry.status.value, entry.token, extra={"platform": PLATFORM})
        self.audit_log.append(entries)
