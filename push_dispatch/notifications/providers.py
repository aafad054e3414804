from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from typing import Callable

import firebase_admin
from firebase_admin import credentials, messaging

from push_dispatch.config import Settings
from push_dispatch.models.notification import DeliveryOutcome, DeliveryResponse, MulticastPayload
from push_dispatch.notifications.errors import ClientInitError

logger = logging.getLogger(__name__)

FIREBASE_APP_NAME = "push_dispatch"


class BaseDeliveryClient(ABC):
    name: str = "base"

    @abstractmethod
    def send_multicast(self, payload: MulticastPayload) -> DeliveryResponse:
        """Send one multicast message and return per-recipient outcomes in token order.

        Raises on transport failure, i.e. when the call as a whole did not complete.
        """
        raise NotImplementedError


class MockDeliveryClient(BaseDeliveryClient):
    name = "mock"

    def __init__(self, failures: dict[str, str] | None = None) -> None:
        self.failures = dict(failures or {})
        self.sent: list[MulticastPayload] = []

    def send_multicast(self, payload: MulticastPayload) -> DeliveryResponse:
        self.sent.append(payload)
        responses = []
        for index, token in enumerate(payload.tokens):
            error = self.failures.get(token)
            if error is None:
                responses.append(DeliveryOutcome(message_id=f"mock-{len(self.sent)}-{index}"))
            else:
                responses.append(DeliveryOutcome(error=error))
        failure_count = sum(1 for outcome in responses if not outcome.success)
        return DeliveryResponse(
            success_count=len(responses) - failure_count,
            failure_count=failure_count,
            responses=responses,
        )


def to_multicast_message(payload: MulticastPayload) -> messaging.MulticastMessage:
    """Convert a built payload into the firebase_admin message type.

    Empty strings and lists become None so they are left out of the request.
    """
    android = payload.android
    notification = android.notification
    return messaging.MulticastMessage(
        tokens=list(payload.tokens),
        data=dict(payload.data) or None,
        notification=messaging.Notification(
            title=payload.notification.title or None,
            body=payload.notification.body or None,
            image=payload.notification.image or None,
        ),
        android=messaging.AndroidConfig(
            collapse_key=android.collapse_key or None,
            priority=android.priority or None,
            ttl=android.ttl,
            data=dict(android.data) or None,
            notification=messaging.AndroidNotification(
                title=notification.title or None,
                body=notification.body or None,
                icon=notification.icon or None,
                color=notification.color or None,
                sound=notification.sound or None,
                tag=notification.tag or None,
                click_action=notification.click_action or None,
                body_loc_key=notification.body_loc_key or None,
                body_loc_args=list(notification.body_loc_args) or None,
                title_loc_key=notification.title_loc_key or None,
                title_loc_args=list(notification.title_loc_args) or None,
                channel_id=notification.channel_id or None,
                image=notification.image or None,
                notification_count=notification.notification_count,
            ),
        ),
    )


def from_batch_response(batch: messaging.BatchResponse) -> DeliveryResponse:
    responses = [
        DeliveryOutcome(message_id=item.message_id)
        if item.success
        else DeliveryOutcome(error=str(item.exception))
        for item in batch.responses
    ]
    return DeliveryResponse(
        success_count=batch.success_count,
        failure_count=batch.failure_count,
        responses=responses,
    )


class FirebaseDeliveryClient(BaseDeliveryClient):
    name = "fcm"

    def __init__(self, app: firebase_admin.App) -> None:
        self.app = app

    @classmethod
    def create(cls, project_id: str, service_account_key: str, http_timeout: float) -> "FirebaseDeliveryClient":
        if not service_account_key:
            raise ClientInitError("FCM service account key is not configured")
        logger.info("Creating FCM v1 client", extra={"project_id": project_id})
        try:
            credential = credentials.Certificate(service_account_key)
            app = firebase_admin.initialize_app(
                credential,
                options={"projectId": project_id, "httpTimeout": http_timeout},
                name=FIREBASE_APP_NAME,
            )
        except (ValueError, OSError) as exc:
            raise ClientInitError(f"unable to create firebase app: {exc}") from exc
        return cls(app)

    def send_multicast(self, payload: MulticastPayload) -> DeliveryResponse:
        batch = messaging.send_each_for_multicast(to_multicast_message(payload), app=self.app)
        return from_batch_response(batch)


class DeliveryClientProvider:
    """Create the delivery client once and hand out the same instance afterwards.

    Concurrent first calls run the factory exactly once. A failed creation is
    not cached, so the next call tries again.
    """

    def __init__(self, factory: Callable[[], BaseDeliveryClient]) -> None:
        self._factory = factory
        self._client: BaseDeliveryClient | None = None
        self._lock = threading.Lock()

    @property
    def initialized(self) -> bool:
        return self._client is not None

    def get(self) -> BaseDeliveryClient:
        client = self._client
        if client is not None:
            return client
        with self._lock:
            if self._client is None:
                try:
                    self._client = self._factory()
                except ClientInitError:
                    raise
                except Exception as exc:
                    raise ClientInitError(f"unable to create delivery client: {exc}") from exc
                logger.info("Delivery client initialized", extra={"provider": self._client.name})
            return self._client


def create_client_provider(settings: Settings) -> DeliveryClientProvider:
    if settings.push_provider == "fcm":
        return DeliveryClientProvider(
            lambda: FirebaseDeliveryClient.create(
                project_id=settings.fcm_project_id,
                service_account_key=settings.fcm_service_account_key,
                http_timeout=settings.fcm_http_timeout_seconds,
            )
        )
    return DeliveryClientProvider(MockDeliveryClient)
