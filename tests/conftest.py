from __future__ import annotations

from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient

from push_dispatch.config import Settings
from push_dispatch.models.notification import DeliveryOutcome, DeliveryResponse, MulticastPayload
from push_dispatch.notifications.providers import BaseDeliveryClient, DeliveryClientProvider
from push_dispatch.notifications.service import PushDispatchService
from push_dispatch.storage.repository import MemoryAuditLog
from push_dispatch.storage.stats import MemoryStatStorage


class FakeDeliveryClient(BaseDeliveryClient):
    """Replays a canned response, or raises ``error`` to simulate a transport failure."""

    name = "fake"

    def __init__(
        self,
        outcomes: dict[str, str | None] | None = None,
        response: DeliveryResponse | None = None,
        error: Exception | None = None,
    ) -> None:
        self.outcomes = outcomes or {}
        self.response = response
        self.error = error
        self.calls: list[MulticastPayload] = []

    def send_multicast(self, payload: MulticastPayload) -> DeliveryResponse:
        self.calls.append(payload)
        if self.error is not None:
            raise self.error
        if self.response is not None:
            return self.response
        responses = [
            DeliveryOutcome(error=self.outcomes[token]) if self.outcomes.get(token) else DeliveryOutcome(message_id=token)
            for token in payload.tokens
        ]
        failures = sum(1 for item in responses if item.error)
        return DeliveryResponse(success_count=len(responses) - failures, failure_count=failures, responses=responses)


@pytest.fixture
def fake_client() -> FakeDeliveryClient:
    return FakeDeliveryClient()


@pytest.fixture
def test_settings() -> Settings:
    return Settings(log_hide_token=False, max_notification=100)


@pytest.fixture
def make_service(test_settings):
    def _make(client: BaseDeliveryClient) -> dict:
        factory_calls: list[int] = []

        def factory() -> BaseDeliveryClient:
            factory_calls.append(1)
            return client

        stats = MemoryStatStorage()
        audit_log = MemoryAuditLog()
        service = PushDispatchService(
            client_provider=DeliveryClientProvider(factory),
            stats=stats,
            audit_log=audit_log,
            settings=test_settings,
        )
        return {
            "service": service,
            "stats": stats,
            "audit_log": audit_log,
            "factory_calls": factory_calls,
        }

    return _make


@pytest.fixture
def api_client() -> Generator[TestClient, None, None]:
    from push_dispatch.app import app

    with TestClient(app) as client:
        yield client
