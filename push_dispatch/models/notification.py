from __future__ import annotations

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Literal

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, model_validator


class DataKind(str, Enum):
    """Closed set of value kinds accepted in a notification data map."""

    NULL = "null"
    BOOL = "bool"
    INT = "int"
    FLOAT = "float"
    STRING = "string"


def classify_data_value(value: Any) -> DataKind | None:
    """Return the kind of a data-map value, or None when it is unsupported.

    bool is checked before int because bool subclasses int in Python.
    """
    if value is None:
        return DataKind.NULL
    if isinstance(value, (bool, np.bool_)):
        return DataKind.BOOL
    if isinstance(value, (int, np.integer)):
        return DataKind.INT
    if isinstance(value, (float, np.floating)):
        return DataKind.FLOAT
    if isinstance(value, str):
        return DataKind.STRING
    return None


class NotificationBlock(BaseModel):
    title: str = ""
    body: str = ""
    icon: str = ""
    sound: Any = None
    channel_id: str = ""
    tag: str = ""
    color: str = ""
    click_action: str = ""
    body_loc_key: str = ""
    body_loc_args: list[str] = Field(default_factory=list)
    title_loc_key: str = ""
    title_loc_args: list[str] = Field(default_factory=list)
    image: str = ""
    badge: Any = None

    def notification_count(self) -> int | None:
        """Derive the badge count shown on the app icon.

        Accepts non-negative integers and strings of ASCII digits.
        Raises ValueError for anything else.
        """
        badge = self.badge
        if badge is None:
            return None
        if isinstance(badge, (bool, np.bool_)):
            raise ValueError(f"unsupported badge value: {badge!r}")
        if isinstance(badge, (int, np.integer)):
            count = int(badge)
        elif isinstance(badge, str) and badge.isascii() and badge.isdigit():
            count = int(badge)
        else:
            raise ValueError(f"unsupported badge value: {badge!r}")
        if count < 0:
            raise ValueError(f"unsupported badge value: {badge!r}")
        return count


class PushNotification(BaseModel):
    model_config = ConfigDict(frozen=True)

    platform: Literal["android"] = "android"
    tokens: list[str] = Field(default_factory=list)
    # legacy single-recipient field, used when an outcome has no matching token
    to: str = ""
    title: str = ""
    message: str = ""
    image: str = ""
    data: dict[str, Any] = Field(default_factory=dict)
    notification: NotificationBlock | None = None
    collapse_key: str = ""
    priority: str = ""
    time_to_live: int | None = None
    sound: Any = None


class AndroidNotificationPayload(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str = ""
    body: str = ""
    icon: str = ""
    color: str = ""
    sound: str = ""
    tag: str = ""
    click_action: str = ""
    body_loc_key: str = ""
    body_loc_args: list[str] = Field(default_factory=list)
    title_loc_key: str = ""
    title_loc_args: list[str] = Field(default_factory=list)
    channel_id: str = ""
    image: str = ""
    notification_count: int | None = None


class AndroidConfigPayload(BaseModel):
    model_config = ConfigDict(frozen=True)

    collapse_key: str = ""
    priority: str = ""
    ttl: timedelta | None = None
    data: dict[str, str] = Field(default_factory=dict)
    notification: AndroidNotificationPayload


class NotificationEnvelope(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str = ""
    body: str = ""
    image: str = ""


class MulticastPayload(BaseModel):
    model_config = ConfigDict(frozen=True)

    data: dict[str, str] = Field(default_factory=dict)
    notification: NotificationEnvelope
    android: AndroidConfigPayload
    tokens: list[str] = Field(default_factory=list)


class DeliveryOutcome(BaseModel):
    message_id: str | None = None
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.error is None


class DeliveryResponse(BaseModel):
    success_count: int
    failure_count: int
    responses: list[DeliveryOutcome] = Field(default_factory=list)


class PushStatus(str, Enum):
    SUCCEEDED_PUSH = "succeeded-push"
    FAILED_PUSH = "failed-push"


class LogEntry(BaseModel):
    token: str
    status: PushStatus
    error: str | None = None

    @model_validator(mode="after")
    def _error_iff_failed(self) -> "LogEntry":
        if (self.status == PushStatus.FAILED_PUSH) != (self.error is not None):
            raise ValueError("error must be set if and only if the push failed")
        return self


class DispatchResult(BaseModel):
    logs: list[LogEntry] = Field(default_factory=list)

    @property
    def success_count(self) -> int:
        return sum(1 for entry in self.logs if entry.status == PushStatus.SUCCEEDED_PUSH)

    @property
    def failure_count(self) -> int:
        return sum(1 for entry in self.logs if entry.status == PushStatus.FAILED_PUSH)


class AuditEntry(BaseModel):
    status: PushStatus
    platform: str = "android"
    token: str
    message: str = ""
    error: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class PushRequest(BaseModel):
    notifications: list[PushNotification] = Field(min_length=1)


class PushResponse(BaseModel):
    success: str = "ok"
    counts: int
    logs: list[LogEntry] = Field(default_factory=list)
