from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Mapping, assert_never

import numpy as np

from push_dispatch.models.notification import (
    AndroidConfigPayload,
    AndroidNotificationPayload,
    DataKind,
    MulticastPayload,
    NotificationEnvelope,
    PushNotification,
    classify_data_value,
)
from push_dispatch.notifications.errors import InvalidBadgeFormat, InvalidDataFormat, InvalidSoundFormat

logger = logging.getLogger(__name__)


def format_data_value(kind: DataKind, value: Any) -> str | None:
    """Render a classified data value as the string FCM expects.

    Returns None for NULL, which callers drop from the output map.
    """
    if kind is DataKind.NULL:
        return None
    if kind is DataKind.BOOL:
        return "true" if value else "false"
    if kind is DataKind.INT:
        return str(int(value))
    if kind is DataKind.FLOAT:
        # shortest repr for the value's own width, never exponent notation
        return np.format_float_positional(value, trim="-")
    if kind is DataKind.STRING:
        return value
    assert_never(kind)


def convert_data(data: Mapping[str, Any]) -> dict[str, str]:
    converted: dict[str, str] = {}
    for key, value in data.items():
        kind = classify_data_value(value)
        if kind is None:
            logger.error(
                "FCM unsupported data value",
                extra={"key": key, "value": repr(value), "value_type": type(value).__name__},
            )
            raise InvalidDataFormat()
        if kind is DataKind.NULL:
            logger.info("Skipping null payload field", extra={"key": key})
            continue
        converted[key] = format_data_value(kind, value)
    return converted


def _resolve_sound(current: str, value: Any) -> str:
    if current or value is None:
        return current
    if not isinstance(value, str):
        logger.error("FCM unsupported sound value", extra={"value": repr(value)})
        raise InvalidSoundFormat()
    return value


def build_android_notification(req: PushNotification) -> AndroidNotificationPayload:
    fields: dict[str, Any] = {}
    sound = ""
    nested = req.notification
    if nested is not None:
        try:
            notification_count = nested.notification_count()
        except ValueError as exc:
            logger.error("FCM unsupported badge value", extra={"error": str(exc)})
            raise InvalidBadgeFormat() from exc

        sound = _resolve_sound("", nested.sound)
        fields = {
            "title": nested.title,
            "body": nested.body,
            "channel_id": nested.channel_id,
            "icon": nested.icon,
            "image": nested.image,
            "notification_count": notification_count,
            "tag": nested.tag,
            "color": nested.color,
            "click_action": nested.click_action,
            "body_loc_key": nested.body_loc_key,
            "body_loc_args": list(nested.body_loc_args),
            "title_loc_key": nested.title_loc_key,
            "title_loc_args": list(nested.title_loc_args),
        }

    fields["title"] = fields.get("title") or req.title
    fields["body"] = fields.get("body") or req.message
    fields["image"] = fields.get("image") or req.image
    fields["sound"] = _resolve_sound(sound, req.sound)
    return AndroidNotificationPayload(**fields)


def build_android_payload(req: PushNotification) -> MulticastPayload:
    """Translate a generic push request into an Android multicast payload.

    The Android notification block prefers the nested notification fields,
    while the top-level notification always carries the request's own
    title, message and image.

    Raises:
        InvalidBadgeFormat: the nested badge cannot be turned into a count.
        InvalidSoundFormat: a sound value is present but is not a string.
        InvalidDataFormat: a data value is outside the supported scalar kinds.
    """
    android_notification = build_android_notification(req)
    data = convert_data(req.data)

    ttl = timedelta(seconds=req.time_to_live) if req.time_to_live is not None else None
    android = AndroidConfigPayload(
        collapse_key=req.collapse_key,
        priority=req.priority,
        ttl=ttl,
        data=data,
        notification=android_notification,
    )

    return MulticastPayload(
        data=data,
        notification=NotificationEnvelope(title=req.title, body=req.message, image=req.image),
        android=android,
        tokens=list(req.tokens),
    )
