from __future__ import annotations

from push_dispatch.config import get_settings
from push_dispatch.models.notification import PushNotification
from push_dispatch.notifications.errors import PushValidationError

# FCM keeps undelivered messages for at most four weeks
MAX_TIME_TO_LIVE = 2419200


def check_message(req: PushNotification, max_tokens: int | None = None) -> None:
    limit = max_tokens if max_tokens is not None else get_settings().max_notification

    if not req.tokens and not req.to:
        raise PushValidationError("the message must specify at least one registration ID")
    if len(req.tokens) > limit:
        raise PushValidationError(f"the message may specify at most {limit} registration IDs")
    if any(not token.strip() for token in req.tokens):
        raise PushValidationError("the token must not be empty")
    if req.time_to_live is not None and not 0 <= req.time_to_live <= MAX_TIME_TO_LIVE:
        raise PushValidationError(
            f"the message's TimeToLive field must be an integer between 0 and {MAX_TIME_TO_LIVE} (4 weeks)"
        )
