from __future__ import annotations

from push_dispatch.models.notification import DispatchResult


class PushError(Exception):
    """Base class for failures that abort a dispatch."""


class PushValidationError(PushError):
    """The request is malformed and was rejected before building a payload."""


class PayloadError(PushError):
    """The request could not be translated into a platform payload."""


class InvalidBadgeFormat(PayloadError):
    def __init__(self, message: str = "invalid badge format") -> None:
        super().__init__(message)


class InvalidSoundFormat(PayloadError):
    def __init__(self, message: str = "invalid sound format") -> None:
        super().__init__(message)


class InvalidDataFormat(PayloadError):
    def __init__(self, message: str = "invalid data format") -> None:
        super().__init__(message)


class ClientInitError(PushError):
    """The delivery client could not be created."""


class TransportError(PushError):
    """The multicast send did not complete.

    ``result`` holds one failed log entry per submitted token.
    """

    def __init__(self, message: str, result: DispatchResult) -> None:
        super().__init__(message)
        self.result = result
