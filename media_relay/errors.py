"""Failure taxonomy for a single request and the replies users see for each kind."""

import enum
from typing import Optional


class ErrorKind(enum.Enum):
    INVALID_INPUT = "invalid_input"
    NEEDS_CREDENTIALS = "needs_credentials"
    UNAVAILABLE = "unavailable"
    FORMAT_UNAVAILABLE = "format_unavailable"
    FETCH_FAILED = "fetch_failed"
    ARTIFACT_MISSING = "artifact_missing"
    TOO_LARGE = "too_large"
    DELIVERY_FAILED = "delivery_failed"
    INTERNAL = "internal"


class RelayError(Exception):
    """Base error for anything that ends a request with a canned reply."""

    kind = ErrorKind.INTERNAL

    def __init__(self, detail: str = "", kind: Optional[ErrorKind] = None):
        super().__init__(detail or self.__class__.__name__)
        self.detail = detail
        if kind is not None:
            self.kind = kind


class InvalidInputError(RelayError):
    kind = ErrorKind.INVALID_INPUT


class FetchError(RelayError):
    kind = ErrorKind.FETCH_FAILED

    def __init__(self, detail: str = "", kind: Optional[ErrorKind] = None, stderr: str = "", returncode: Optional[int] = None):
        super().__init__(detail, kind)
        self.stderr = stderr
        self.returncode = returncode


class ArtifactMissingError(RelayError):
    kind = ErrorKind.ARTIFACT_MISSING


class TooLargeError(RelayError):
    kind = ErrorKind.TOO_LARGE

    def __init__(self, size: int, limit: int):
        super().__init__(f"{size} bytes > {limit} bytes")
        self.size = size
        self.limit = limit


class DeliveryError(RelayError):
    kind = ErrorKind.DELIVERY_FAILED


USER_MESSAGES = {
    ErrorKind.INVALID_INPUT: "❌ Please send a valid link.",
    ErrorKind.NEEDS_CREDENTIALS: "❌ This source requires authentication. Cookies must be configured.",
    ErrorKind.UNAVAILABLE: "❌ This media is not available. It may have been deleted or is private.",
    ErrorKind.FORMAT_UNAVAILABLE: "❌ Could not download the media. Please check the link and try again.",
    ErrorKind.FETCH_FAILED: "❌ Could not download the media. Please check the link and try again.",
    ErrorKind.ARTIFACT_MISSING: "❌ The download did not produce a file.",
    ErrorKind.TOO_LARGE: "❌ The file is too large. Bots cannot send files over the size limit.",
    ErrorKind.DELIVERY_FAILED: "⚠️ The file could not be sent. Please try again later.",
    ErrorKind.INTERNAL: "⚠️ An error occurred. Please try again.",
}


def user_message(kind: ErrorKind) -> str:
    return USER_MESSAGES.get(kind, USER_MESSAGES[ErrorKind.INTERNAL])
