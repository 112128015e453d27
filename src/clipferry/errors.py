from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    TRANSIENT_REMOTE = "transient_remote"
    FATAL_REMOTE = "fatal_remote"
    MALFORMED_RESPONSE = "malformed_response"
    MALFORMED_INPUT = "malformed_input"
    LOCAL_IO = "local_io"
    CANCELLED = "cancelled"
    WORKER_FAULT = "worker_fault"


class ClipferryError(RuntimeError):
    kind = ErrorKind.WORKER_FAULT


class TransientRemoteError(ClipferryError):
    kind = ErrorKind.TRANSIENT_REMOTE

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class FatalRemoteError(ClipferryError):
    kind = ErrorKind.FATAL_REMOTE

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class MalformedResponseError(ClipferryError):
    kind = ErrorKind.MALFORMED_RESPONSE


class MalformedInputError(ClipferryError):
    kind = ErrorKind.MALFORMED_INPUT


class CancelledError(ClipferryError):
    kind = ErrorKind.CANCELLED


def classify(error: BaseException) -> ErrorKind:
    if isinstance(error, ClipferryError):
        return error.kind
    if isinstance(error, OSError):
        return ErrorKind.LOCAL_IO
    return ErrorKind.WORKER_FAULT
