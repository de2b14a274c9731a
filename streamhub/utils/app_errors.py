"""Application error model shared by the supervisor core and the HTTP layer."""

import inspect
from enum import Enum, IntEnum
from uuid import uuid4


class HttpStatusCode(IntEnum):
    BAD_REQUEST = 400
    UNAUTHORIZED = 401
    FORBIDDEN = 403
    NOT_FOUND = 404
    CONFLICT = 409
    UNPROCESSABLE_ENTITY = 422
    INTERNAL_SERVER_ERROR = 500
    SERVICE_UNAVAILABLE = 503


class AppErrorCode(str, Enum):
    E_INTERNAL_ERROR = "E_INTERNAL_ERROR"
    E_INVALID_REQUEST = "E_INVALID_REQUEST"
    E_INVALID_STATE = "E_INVALID_STATE"
    E_INVALID_MESSAGE = "E_INVALID_MESSAGE"
    E_OUTPUT_DIR_UNAVAILABLE = "E_OUTPUT_DIR_UNAVAILABLE"
    E_UNSUPPORTED_SOURCE = "E_UNSUPPORTED_SOURCE"
    E_LAUNCH_FAILURE = "E_LAUNCH_FAILURE"
    E_SOURCE_CONFLICT = "E_SOURCE_CONFLICT"
    E_STREAM_NOT_FOUND = "E_STREAM_NOT_FOUND"
    E_STREAM_NOT_ACTIVE = "E_STREAM_NOT_ACTIVE"
    E_TERMINATION_FAILED = "E_TERMINATION_FAILED"

    def __str__(self) -> str:
        return self.value


class AppError(Exception):
    """Error raised by domain code and rendered as an ApiFailure by the API layer.

    The call site that raised the error is captured so logs point at the origin
    rather than at the exception handler.
    """

    def __init__(
        self,
        errcode: AppErrorCode | str = AppErrorCode.E_INTERNAL_ERROR,
        errmesg: str = "We are sorry, an error occurred.",
        status_code: HttpStatusCode | int = HttpStatusCode.INTERNAL_SERVER_ERROR,
    ) -> None:
        super().__init__(errmesg)
        self.errcode = str(errcode)
        self.errmesg = errmesg
        self.status_code = int(status_code)
        self.erresid = uuid4().hex[:10]
        self.caller_info = _caller_info()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(errcode={self.errcode!r}, errmesg={self.errmesg!r})"


def _caller_info() -> str:
    # Skip frames belonging to this module and AppError subclass constructors.
    for frame_info in inspect.stack()[2:]:
        if frame_info.function != "__init__":
            module = inspect.getmodule(frame_info.frame)
            module_name = module.__name__ if module else frame_info.filename
            return f"{module_name}:{frame_info.function}:{frame_info.lineno}"
    return "unknown"


class InvalidStreamError(AppError):
    def __init__(self, errmesg: str) -> None:
        super().__init__(AppErrorCode.E_INVALID_REQUEST, errmesg, HttpStatusCode.BAD_REQUEST)


class UnsupportedSourceError(AppError):
    """Source URL matches none of the classification rules."""

    def __init__(self, source_url: str) -> None:
        super().__init__(
            AppErrorCode.E_UNSUPPORTED_SOURCE,
            f"Unsupported stream source: {source_url}",
            HttpStatusCode.BAD_REQUEST,
        )
        self.source_url = source_url


class LaunchFailureError(AppError):
    """The transcoding process could not be started."""

    def __init__(self, name: str, reason: str) -> None:
        super().__init__(
            AppErrorCode.E_LAUNCH_FAILURE,
            f"Failed to launch stream {name}: {reason}",
            HttpStatusCode.INTERNAL_SERVER_ERROR,
        )
        self.name = name


class StreamNotFoundError(AppError):
    def __init__(self, name: str) -> None:
        super().__init__(
            AppErrorCode.E_STREAM_NOT_FOUND,
            f"Stream {name} not found",
            HttpStatusCode.NOT_FOUND,
        )
        self.name = name


class StreamNotActiveError(AppError):
    def __init__(self, name: str, status: str) -> None:
        super().__init__(
            AppErrorCode.E_STREAM_NOT_ACTIVE,
            f"Stream {name} is {status}",
            HttpStatusCode.CONFLICT,
        )
        self.name = name
        self.status = status


class TerminationError(AppError):
    """Best-effort termination failed; logged by callers, never propagated past stop()."""

    def __init__(self, name: str, reason: str) -> None:
        super().__init__(
            AppErrorCode.E_TERMINATION_FAILED,
            f"Failed to terminate stream {name}: {reason}",
            HttpStatusCode.INTERNAL_SERVER_ERROR,
        )
        self.name = name


class SourceConflictError(AppError):
    """A stream keeps the source URL it was first registered with."""

    def __init__(self, name: str, source_url: str) -> None:
        super().__init__(
            AppErrorCode.E_SOURCE_CONFLICT,
            f"Stream {name} is already registered with source {source_url}",
            HttpStatusCode.CONFLICT,
        )
        self.name = name
        self.source_url = source_url
