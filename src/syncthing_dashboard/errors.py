"""Error types raised by the daemon client, aggregator, and control actions."""

from enum import Enum


class ErrorKind(str, Enum):
    HTTP_STATUS = "http_status"
    TIMEOUT = "timeout"
    NETWORK = "network"


class DaemonError(Exception):
    """A single daemon API call failed.

    ``kind`` tells callers whether the daemon answered with a non-2xx status,
    the shared deadline expired, or the connection itself failed.
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        *,
        status_code: int | None = None,
        detail: str | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.status_code = status_code
        self.detail = detail

    @property
    def is_timeout(self) -> bool:
        return self.kind is ErrorKind.TIMEOUT


class BatchTimeout(Exception):
    """The batch deadline fired before every collector finished."""

    def __init__(self, timeout_s: float) -> None:
        super().__init__("Request timed out")
        self.timeout_s = timeout_s


class ControlActionFailed(Exception):
    """A pause/resume write against a daemon failed."""

    def __init__(
        self, action: str, target: str, cause: Exception, *, hint: str | None = None
    ) -> None:
        message = f"Failed to {action} {target}: {cause}"
        detail = (getattr(cause, "detail", None) or "").strip()
        if detail:
            message += f" ({detail})"
        super().__init__(message)
        self.action = action
        self.target = target
        self.cause = cause
        self.hint = hint or message
