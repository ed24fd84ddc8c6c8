"""Normalized transport outcomes: errors and the cancellation sentinel."""

from typing import Optional

OFFLINE_MESSAGE = "No internet connection - please check your network."
TRANSIENT_MESSAGE = "Whoops, something went wrong. Please try again in a moment."
SESSION_EXPIRED_MESSAGE = "Your session has expired. Please log in again."


class ApiError(Exception):
    """
    A failed request, normalized at the transport boundary.

    code is the HTTP status when the server answered, otherwise 0.
    """

    def __init__(self, code: int, message: str, status: str = "error"):
        super().__init__(message)
        self.code = code
        self.status = status
        self.message = message

    @property
    def is_network_error(self) -> bool:
        return self.code == 0

    @property
    def retryable(self) -> bool:
        """Network failures and 5xx responses may be retried by reads."""
        return self.code == 0 or self.code >= 500

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code}, message={self.message!r})"


class AuthenticationRequired(ApiError):
    """401 from the backend. Credentials have already been cleared."""

    def __init__(self, message: Optional[str] = None, status: str = "error"):
        super().__init__(401, message or SESSION_EXPIRED_MESSAGE, status=status)


class _Cancelled:
    """Sentinel for a request whose cancellation token fired."""

    _instance: Optional["_Cancelled"] = None

    def __new__(cls) -> "_Cancelled":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "CANCELLED"


CANCELLED = _Cancelled()


def is_cancelled(value: object) -> bool:
    return value is CANCELLED
