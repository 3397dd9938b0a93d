"""Exception taxonomy for batch uploads."""
from enum import Enum
from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .models import BatchResult


class ErrorKind(Enum):
    """Semantic kind of an upload failure."""
    CORS_BLOCKED = "cors_blocked"
    QUOTA_EXCEEDED = "quota_exceeded"
    FILE_TOO_LARGE = "file_too_large"
    NETWORK_UNREACHABLE = "network_unreachable"
    MALFORMED_RESPONSE = "malformed_response"
    UNKNOWN = "unknown"


class UploaderError(Exception):
    """
    Base class for upload failures.

    ``partial_result`` holds the BatchResult accumulated before the abort,
    when chunks had already been accepted remotely.
    """
    default_kind = ErrorKind.UNKNOWN

    def __init__(
        self,
        message: str,
        kind: Optional[ErrorKind] = None,
        partial_result: Optional["BatchResult"] = None,
    ):
        super().__init__(message)
        self.message = message
        self.kind = kind or self.default_kind
        self.partial_result = partial_result


class ValidationError(UploaderError):
    """Raised before any network call when the batch cannot be sent."""


class TooManyFilesError(ValidationError):
    """File count over the configured guard."""


class BatchTooLargeError(ValidationError):
    """Total raw size over the configured guard."""


class FileTooLargeError(ValidationError):
    """A single file cannot fit in one request, or exceeds the per-file guard."""
    default_kind = ErrorKind.FILE_TOO_LARGE

    def __init__(self, message: str, filename: str, size: int, max_size: int):
        super().__init__(message)
        self.filename = filename
        self.size = size
        self.max_size = max_size


class PayloadTooLargeError(ValidationError):
    """A serialized chunk body exceeded the ceiling right before sending."""
    default_kind = ErrorKind.FILE_TOO_LARGE


class FileReadError(UploaderError):
    """A source file could not be read while encoding."""

    def __init__(self, message: str, filename: str):
        super().__init__(message)
        self.filename = filename


class TransportError(UploaderError):
    """Request never got a response (unreachable, blocked)."""
    default_kind = ErrorKind.NETWORK_UNREACHABLE


class RemoteError(UploaderError):
    """Non-2xx status, unparsable body or ``success: false`` from the endpoint."""

    def __init__(
        self,
        message: str,
        kind: Optional[ErrorKind] = None,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
    ):
        super().__init__(message, kind=kind)
        self.status_code = status_code
        self.body = body


class QuotaError(UploaderError):
    """Remote side signalled a rate or quota limit. Retry later."""
    default_kind = ErrorKind.QUOTA_EXCEEDED

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class UploadCancelledError(UploaderError):
    """The caller's cancellation token was tripped between chunks."""
