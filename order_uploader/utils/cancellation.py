"""Cooperative cancellation for long multi-chunk batches."""
from typing import Optional

from ..errors import UploadCancelledError


class CancellationToken:
    """
    Flag checked between chunk sends.

    Cancelling never interrupts a request already in flight; the batch stops
    before the next chunk is sent.
    """

    def __init__(self):
        self._cancelled = False
        self._reason: Optional[str] = None

    def cancel(self, reason: Optional[str] = None) -> None:
        self._cancelled = True
        self._reason = reason

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise UploadCancelledError(self._reason or "Upload cancelled")
