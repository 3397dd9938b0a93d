"""Result aggregation and progress reporting for chunked uploads."""
from dataclasses import replace
from typing import Callable, Optional, Sequence, Tuple

from ..models import BatchResult, Chunk, ChunkResult, PerFileError
from ..utils.events import EventEmitter, UploadProgress, invoke_listener


class ResultAggregator:
    """
    Folds ChunkResults into an immutable BatchResult.

    Per-file errors inside a successful chunk are kept as data, never raised,
    so callers can report "9 of 10 files uploaded, 1 failed: <reason>".
    """

    @staticmethod
    def start(order_id: str, total_files: int, total_chunks: int) -> BatchResult:
        return BatchResult(order_id=order_id, total_files=total_files, total_chunks=total_chunks)

    @staticmethod
    def merge(batch: BatchResult, chunk: Chunk, result: ChunkResult, chunk_index: int) -> BatchResult:
        """Return a new BatchResult including ``result``. Error indices become batch-wide."""
        errors = [_globalize(e, chunk, chunk_index) for e in result.errors]
        return batch.with_chunk(list(result.files), errors, result.uploaded_count)

    @classmethod
    def fold(cls, batch: BatchResult, outcomes: Sequence[Tuple[Chunk, ChunkResult, int]]) -> BatchResult:
        """Merge ``(chunk, result, chunk_index)`` triples in order."""
        for chunk, result, chunk_index in outcomes:
            batch = cls.merge(batch, chunk, result, chunk_index)
        return batch


class ProgressReporter:
    """
    Emits an UploadProgress after each completed chunk.

    The per-call callback runs first, then ``progress`` subscribers on the
    shared emitter. Both run before the next chunk is sent.
    """

    def __init__(
        self,
        events: Optional[EventEmitter] = None,
        callback: Optional[Callable[[UploadProgress], None]] = None,
    ):
        self._events = events
        self._callback = callback

    async def report(self, batch: BatchResult) -> UploadProgress:
        progress = UploadProgress(
            uploaded=batch.uploaded_count,
            total=batch.total_files,
            chunk=batch.chunks_completed,
            total_chunks=batch.total_chunks,
        )
        if self._callback is not None:
            await invoke_listener("progress", self._callback, progress)
        if self._events is not None:
            await self._events.emit("progress", progress)
        return progress


def _globalize(error: PerFileError, chunk: Chunk, chunk_index: int) -> PerFileError:
    name = error.name
    if name is None and 0 <= error.index < len(chunk.files):
        name = chunk.files[error.index].name
    return replace(error, index=chunk.first_index + error.index, name=name, chunk=chunk_index)
