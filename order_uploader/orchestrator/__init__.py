"""Orchestrator package - chunked batch upload workflow."""
from .aggregator import ProgressReporter, ResultAggregator
from .core import BatchUploader
from .transport import UploadTransport, build_chunk_request

__all__ = [
    "BatchUploader",
    "UploadTransport",
    "build_chunk_request",
    "ResultAggregator",
    "ProgressReporter",
]
