"""
Order Uploader - chunked batch uploads of order files to a JSON-only ingestion endpoint.

The endpoint accepts base64 files inside JSON bodies with a hard per-request
size ceiling, so a batch is encoded, split into ordered chunks that fit under
the ceiling, and sent one chunk at a time.

Usage:
    from order_uploader import BatchUploader, FileDescriptor, OrderMetadata, UploadConfig

    config = UploadConfig(endpoint_url=url)
    order = OrderMetadata.create(total=120.0, vpa="shop@upi")
    files = [FileDescriptor.from_path(p) for p in paths]

    async with BatchUploader(config) as uploader:
        result = await uploader.upload_batch(files, order, on_progress=print)

    print(result.summary())  # "9 of 10 files uploaded, 1 failed: ..."
"""
from .orchestrator import BatchUploader, UploadTransport
from .models import (
    BatchResult,
    Chunk,
    ChunkResult,
    EncodedFile,
    FileDescriptor,
    OrderMetadata,
    PerFileError,
    UploadConfig,
    UploadedFileRef,
    UploadStatus,
)
from .errors import (
    BatchTooLargeError,
    ErrorKind,
    FileReadError,
    FileTooLargeError,
    PayloadTooLargeError,
    QuotaError,
    RemoteError,
    TooManyFilesError,
    TransportError,
    UploadCancelledError,
    UploaderError,
    ValidationError,
)
from .services import ChunkPlanner, ErrorClassifier, FileEncoder, IngestionClient
from .utils.cancellation import CancellationToken
from .utils.events import UploadProgress

__version__ = "0.1.0"
__all__ = [
    # Main
    "BatchUploader",
    "UploadTransport",
    "CancellationToken",
    "UploadProgress",
    # Models
    "BatchResult",
    "Chunk",
    "ChunkResult",
    "EncodedFile",
    "FileDescriptor",
    "OrderMetadata",
    "PerFileError",
    "UploadConfig",
    "UploadedFileRef",
    "UploadStatus",
    # Services
    "ChunkPlanner",
    "ErrorClassifier",
    "FileEncoder",
    "IngestionClient",
    # Errors
    "ErrorKind",
    "UploaderError",
    "ValidationError",
    "TooManyFilesError",
    "BatchTooLargeError",
    "FileTooLargeError",
    "PayloadTooLargeError",
    "FileReadError",
    "TransportError",
    "RemoteError",
    "QuotaError",
    "UploadCancelledError",
]
