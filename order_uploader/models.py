"""
Models for order_uploader.

Immutable dataclasses describing files, chunks and results of one batch upload.
"""
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Dict, Any, Tuple, List
from enum import Enum
import mimetypes
import random


DEFAULT_MIME_TYPE = "application/octet-stream"
MB = 1024 * 1024


class UploadStatus(Enum):
    """Batch upload status."""
    SUCCESS = "success"
    FAILED = "failed"
    PARTIAL = "partial"  # Batch ok but some files rejected remotely


@dataclass(frozen=True)
class FileDescriptor:
    """
    A file selected for upload.

    Bytes come either from ``raw_bytes`` or from ``path``; they are only read
    by the encoder, once.
    """
    name: str
    size: int
    mime_type: str = DEFAULT_MIME_TYPE
    raw_bytes: Optional[bytes] = field(default=None, repr=False)
    path: Optional[Path] = None
    is_payment_screenshot: bool = False
    options: Optional[Dict[str, Any]] = None

    @classmethod
    def from_bytes(
        cls,
        name: str,
        data: bytes,
        mime_type: Optional[str] = None,
        is_payment_screenshot: bool = False,
        options: Optional[Dict[str, Any]] = None,
    ) -> "FileDescriptor":
        return cls(
            name=name,
            size=len(data),
            mime_type=mime_type or guess_mime_type(name),
            raw_bytes=bytes(data),
            is_payment_screenshot=is_payment_screenshot,
            options=options,
        )

    @classmethod
    def from_path(
        cls,
        path: Path,
        mime_type: Optional[str] = None,
        is_payment_screenshot: bool = False,
        options: Optional[Dict[str, Any]] = None,
    ) -> "FileDescriptor":
        """Describe a file on disk (stat only, content is read at encode time)."""
        path = Path(path)
        return cls(
            name=path.name,
            size=path.stat().st_size,
            mime_type=mime_type or guess_mime_type(path.name),
            path=path,
            is_payment_screenshot=is_payment_screenshot,
            options=options,
        )

    @classmethod
    def from_data_url(
        cls,
        name: str,
        data_url: str,
        is_payment_screenshot: bool = False,
        options: Optional[Dict[str, Any]] = None,
    ) -> "FileDescriptor":
        """Build a descriptor from a ``data:<mime>;base64,...`` string."""
        from .services.encoder import FileEncoder

        mime_type = None
        if data_url.startswith("data:") and ";" in data_url:
            mime_type = data_url[5:data_url.index(";")] or None
        return cls.from_bytes(
            name,
            FileEncoder.decode(data_url),
            mime_type=mime_type,
            is_payment_screenshot=is_payment_screenshot,
            options=options,
        )


@dataclass(frozen=True)
class EncodedFile:
    """A FileDescriptor plus its base64 text. Decoding ``data`` yields the source bytes."""
    descriptor: FileDescriptor
    data: str = field(repr=False)

    @property
    def name(self) -> str:
        return self.descriptor.name

    @property
    def size(self) -> int:
        return self.descriptor.size

    @property
    def mime_type(self) -> str:
        return self.descriptor.mime_type

    @property
    def is_payment_screenshot(self) -> bool:
        return self.descriptor.is_payment_screenshot

    @property
    def options(self) -> Optional[Dict[str, Any]]:
        return self.descriptor.options

    @property
    def encoded_size(self) -> int:
        return len(self.data)

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "name": self.name,
            "data": self.data,
            "mimeType": self.mime_type,
            "size": self.size,
            "isPaymentScreenshot": self.is_payment_screenshot,
        }
        if self.options is not None:
            payload["options"] = self.options
        return payload


@dataclass(frozen=True)
class Chunk:
    """One group of files sent in a single request."""
    files: Tuple[Any, ...]
    estimated_size: int
    first_index: int = 0  # batch-wide index of files[0]

    def __len__(self) -> int:
        return len(self.files)

    @property
    def raw_size(self) -> int:
        return sum(f.size for f in self.files)


@dataclass(frozen=True)
class OrderMetadata:
    """Non-file order fields attached to every chunk request."""
    order_id: str
    total: float
    vpa: str

    def __post_init__(self):
        if not self.order_id:
            raise ValueError("order_id is required")
        if self.total < 0:
            raise ValueError(f"order total must be >= 0, got {self.total}")

    @classmethod
    def create(cls, total: float, vpa: str) -> "OrderMetadata":
        """New order with a random five-digit id."""
        return cls(order_id=generate_order_id(), total=total, vpa=vpa)

    def to_payload(
        self,
        chunk_index: int,
        total_chunks: int,
        timestamp: Optional[str] = None,
    ) -> Dict[str, Any]:
        return {
            "orderId": self.order_id,
            "total": self.total,
            "vpa": self.vpa,
            "timestamp": timestamp or utc_timestamp(),
            "chunkIndex": chunk_index,
            "totalChunks": total_chunks,
        }


@dataclass(frozen=True)
class UploadedFileRef:
    """A file the ingestion endpoint accepted."""
    name: str
    file_id: str
    web_view_link: Optional[str] = None
    web_content_link: Optional[str] = None
    size: Optional[int] = None
    mime_type: Optional[str] = None

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "UploadedFileRef":
        if not isinstance(data, dict):
            raise ValueError(f"file entry must be an object, got {type(data).__name__}")
        if "fileId" not in data or "name" not in data:
            raise ValueError(f"file entry missing 'fileId' or 'name': {sorted(data)}")
        size = data.get("size")
        if size is not None:
            try:
                size = int(size)
            except (TypeError, ValueError) as exc:
                raise ValueError(f"invalid file entry size {size!r}: {exc}") from exc
        view = data.get("webViewLink")
        return cls(
            name=str(data["name"]),
            file_id=str(data["fileId"]),
            web_view_link=view,
            web_content_link=data.get("webContentLink") or view,
            size=size,
            mime_type=data.get("mimeType"),
        )


@dataclass(frozen=True)
class PerFileError:
    """A file the endpoint rejected inside an otherwise successful chunk."""
    index: int
    error: str
    name: Optional[str] = None
    chunk: Optional[int] = None

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "PerFileError":
        if not isinstance(data, dict) or "error" not in data:
            raise ValueError(f"error entry must be an object with 'error': {data!r}")
        try:
            index = int(data.get("index", 0))
        except (TypeError, ValueError) as exc:
            raise ValueError(f"invalid error entry index {data.get('index')!r}: {exc}") from exc
        return cls(
            index=index,
            error=str(data["error"]),
            name=data.get("name"),
        )

    def describe(self) -> str:
        label = self.name or f"File {self.index}"
        return f"{label}: {self.error}"


@dataclass(frozen=True)
class ChunkResult:
    """Parsed response for one chunk request."""
    success: bool
    uploaded_count: int
    total_count: int
    files: Tuple[UploadedFileRef, ...] = ()
    errors: Tuple[PerFileError, ...] = ()

    @property
    def has_errors(self) -> bool:
        return len(self.errors) > 0

    @classmethod
    def from_payload(cls, data: Any) -> "ChunkResult":
        """Validate the endpoint's response shape. Raises ValueError when it does not match."""
        if not isinstance(data, dict):
            raise ValueError(f"response must be a JSON object, got {type(data).__name__}")
        if not isinstance(data.get("success"), bool):
            raise ValueError("response missing boolean 'success'")

        files = data.get("files") or []
        errors = data.get("errors") or []
        if not isinstance(files, list) or not isinstance(errors, list):
            raise ValueError("'files' and 'errors' must be arrays")

        refs = tuple(UploadedFileRef.from_payload(f) for f in files)
        try:
            uploaded = int(data.get("uploadedCount", len(refs)))
            total = int(data.get("totalCount", len(refs) + len(errors)))
        except (TypeError, ValueError) as exc:
            raise ValueError(f"invalid count fields: {exc}") from exc

        return cls(
            success=data["success"],
            uploaded_count=uploaded,
            total_count=total,
            files=refs,
            errors=tuple(PerFileError.from_payload(e) for e in errors),
        )


@dataclass(frozen=True)
class BatchResult:
    """Immutable accumulation of chunk results for one upload_batch call."""
    order_id: str
    total_files: int
    total_chunks: int = 0
    chunks_completed: int = 0
    uploaded_count: int = 0
    files: Tuple[UploadedFileRef, ...] = ()
    errors: Tuple[PerFileError, ...] = ()

    @property
    def failed_count(self) -> int:
        return len(self.errors)

    @property
    def complete(self) -> bool:
        return self.chunks_completed == self.total_chunks

    @property
    def status(self) -> UploadStatus:
        if not self.complete:
            return UploadStatus.FAILED
        if self.errors:
            return UploadStatus.PARTIAL
        return UploadStatus.SUCCESS

    @property
    def success(self) -> bool:
        return self.status == UploadStatus.SUCCESS

    def with_chunk(self, files: List[UploadedFileRef], errors: List[PerFileError], uploaded: int) -> "BatchResult":
        return replace(
            self,
            chunks_completed=self.chunks_completed + 1,
            uploaded_count=self.uploaded_count + uploaded,
            files=self.files + tuple(files),
            errors=self.errors + tuple(errors),
        )

    def summary(self) -> str:
        text = f"{self.uploaded_count} of {self.total_files} files uploaded"
        if self.errors:
            reasons = "; ".join(e.describe() for e in self.errors)
            text += f", {self.failed_count} failed: {reasons}"
        return text


@dataclass(frozen=True)
class UploadConfig:
    """Immutable configuration for batch uploads."""
    endpoint_url: str = ""
    ceiling: int = int(4.5 * MB)  # max request body, bytes
    max_files: int = 10  # payment screenshots not counted
    max_file_size: Optional[int] = None
    max_total_size: Optional[int] = None
    encoding_inflation: float = 4 / 3
    per_file_overhead: int = 128
    metadata_slack: int = 256
    timeout: float = 120.0

    def __post_init__(self):
        if self.ceiling <= 0:
            raise ValueError(f"ceiling must be positive, got {self.ceiling}")
        if self.max_files <= 0:
            raise ValueError(f"max_files must be positive, got {self.max_files}")


def guess_mime_type(name: str) -> str:
    mime_type, _ = mimetypes.guess_type(name)
    return mime_type or DEFAULT_MIME_TYPE


def generate_order_id() -> str:
    return str(random.randint(10000, 99999))


def utc_timestamp() -> str:
    """ISO-8601 UTC timestamp with millisecond precision (fixed width)."""
    now = datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"
