"""Core orchestrator - encode, plan, send and aggregate one order's files."""
import logging
from typing import Any, Callable, Dict, Optional, Sequence

import httpx

from ..errors import (
    BatchTooLargeError,
    FileTooLargeError,
    TooManyFilesError,
    UploaderError,
    ValidationError,
)
from ..models import (
    BatchResult,
    ChunkResult,
    FileDescriptor,
    OrderMetadata,
    PerFileError,
    UploadConfig,
    MB,
    utc_timestamp,
)
from ..protocols import IChunkTransport, IIngestionClient
from ..services.api_client import IngestionClient
from ..services.classifier import ErrorClassifier
from ..services.encoder import FileEncoder
from ..services.planner import ChunkPlanner, estimate_metadata_overhead
from ..utils.cancellation import CancellationToken
from ..utils.events import EventEmitter, UploadProgress

from .aggregator import ProgressReporter, ResultAggregator
from .transport import UploadTransport

logger = logging.getLogger(__name__)


class BatchUploader:
    """
    Uploads an order's files to the ingestion endpoint in size-bounded chunks.

    Chunks are sent strictly one after another; the first hard failure aborts
    the batch. Files accepted by earlier chunks stay uploaded (no rollback),
    and the exception carries them in ``partial_result``.

    Usage:
        async with BatchUploader(UploadConfig(endpoint_url=url)) as uploader:
            uploader.on_file_error(lambda err: print(err.describe()))
            result = await uploader.upload_batch(files, order, on_progress=print)

        # Tests inject a transport and skip HTTP entirely
        uploader = BatchUploader(config, transport=fake_transport)
    """

    def __init__(
        self,
        config: Optional[UploadConfig] = None,
        transport: Optional[IChunkTransport] = None,
        client: Optional[IIngestionClient] = None,
        encoder: Optional[FileEncoder] = None,
        classifier: Optional[ErrorClassifier] = None,
    ):
        """
        Initialize uploader with dependencies.

        Args:
            config: Upload configuration (endpoint, ceiling, guards)
            transport: Pre-built chunk transport; built from ``client`` if omitted
            client: Pre-built ingestion client; an IngestionClient is opened in
                ``__aenter__`` if neither client nor transport is given
            encoder: File encoder
            classifier: Error classifier shared with the transport
        """
        self._config = config or UploadConfig()
        self._classifier = classifier or ErrorClassifier()
        self._encoder = encoder or FileEncoder()
        self._planner = ChunkPlanner(
            ceiling=self._config.ceiling,
            encoding_inflation=self._config.encoding_inflation,
            per_file_overhead=self._config.per_file_overhead,
        )
        self._client = client
        self._transport = transport
        self._owned_client: Optional[IngestionClient] = None
        self._events = EventEmitter()

        if self._transport is None and self._client is not None:
            self._transport = self._build_transport(self._client)

    async def __aenter__(self):
        """Open an HTTP client when none was injected."""
        if self._client is None and self._transport is None:
            if not self._config.endpoint_url:
                raise ValueError("UploadConfig.endpoint_url is required when no transport is injected")
            self._owned_client = IngestionClient(self._config.endpoint_url, timeout=self._config.timeout)
            await self._owned_client.__aenter__()
            self._client = self._owned_client
            self._transport = self._build_transport(self._client)
        return self

    async def __aexit__(self, *args):
        """Cleanup resources."""
        if self._owned_client:
            await self._owned_client.__aexit__(*args)
            self._owned_client = None
            self._client = None
            self._transport = None

    @property
    def config(self) -> UploadConfig:
        return self._config

    @property
    def planner(self) -> ChunkPlanner:
        return self._planner

    # Event subscription methods
    def on_progress(self, callback: Callable[[UploadProgress], None]):
        """Called after every completed chunk. Receives UploadProgress."""
        self._events.on("progress", callback)

    def on_chunk_start(self, callback: Callable[[int, int, Any], None]):
        """Called before a chunk is sent. Receives (chunk_index, total_chunks, Chunk)."""
        self._events.on("chunk_start", callback)

    def on_chunk_complete(self, callback: Callable[[int, ChunkResult], None]):
        """Called when a chunk response was accepted. Receives (chunk_index, ChunkResult)."""
        self._events.on("chunk_complete", callback)

    def on_file_error(self, callback: Callable[[PerFileError], None]):
        """Called for each file rejected inside a successful chunk."""
        self._events.on("file_error", callback)

    def on_finish(self, callback: Callable[[BatchResult], None]):
        """Called when every chunk completed. Receives BatchResult."""
        self._events.on("finish", callback)

    def on_error(self, callback: Callable[[UploaderError], None]):
        """Called when the batch aborts. Receives the UploaderError about to be raised."""
        self._events.on("error", callback)

    def validate(self, files: Sequence[FileDescriptor]) -> None:
        """Cheap checks that need no file content. Raises ValidationError."""
        if not files:
            raise ValidationError("Please upload at least one file")

        max_files = self._config.max_files
        counted = [f for f in files if not f.is_payment_screenshot]
        if len(counted) > max_files:
            raise TooManyFilesError(
                f"Maximum {max_files} files allowed per order. "
                f"Please remove {len(counted) - max_files} file(s) and try again."
            )

        max_file_size = self._config.max_file_size
        if max_file_size is not None:
            for f in files:
                if f.size > max_file_size:
                    raise FileTooLargeError(
                        f"File \"{f.name}\" is too large ({f.size / MB:.2f}MB). "
                        f"Maximum file size is {max_file_size / MB:.0f}MB per file.",
                        filename=f.name,
                        size=f.size,
                        max_size=max_file_size,
                    )

        max_total_size = self._config.max_total_size
        total_size = sum(f.size for f in files)
        if max_total_size is not None and total_size > max_total_size:
            raise BatchTooLargeError(
                f"Total size exceeds limit ({total_size / MB:.2f}MB). "
                f"Maximum total is {max_total_size / MB:.0f}MB. "
                "Please compress files or upload fewer files."
            )

    async def upload_batch(
        self,
        files: Sequence[FileDescriptor],
        order: OrderMetadata,
        on_progress: Optional[Callable[[UploadProgress], None]] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> BatchResult:
        """
        Upload all files of one order.

        Flow:
        1. Validate counts and sizes (no I/O)
        2. Encode every file (whole batch held in memory)
        3. Plan chunks under the ceiling
        4. Send chunks one by one, folding results into a BatchResult

        Args:
            files: Files in submission order
            order: Order metadata attached to every chunk
            on_progress: Called after each chunk with UploadProgress
            cancel_token: Checked before each chunk is sent

        Returns:
            BatchResult; per-file rejections are in ``errors``, not raised

        Raises:
            ValidationError: before any network call
            FileReadError: a file could not be read, before any network call
            TransportError, RemoteError, QuotaError: a chunk failed; remaining
                chunks are not sent
            UploadCancelledError: the token was cancelled between chunks
        """
        if self._transport is None:
            raise RuntimeError("BatchUploader not initialized. Use 'async with' context.")

        token = cancel_token or CancellationToken()
        batch: Optional[BatchResult] = None

        try:
            self.validate(files)
            overhead = estimate_metadata_overhead(order, self._config.metadata_slack)
            self._planner.check_fits(files, overhead)

            logger.info(
                f"[{utc_timestamp()}] Starting batch upload: {len(files)} file(s) [Order: {order.order_id}]"
            )

            encoded = await self._encoder.encode_many(files)
            chunks = self._planner.plan(encoded, overhead)
            logger.info(f"[Upload] Split {len(files)} file(s) into {len(chunks)} chunk(s) for upload")

            batch = ResultAggregator.start(order.order_id, len(files), len(chunks))
            reporter = ProgressReporter(self._events, on_progress)

            for index, chunk in enumerate(chunks, 1):
                token.raise_if_cancelled()
                await self._events.emit("chunk_start", index, len(chunks), chunk)

                result = await self._send(chunk, order, index, len(chunks))

                previous_errors = len(batch.errors)
                batch = ResultAggregator.merge(batch, chunk, result, index)
                await self._events.emit("chunk_complete", index, result)
                for error in batch.errors[previous_errors:]:
                    await self._events.emit("file_error", error)
                await reporter.report(batch)

        except UploaderError as exc:
            if exc.partial_result is None:
                exc.partial_result = batch
            logger.error(f"[{utc_timestamp()}] Batch upload failed [Order: {order.order_id}]: {exc}")
            await self._events.emit("error", exc)
            raise

        logger.info(
            f"[{utc_timestamp()}] Batch upload completed: {batch.uploaded_count}/{len(files)} file(s) "
            f"uploaded in {batch.total_chunks} chunk(s) [Order: {order.order_id}]"
        )
        await self._events.emit("finish", batch)
        return batch

    async def health_check(self) -> Dict[str, Any]:
        """GET the endpoint with no params."""
        response = await self._get()
        if not response.is_success:
            raise self._classifier.from_response(response.status_code, response.text, response.reason_phrase)
        try:
            data = response.json()
        except ValueError:
            return {"status": response.text}
        return data if isinstance(data, dict) else {"status": data}

    async def get_order(self, order_id: str) -> Optional[Dict[str, Any]]:
        """Look up a stored order by id. Returns None when the endpoint does not know it."""
        if not order_id:
            raise ValidationError("Order ID is required")

        logger.info(f"[Order] Fetching order {order_id}...")
        response = await self._get({"orderId": order_id})
        if response.status_code == 404:
            return None
        if not response.is_success:
            raise self._classifier.from_response(response.status_code, response.text, response.reason_phrase)

        try:
            data = response.json()
        except ValueError as exc:
            raise self._classifier.malformed(str(exc), response.status_code, response.text) from exc

        if not isinstance(data, dict) or not data.get("success") or not data.get("order"):
            logger.info(f"[Order] Order {order_id} not found")
            return None
        return data["order"]

    async def _send(self, chunk, order: OrderMetadata, index: int, total: int) -> ChunkResult:
        try:
            return await self._transport.send_chunk(chunk, order, index, total)
        except UploaderError:
            raise
        except Exception as exc:
            # Injected transports may raise anything; keep the raw message.
            raise self._classifier.from_exception(exc) from exc

    async def _get(self, params: Optional[Dict[str, Any]] = None):
        if self._client is None:
            raise RuntimeError("BatchUploader has no ingestion client for GET requests")
        try:
            return await self._client.get(params)
        except httpx.HTTPError as exc:
            raise self._classifier.from_exception(exc) from exc

    def _build_transport(self, client: IIngestionClient) -> UploadTransport:
        return UploadTransport(client, self._classifier, ceiling=self._config.ceiling)
