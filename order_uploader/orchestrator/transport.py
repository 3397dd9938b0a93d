"""Upload transport - sends one chunk and parses the endpoint's answer."""
from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional

import httpx

from ..errors import PayloadTooLargeError
from ..models import Chunk, ChunkResult, OrderMetadata, MB
from ..protocols import IIngestionClient
from ..services.classifier import ErrorClassifier
from ..utils import jsonwire

logger = logging.getLogger(__name__)

# Bodies this close to the ceiling are logged as a warning.
NEAR_CEILING_RATIO = 0.9


def build_chunk_request(
    chunk: Chunk,
    order: OrderMetadata,
    chunk_index: int,
    total_chunks: int,
    timestamp: Optional[str] = None,
) -> Dict[str, Any]:
    """Request body for one chunk. ``chunk_index`` is 1-based on the wire."""
    return {
        "files": [f.to_payload() for f in chunk.files],
        "orderData": order.to_payload(chunk_index, total_chunks, timestamp),
    }


class UploadTransport:
    """
    Sends chunks to the ingestion endpoint, one request per call.

    Implements IChunkTransport. Never retries: a chunk POST is not idempotent,
    a retried request could store the same files twice.
    """

    def __init__(
        self,
        client: IIngestionClient,
        classifier: Optional[ErrorClassifier] = None,
        ceiling: Optional[int] = None,
    ):
        self._client = client
        self._classifier = classifier or ErrorClassifier()
        self._ceiling = ceiling

    async def send_chunk(
        self,
        chunk: Chunk,
        order: OrderMetadata,
        chunk_index: int,
        total_chunks: int,
    ) -> ChunkResult:
        body = jsonwire.encode(build_chunk_request(chunk, order, chunk_index, total_chunks))
        size_mb = len(body) / MB

        if self._ceiling is not None:
            if len(body) > self._ceiling:
                raise PayloadTooLargeError(
                    f"Chunk {chunk_index} payload size ({size_mb:.2f}MB) exceeds the "
                    f"{self._ceiling / MB:.2f}MB request limit."
                )
            if len(body) > self._ceiling * NEAR_CEILING_RATIO:
                logger.warning(
                    f"[Upload] Chunk {chunk_index} payload is large ({size_mb:.2f}MB), "
                    f"close to the {self._ceiling / MB:.2f}MB limit"
                )

        logger.info(
            f"[Upload] Uploading chunk {chunk_index}/{total_chunks} "
            f"({len(chunk)} file(s), {size_mb:.2f}MB)"
        )

        started = time.monotonic()
        try:
            response = await self._client.post(body)
        except httpx.HTTPError as exc:
            logger.error(f"[Upload] Chunk {chunk_index} request failed: {exc}")
            raise self._classifier.from_exception(exc) from exc

        elapsed_ms = (time.monotonic() - started) * 1000
        logger.info(
            f"[Upload] Chunk {chunk_index} completed in {elapsed_ms:.0f}ms, status: {response.status_code}"
        )

        text = response.text
        if not response.is_success:
            logger.error(f"[Upload] Error response for chunk {chunk_index} ({response.status_code}): {text[:500]}")
            raise self._classifier.from_response(response.status_code, text, response.reason_phrase)

        try:
            result = ChunkResult.from_payload(response.json())
        except ValueError as exc:
            logger.error(f"[Upload] Chunk {chunk_index} returned an unparsable body: {exc}")
            raise self._classifier.malformed(str(exc), response.status_code, text) from exc

        logger.debug(
            f"[Upload] Chunk {chunk_index} response: success={result.success} "
            f"uploaded={result.uploaded_count}/{result.total_count} errors={len(result.errors)}"
        )

        if not result.success:
            raise self._classifier.from_response(
                response.status_code, text, "Remote batch upload failed"
            )

        if result.has_errors:
            logger.warning(
                f"[Upload] Chunk {chunk_index} errors (some files may have failed): "
                + ", ".join(e.describe() for e in result.errors)
            )

        return result
