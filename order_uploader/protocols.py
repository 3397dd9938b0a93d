"""
Protocols (Interfaces) for Dependency Inversion.

The orchestrator depends on these, so tests can inject a fake transport
instead of going through HTTP.
"""
from typing import Any, Dict, Optional, Protocol, runtime_checkable

from .models import Chunk, ChunkResult, OrderMetadata


@runtime_checkable
class IIngestionClient(Protocol):
    """Interface for raw HTTP calls to the ingestion endpoint."""

    async def post(self, body: bytes) -> Any:
        """POST a JSON body, return the response whatever its status."""
        ...

    async def get(self, params: Optional[Dict[str, Any]] = None) -> Any:
        """GET with optional query params."""
        ...


@runtime_checkable
class IChunkTransport(Protocol):
    """Interface for sending one chunk and getting its parsed result."""

    async def send_chunk(
        self,
        chunk: Chunk,
        order: OrderMetadata,
        chunk_index: int,
        total_chunks: int,
    ) -> ChunkResult:
        """Send one chunk. Raises an UploaderError subclass on failure."""
        ...
