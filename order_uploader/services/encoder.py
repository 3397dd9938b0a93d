"""
File Encoder - Single Responsibility: turn file bytes into transport-safe base64.
"""
import asyncio
import base64
import binascii
import logging
from dataclasses import replace
from typing import List, Sequence

from ..errors import FileReadError
from ..models import EncodedFile, FileDescriptor

logger = logging.getLogger(__name__)

_DATA_URL_PREFIX = "data:"


def strip_data_url(text: str) -> str:
    """Remove a ``data:<mime>;base64,`` header if present."""
    if text.startswith(_DATA_URL_PREFIX) and "," in text:
        return text.split(",", 1)[1]
    return text


class FileEncoder:
    """
    Lossless base64 encoder for FileDescriptors.

    Sources on disk are read once, in a worker thread so large files do not
    block the event loop.
    """

    async def encode(self, file: FileDescriptor) -> EncodedFile:
        raw = await self._read(file)
        if len(raw) != file.size:
            logger.debug(f"{file.name}: declared size {file.size} but read {len(raw)} bytes")
            file = replace(file, size=len(raw))
        return EncodedFile(descriptor=file, data=self.encode_bytes(raw))

    async def encode_many(self, files: Sequence[FileDescriptor]) -> List[EncodedFile]:
        """Encode every file in order. Any read error aborts the whole batch."""
        encoded = []
        for file in files:
            encoded.append(await self.encode(file))
        return encoded

    @staticmethod
    def encode_bytes(raw: bytes) -> str:
        return base64.b64encode(raw).decode("ascii")

    @staticmethod
    def decode(text: str) -> bytes:
        """Inverse of encode_bytes; also accepts data URLs."""
        try:
            return base64.b64decode(strip_data_url(text.strip()), validate=True)
        except binascii.Error as exc:
            raise ValueError(f"invalid base64 data: {exc}") from exc

    async def _read(self, file: FileDescriptor) -> bytes:
        if file.raw_bytes is not None:
            return file.raw_bytes
        if file.path is None:
            raise FileReadError(f"File \"{file.name}\" has no content to read", filename=file.name)
        try:
            return await asyncio.to_thread(file.path.read_bytes)
        except OSError as exc:
            raise FileReadError(
                f"Could not read file \"{file.name}\": {exc}", filename=file.name
            ) from exc
