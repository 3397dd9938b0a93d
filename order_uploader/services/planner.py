"""
Chunk Planner - partitions a file list into requests that fit under the ceiling.

Greedy, stable, single pass. Files keep their submission order: the remote
side logs files per chunk index in the order they arrive, so the planner
never reorders to pack tighter.
"""
import logging
import math
from typing import List, Sequence, Union

from ..errors import FileTooLargeError, ValidationError
from ..models import Chunk, EncodedFile, FileDescriptor, OrderMetadata, MB
from ..utils import jsonwire

logger = logging.getLogger(__name__)

PlannableFile = Union[FileDescriptor, EncodedFile]

# Representative values for the envelope estimate; real values are never wider.
_SAMPLE_TIMESTAMP = "2000-01-01T00:00:00.000Z"
_SAMPLE_CHUNK_COUNTER = 99999


def estimate_metadata_overhead(order: OrderMetadata, slack: int = 0) -> int:
    """Bytes taken by a request body with no files in it, plus ``slack``."""
    envelope = {
        "files": [],
        "orderData": order.to_payload(_SAMPLE_CHUNK_COUNTER, _SAMPLE_CHUNK_COUNTER, _SAMPLE_TIMESTAMP),
    }
    return jsonwire.encoded_length(envelope) + slack


class ChunkPlanner:
    """
    Plans chunks for a batch.

    Usage:
        planner = ChunkPlanner(ceiling=4 * MB)
        chunks = planner.plan(encoded_files, estimate_metadata_overhead(order))
    """

    def __init__(
        self,
        ceiling: int,
        encoding_inflation: float = 4 / 3,
        per_file_overhead: int = 128,
    ):
        if ceiling <= 0:
            raise ValueError(f"ceiling must be positive, got {ceiling}")
        self._ceiling = ceiling
        self._inflation = encoding_inflation
        self._per_file_overhead = per_file_overhead

    @property
    def ceiling(self) -> int:
        return self._ceiling

    def estimate(self, file: PlannableFile) -> int:
        """
        Contribution of one file to a request body.

        Exact for encoded files (base64 length is known); approximated with
        the inflation factor for descriptors that are not encoded yet.
        """
        if isinstance(file, EncodedFile):
            data_size = file.encoded_size
        else:
            data_size = math.ceil(file.size * self._inflation)
        return data_size + self._structural_size(file)

    def max_file_size(self, file: PlannableFile, metadata_overhead: int) -> int:
        """Largest raw size this file could have and still fit in one request."""
        room = self._ceiling - metadata_overhead - self._structural_size(file)
        if room <= 0:
            return 0
        return int(room / self._inflation)

    def plan(self, files: Sequence[PlannableFile], metadata_overhead: int = 0) -> List[Chunk]:
        """
        Partition ``files`` into chunks whose estimated size stays under the ceiling.

        Raises:
            FileTooLargeError: a single file cannot fit in any chunk. Checked for
                every file before any chunk is emitted.
        """
        estimates = self.check_fits(files, metadata_overhead)

        chunks: List[Chunk] = []
        current: List[PlannableFile] = []
        current_size = 0
        first_index = 0

        for index, (file, estimate) in enumerate(zip(files, estimates)):
            if current and current_size + estimate + metadata_overhead > self._ceiling:
                chunks.append(Chunk(tuple(current), current_size + metadata_overhead, first_index))
                current = []
                current_size = 0
                first_index = index
            current.append(file)
            current_size += estimate

        if current:
            chunks.append(Chunk(tuple(current), current_size + metadata_overhead, first_index))

        logger.debug(
            f"Planned {len(files)} file(s) into {len(chunks)} chunk(s) "
            f"(ceiling {self._ceiling} bytes, envelope {metadata_overhead} bytes)"
        )
        return chunks

    def check_fits(self, files: Sequence[PlannableFile], metadata_overhead: int = 0) -> List[int]:
        """
        Estimate every file and fail on the first one that cannot fit alone.

        Safe to call on unencoded descriptors: with an inflation of 4/3 the
        estimate never exceeds the real base64 length, so a file rejected here
        would also be rejected after encoding.
        """
        estimates = []
        for file in files:
            try:
                estimates.append(self.estimate(file))
            except (TypeError, ValueError) as exc:
                raise ValidationError(f"File \"{file.name}\" has options that cannot be sent as JSON: {exc}") from exc
        for file, estimate in zip(files, estimates):
            if estimate + metadata_overhead > self._ceiling:
                max_size = self.max_file_size(file, metadata_overhead)
                raise FileTooLargeError(
                    f"File \"{file.name}\" is too large ({file.size / MB:.2f}MB). "
                    f"Maximum file size is approximately {max_size / MB:.1f}MB per file "
                    f"for a {self._ceiling / MB:.1f}MB request limit.",
                    filename=file.name,
                    size=file.size,
                    max_size=max_size,
                )
        return estimates

    def _structural_size(self, file: PlannableFile) -> int:
        # Variable-width fields other than data; fixed keys are in per_file_overhead.
        return jsonwire.encoded_length([file.name, file.mime_type, file.options]) + self._per_file_overhead
