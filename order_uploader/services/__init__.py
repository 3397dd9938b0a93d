"""Services for order_uploader."""
from .api_client import IngestionClient
from .classifier import Classification, ErrorClassifier
from .encoder import FileEncoder, strip_data_url
from .planner import ChunkPlanner, estimate_metadata_overhead

__all__ = [
    "IngestionClient",
    "Classification",
    "ErrorClassifier",
    "FileEncoder",
    "strip_data_url",
    "ChunkPlanner",
    "estimate_metadata_overhead",
]
