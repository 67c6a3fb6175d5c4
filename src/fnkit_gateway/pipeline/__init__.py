from .cache import CacheEntry, PipelineCache
from .engine import PipelineEngine, parse_orchestrate_path
from .store import PipelineStore, S3PipelineStore

__all__ = [
    "CacheEntry",
    "PipelineCache",
    "PipelineEngine",
    "PipelineStore",
    "S3PipelineStore",
    "parse_orchestrate_path",
]
