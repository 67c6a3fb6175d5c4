from .pipeline import (
    BACKEND_NAME_RE,
    Pipeline,
    PipelineMode,
    parse_pipeline,
    pipeline_key,
    pipeline_name,
)

__all__ = [
    "BACKEND_NAME_RE",
    "Pipeline",
    "PipelineMode",
    "parse_pipeline",
    "pipeline_key",
    "pipeline_name",
]
