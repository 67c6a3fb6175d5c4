from __future__ import annotations

import json
import re
from enum import Enum
from typing import Any, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from fnkit_gateway.errors import ConfigurationError, StoreFailure

BACKEND_NAME_RE = re.compile(r"^[a-zA-Z0-9_-]+$")
PIPELINE_KEY_SUFFIX = ".json"


class PipelineMode(str, Enum):
    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"


class Pipeline(BaseModel):
    """
    Stored pipeline definition: `{"mode": "sequential"|"parallel", "steps": [...]}`.

    Each step is a backend name; the same name may appear more than once.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    mode: PipelineMode = Field(description="How the steps are executed")
    steps: Tuple[str, ...] = Field(description="Ordered backend names")

    @field_validator("steps")
    @classmethod
    def _steps_are_backend_names(cls, v: Tuple[str, ...]) -> Tuple[str, ...]:
        if not v:
            raise ValueError("Pipeline has no steps")
        for step in v:
            if not BACKEND_NAME_RE.match(step):
                raise ValueError(f"Invalid step name: {step!r}")
        return v

    def to_document(self) -> dict[str, Any]:
        return {"mode": self.mode.value, "steps": list(self.steps)}


def pipeline_key(name: str) -> str:
    return f"{name}{PIPELINE_KEY_SUFFIX}"


def pipeline_name(key: str) -> str:
    return key[: -len(PIPELINE_KEY_SUFFIX)] if key.endswith(PIPELINE_KEY_SUFFIX) else key


def validation_message(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return str(exc)
    err = errors[0]
    # `ValueError`s raised by validators keep their own message under ctx.error.
    inner = (err.get("ctx") or {}).get("error")
    if inner is not None:
        return str(inner)
    loc = ".".join(str(p) for p in err.get("loc") or ())
    return f"{loc}: {err.get('msg')}" if loc else str(err.get("msg"))


def parse_pipeline(name: str, raw: bytes) -> Pipeline:
    """
    Decode a stored pipeline document.

    Malformed JSON is a store problem (500); a well-formed document with a bad
    shape is a configuration problem (400).
    """
    try:
        data = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise StoreFailure(f"Malformed pipeline definition for {name}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Pipeline {name} must be a JSON object")
    if not data.get("steps"):
        raise ConfigurationError("Pipeline has no steps")
    try:
        return Pipeline.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(validation_message(e)) from e
