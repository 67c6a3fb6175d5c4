"""
Pipeline execution.

Sequential pipelines relay each step's response into the next step and stop at
the first failure. Parallel pipelines send the same input to every step, wait
for all of them, and merge the results only if every step succeeded.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, List, Optional, Tuple, Union

import anyio
from fastapi.responses import JSONResponse, Response

from fnkit_gateway.backends import BackendClient, StepCall, StepResult
from fnkit_gateway.errors import GatewayError, RouteNotFound, StepFailed, UpstreamFailure
from fnkit_gateway.pipeline.cache import PipelineCache
from fnkit_gateway.schemas.pipeline import Pipeline, PipelineMode

logger = logging.getLogger(__name__)

ORCHESTRATE_PREFIX = "/orchestrate"
_ORCHESTRATE_RE = re.compile(r"^/orchestrate/([^/]+)(/.*)?$")

DEFAULT_METHOD = "POST"
DEFAULT_CONTENT_TYPE = "application/json"

StepOutcome = Union[StepResult, Exception]


def parse_orchestrate_path(path: str) -> Tuple[str, str]:
    """
    Split `/orchestrate/<name>[/rest]` into `(name, rest)`.

    Paths outside the prefix are not served here (404); the bare prefix has no
    pipeline name (400).
    """
    if path != ORCHESTRATE_PREFIX and not path.startswith(ORCHESTRATE_PREFIX + "/"):
        raise RouteNotFound("Not found")
    m = _ORCHESTRATE_RE.match(path)
    if not m:
        raise RouteNotFound("Pipeline name missing", status_code=400)
    return m.group(1), m.group(2) or ""


def parse_step_body(result: StepResult) -> Any:
    text = result.text()
    if "application/json" in (result.content_type or "").lower():
        try:
            return json.loads(text)
        except ValueError:
            return text
    return text


class PipelineEngine:
    def __init__(self, cache: PipelineCache, backends: BackendClient) -> None:
        self.cache = cache
        self.backends = backends

    async def run(self, name: str, call: StepCall) -> Response:
        pipeline = await self.cache.get(name)
        logger.info("running pipeline %s mode=%s steps=%s", name, pipeline.mode.value, ",".join(pipeline.steps))
        try:
            if pipeline.mode is PipelineMode.PARALLEL:
                return await self.run_parallel(pipeline, call)
            return await self.run_sequential(pipeline, call)
        except GatewayError:
            raise
        except Exception as e:
            logger.exception("pipeline %s crashed", name)
            raise GatewayError(str(e) or type(e).__name__, status_code=500) from e

    async def run_sequential(self, pipeline: Pipeline, call: StepCall) -> Response:
        body = call.body
        content_type = call.content_type
        last_status = 200

        for step in pipeline.steps:
            result = await self.backends.invoke(
                step,
                StepCall(
                    sub_path=call.sub_path,
                    query=call.query,
                    method=call.method,
                    body=body,
                    content_type=content_type,
                ),
            )
            if not result.ok:
                logger.warning("step %s failed with status %s; remaining steps skipped", step, result.status_code)
                raise StepFailed(step, result.status_code, result.text())

            body = result.body
            content_type = result.content_type or content_type
            last_status = result.status_code

        headers = {"content-type": content_type} if content_type else None
        return Response(content=body, status_code=last_status, headers=headers)

    async def run_parallel(self, pipeline: Pipeline, call: StepCall) -> Response:
        outcomes: List[Optional[StepOutcome]] = [None] * len(pipeline.steps)

        async def _invoke(index: int, step: str) -> None:
            try:
                outcomes[index] = await self.backends.invoke(step, call)
            except Exception as e:  # noqa: BLE001 - collected and reported below
                outcomes[index] = e

        async with anyio.create_task_group() as tg:
            for i, step in enumerate(pipeline.steps):
                tg.start_soon(_invoke, i, step)

        merged: Dict[str, Any] = {}
        for step, outcome in zip(pipeline.steps, outcomes):
            if isinstance(outcome, StepResult) and outcome.ok:
                merged[step] = parse_step_body(outcome)
                continue
            raise self._parallel_failure(step, outcome)
        return JSONResponse(merged, status_code=200)

    @staticmethod
    def _parallel_failure(step: str, outcome: Optional[StepOutcome]) -> UpstreamFailure:
        logger.warning("parallel step %s failed: %r", step, outcome)
        if isinstance(outcome, StepResult):
            return UpstreamFailure(
                "Parallel execution failed",
                step=step,
                status=outcome.status_code,
                body=outcome.text(),
            )
        detail: Optional[str] = None
        if isinstance(outcome, GatewayError):
            detail = str(outcome.extra.get("detail") or outcome.message)
        elif outcome is not None:
            detail = str(outcome) or type(outcome).__name__
        return UpstreamFailure("Parallel execution failed", step=step, detail=detail)
