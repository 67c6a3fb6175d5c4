from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from fnkit_gateway.config import DEFAULT_CACHE_TTL_MS
from fnkit_gateway.pipeline.store import PipelineStore
from fnkit_gateway.schemas.pipeline import Pipeline, parse_pipeline

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    pipeline: Pipeline
    fetched_at: float


class PipelineCache:
    """
    TTL-bounded memo of pipeline definitions.

    Entries are immutable and replaced by a single dict assignment, so readers
    never see a half-written entry. Stale entries stay in place until the next
    successful fetch overwrites them; failed fetches are never cached.

    Concurrent misses for the same name each hit the store.
    """

    def __init__(
        self,
        store: PipelineStore,
        *,
        ttl_seconds: float = DEFAULT_CACHE_TTL_MS / 1000.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._store = store
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}

    def peek(self, name: str) -> Optional[CacheEntry]:
        return self._entries.get(name)

    def is_live(self, entry: CacheEntry) -> bool:
        return self._clock() - entry.fetched_at < self._ttl

    async def get(self, name: str) -> Pipeline:
        entry = self._entries.get(name)
        if entry is not None and self.is_live(entry):
            return entry.pipeline

        raw = await self._store.fetch(name)
        pipeline = parse_pipeline(name, raw)
        self._entries[name] = CacheEntry(pipeline=pipeline, fetched_at=self._clock())
        logger.info("pipeline %s cached (mode=%s steps=%d)", name, pipeline.mode.value, len(pipeline.steps))
        return pipeline
