"""Sync Orchestrator: one refresh cycle across every configured source.

Each adapter runs as its own task via ``asyncio.gather()``, bounded by a
per-source timeout.  A source that fails only loses its own contribution to
the cycle; everything that did arrive is written in a single storage
transaction, together with ``sync.<source>.last_success`` markers.  Only
persistence failures escape :meth:`SyncOrchestrator.refresh`.
"""
from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

from commdash.adapters.base import SourceAdapter
from commdash.errors import SOURCE_ERRORS, NotInitializedError, SourceTimeoutError
from commdash.models import Item, UpsertSummary
from commdash.outcome import Failure, Outcome, Success
from commdash.storage.engine import StorageEngine

logger = logging.getLogger(__name__)

STATUS_SUCCESS = "success"
STATUS_FAILURE = "failure"


def last_success_key(source: str) -> str:
    return f"sync.{source}.last_success"


# ── Report models ───────────────────────────────────────────────


@dataclass(frozen=True)
class SourceResult:
    """Outcome of one source in one refresh cycle."""

    source: str
    status: str
    item_count: int = 0
    error: Optional[str] = None
    error_type: Optional[str] = None
    duration_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.status == STATUS_SUCCESS

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source,
            "status": self.status,
            "item_count": self.item_count,
            "error": self.error,
            "error_type": self.error_type,
            "duration_ms": round(self.duration_ms, 2),
        }


@dataclass
class RefreshReport(Mapping):
    """Per-source results of one refresh cycle, keyed by source name."""

    results: Dict[str, SourceResult] = field(default_factory=dict)
    started_at: float = 0.0
    finished_at: float = 0.0
    inserted: int = 0
    updated: int = 0

    def __getitem__(self, source: str) -> SourceResult:
        return self.results[source]

    def __iter__(self) -> Iterator[str]:
        return iter(self.results)

    def __len__(self) -> int:
        return len(self.results)

    @property
    def failures(self) -> Dict[str, SourceResult]:
        return {name: r for name, r in self.results.items() if not r.ok}

    @property
    def succeeded(self) -> List[str]:
        return [name for name, r in self.results.items() if r.ok]

    @property
    def ok(self) -> bool:
        """True when every source succeeded."""
        return not self.failures

    @property
    def total_items(self) -> int:
        return sum(r.item_count for r in self.results.values() if r.ok)

    @property
    def duration_ms(self) -> float:
        return max(0.0, (self.finished_at - self.started_at) * 1000)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "duration_ms": round(self.duration_ms, 2),
            "ok": self.ok,
            "total_items": self.total_items,
            "inserted": self.inserted,
            "updated": self.updated,
            "sources": {name: r.to_dict() for name, r in self.results.items()},
        }


# ── Orchestrator ────────────────────────────────────────────────


class SyncOrchestrator:
    """Runs all adapters concurrently and persists what they return.

    Parameters
    ----------
    engine:
        An initialized :class:`StorageEngine`.
    adapters:
        Source adapters; names must be unique.
    fetch_timeout:
        Seconds each adapter gets before it is recorded as failed.
    """

    def __init__(
        self,
        engine: StorageEngine,
        adapters: Iterable[SourceAdapter] = (),
        *,
        fetch_timeout: float = 30.0,
    ) -> None:
        if fetch_timeout <= 0:
            raise ValueError("fetch_timeout must be positive")
        self.engine = engine
        self.fetch_timeout = float(fetch_timeout)
        self._adapters: Dict[str, SourceAdapter] = {}
        for adapter in adapters:
            self.add_adapter(adapter)

    @property
    def sources(self) -> List[str]:
        return list(self._adapters)

    def add_adapter(self, adapter: SourceAdapter) -> None:
        if not adapter.name:
            raise ValueError(f"{adapter!r} has no name")
        if adapter.name in self._adapters:
            raise ValueError(f"Duplicate adapter name: {adapter.name}")
        self._adapters[adapter.name] = adapter

    async def refresh(self) -> RefreshReport:
        """Run one refresh cycle.

        Returns a report with one entry per adapter.  Source failures are
        recorded in the report; :class:`~commdash.errors.StorageError`,
        :class:`~commdash.errors.ConstraintError` and
        :class:`~commdash.errors.NotInitializedError` propagate.
        """
        if not self.engine.is_initialized:
            raise NotInitializedError("refresh")

        report = RefreshReport(started_at=time.time())
        logger.info("[sync] Refresh started: %s", ", ".join(self._adapters) or "(no sources)")

        fetched = await asyncio.gather(*(self._run(a) for a in self._adapters.values()))

        items: List[Item] = []
        succeeded: List[str] = []
        for name, outcome, duration_ms in fetched:
            if isinstance(outcome, Success):
                items.extend(outcome.value)
                succeeded.append(name)
                report.results[name] = SourceResult(
                    name, STATUS_SUCCESS, len(outcome.value), duration_ms=duration_ms,
                )
            else:
                error = outcome.error
                report.results[name] = SourceResult(
                    name,
                    STATUS_FAILURE,
                    error=str(error),
                    error_type=type(error).__name__,
                    duration_ms=duration_ms,
                )

        if succeeded:
            stamp = str(time.time())
            summary = await self._persist(items, {last_success_key(n): stamp for n in succeeded})
            report.inserted = summary.inserted
            report.updated = summary.updated

        report.finished_at = time.time()
        logger.info(
            "[sync] Refresh finished in %.0f ms: %d items from %d/%d sources (%d new, %d updated)",
            report.duration_ms, report.total_items, len(succeeded), len(report),
            report.inserted, report.updated,
        )
        return report

    async def _run(self, adapter: SourceAdapter) -> Tuple[str, Outcome, float]:
        start = time.perf_counter()
        try:
            outcome = await asyncio.wait_for(self._collect(adapter), timeout=self.fetch_timeout)
        except asyncio.TimeoutError:
            logger.warning("[sync] %s timed out after %.1fs", adapter.name, self.fetch_timeout)
            outcome = Failure(SourceTimeoutError(adapter.name, self.fetch_timeout))
        return adapter.name, outcome, (time.perf_counter() - start) * 1000

    @staticmethod
    async def _collect(adapter: SourceAdapter) -> Outcome:
        # Errors raised by the adapter itself (a socket TimeoutError included)
        # are settled here, so only the wait_for deadline reaches _run.
        try:
            return Success(await adapter.collect())
        except SOURCE_ERRORS as exc:
            logger.warning("[sync] %s failed: %s", adapter.name, exc)
            return Failure(exc)
        except Exception as exc:
            logger.exception("[sync] %s raised unexpectedly", adapter.name)
            return Failure(exc)

    async def _persist(self, items: List[Item], config: Dict[str, str]) -> UpsertSummary:
        task = asyncio.ensure_future(
            asyncio.to_thread(self.engine.upsert_items, items, config=config)
        )
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            # The transaction cannot be interrupted; let it commit or roll back first.
            await asyncio.wait({task})
            if not task.cancelled() and task.exception() is not None:
                logger.warning("[sync] Persistence failed during cancellation: %s", task.exception())
            raise
