"""Run reporting for bulk syncs, plus summary counts for comparisons.

RunReporter is a fold over the SyncOutcome stream of one run: it keeps a
{current, total, current_record_label} counter, notifies progress
subscribers after every record, and produces the final RunSummary.
"""

from __future__ import annotations

import inspect
from collections.abc import Callable, Sequence
from typing import Any

import structlog

from src.reconciler.sync.schemas import (
    ComparisonResult,
    ComparisonSummary,
    FailureDetail,
    MatchType,
    RunSummary,
    SyncOutcome,
    SyncProgress,
)

logger = structlog.get_logger(__name__)

ProgressCallback = Callable[[SyncProgress], Any]  # may return an awaitable


class RunReporter:
    """Collects per-record outcomes and publishes progress for one run."""

    def __init__(self) -> None:
        self._subscribers: list[ProgressCallback] = []
        self._outcomes: list[SyncOutcome] = []
        self._progress = SyncProgress()

    # ── Subscription ────────────────────────────────────────────────────────

    def subscribe(self, callback: ProgressCallback) -> Callable[[], None]:
        """Register a progress callback (sync or async).

        Returns:
            A function that removes the subscription.
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    async def _publish(self) -> None:
        snapshot = self._progress.model_copy()
        for callback in list(self._subscribers):
            try:
                result = callback(snapshot)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.warning("reporter.subscriber_failed", exc_info=True)

    # ── Run lifecycle ───────────────────────────────────────────────────────

    def start(self, total: int) -> None:
        """Reset state for a new run of ``total`` records."""
        self._outcomes = []
        self._progress = SyncProgress(current=0, total=total, current_record_label="")

    async def record(self, outcome: SyncOutcome, label: str | None = None) -> None:
        """Fold one completed record into the run and notify subscribers."""
        self._outcomes.append(outcome)
        self._progress = SyncProgress(
            current=len(self._outcomes),
            total=max(self._progress.total, len(self._outcomes)),
            current_record_label=label or outcome.record_id,
        )
        await self._publish()

    @property
    def progress(self) -> SyncProgress:
        return self._progress

    @property
    def outcomes(self) -> list[SyncOutcome]:
        return list(self._outcomes)

    def summary(self) -> RunSummary:
        failures = [
            FailureDetail(record_id=o.record_id, error=o.error or "Sync failed")
            for o in self._outcomes
            if not o.success
        ]
        return RunSummary(
            total=len(self._outcomes),
            succeeded=len(self._outcomes) - len(failures),
            failed=len(failures),
            failures=failures,
        )


def summarize_comparisons(results: Sequence[ComparisonResult]) -> ComparisonSummary:
    """Match-type and in-sync counts over a comparison run."""
    with_differences = sum(1 for r in results if r.has_differences)
    return ComparisonSummary(
        total=len(results),
        id_matches=sum(1 for r in results if r.match_type == MatchType.ID_MATCH),
        contact_matches=sum(1 for r in results if r.match_type == MatchType.CONTACT_MATCH),
        no_matches=sum(1 for r in results if r.match_type == MatchType.NO_MATCH),
        with_differences=with_differences,
        in_sync=len(results) - with_differences,
    )
