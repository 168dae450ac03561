"""SyncExecutor -- pushes CRM values onto portal deals, one record at a time.

Key behaviors:
- One-way: the portal copy is overwritten from the CRM copy, never the reverse.
- The update payload is re-derived from the remote record at sync time with
  the same lookup the differ uses, so it reflects current remote data.
- An empty payload is a no-op success with no store call.
- Bulk runs are strictly sequential with a fixed pause between records to
  stay under the CRM's rate limit. A failing record is recorded and the run
  moves on; the run always ends with a summary.
- No retries. A failed record is resynced by a later explicit call.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence

import structlog

from src.reconciler.sync.adapter import PortalStore
from src.reconciler.sync.errors import InvalidStateError, UpdateError
from src.reconciler.sync.field_mapping import build_update_payload
from src.reconciler.sync.reporter import RunReporter
from src.reconciler.sync.schemas import (
    BulkSyncResult,
    ComparisonResult,
    FieldMapping,
    MatchType,
    SyncOutcome,
)

logger = structlog.get_logger(__name__)

ALREADY_IN_SYNC = "already in sync"


class SyncExecutor:
    """Applies comparison results back onto the portal store.

    Args:
        portal: Portal deal store receiving partial updates.
        mappings: Field mapping table (same table the differ used).
        delay_seconds: Pause between records in a bulk run.
        reporter: Run reporter; a fresh one is created when omitted.
    """

    def __init__(
        self,
        portal: PortalStore,
        mappings: Sequence[FieldMapping],
        delay_seconds: float = 0.5,
        reporter: RunReporter | None = None,
    ) -> None:
        self._portal = portal
        self._mappings = list(mappings)
        self._delay = delay_seconds
        self.reporter = reporter or RunReporter()

    async def sync_one(self, result: ComparisonResult) -> SyncOutcome:
        """Sync a single matched record.

        Raises:
            InvalidStateError: If the result has no remote match. No store
                call is made.
        """
        record = result.portal_record

        if result.match_type == MatchType.NO_MATCH or result.remote_record is None:
            raise InvalidStateError(
                f"Record {record.id} has no matched remote opportunity and cannot be synced"
            )

        payload = build_update_payload(record.data, result.remote_record, self._mappings)

        if not payload:
            logger.info("executor.already_in_sync", record_id=record.id)
            return SyncOutcome(record_id=record.id, success=True, message=ALREADY_IN_SYNC)

        try:
            await self._portal.update_record(record.id, payload)
        except UpdateError as exc:
            logger.warning(
                "executor.record_failed",
                record_id=record.id,
                error=exc.message,
                status_code=exc.status_code,
            )
            return SyncOutcome(record_id=record.id, success=False, error=exc.message)

        logger.info(
            "executor.record_synced",
            record_id=record.id,
            remote_id=result.remote_record.id,
            fields=list(payload),
        )
        return SyncOutcome(
            record_id=record.id,
            success=True,
            updated_fields=list(payload),
            message="updated",
        )

    async def sync_all(
        self,
        results: Sequence[ComparisonResult],
        cancel: asyncio.Event | None = None,
    ) -> BulkSyncResult:
        """Sync every matched result that has differences.

        Args:
            results: Comparison results; unmatched and in-sync ones are skipped.
            cancel: Optional event checked between records. When set, the run
                stops before the next record and reports what was done.

        Returns:
            BulkSyncResult with one outcome per processed record and the summary.
        """
        targets = [r for r in results if r.remote_record is not None and r.has_differences]
        self.reporter.start(len(targets))
        cancelled = False

        logger.info("executor.bulk_started", total=len(targets), skipped=len(results) - len(targets))

        for index, result in enumerate(targets):
            if cancel is not None and cancel.is_set():
                cancelled = True
                logger.info("executor.bulk_cancelled", processed=index, total=len(targets))
                break

            try:
                outcome = await self.sync_one(result)
            except Exception as exc:
                logger.error(
                    "executor.record_error",
                    record_id=result.portal_record.id,
                    error=str(exc),
                    exc_info=True,
                )
                outcome = SyncOutcome(
                    record_id=result.portal_record.id,
                    success=False,
                    error=str(exc) or type(exc).__name__,
                )

            await self.reporter.record(outcome, result.portal_record.display_label)

            if index < len(targets) - 1:
                await asyncio.sleep(self._delay)

        summary = self.reporter.summary()
        logger.info(
            "executor.bulk_complete",
            total=summary.total,
            succeeded=summary.succeeded,
            failed=summary.failed,
            cancelled=cancelled,
        )
        return BulkSyncResult(outcomes=self.reporter.outcomes, summary=summary, cancelled=cancelled)
