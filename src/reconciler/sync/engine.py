"""ReconciliationEngine -- the surface an operator-facing caller uses.

Wires RecordFetcher, the differ, SyncExecutor and RunReporter together.
Data flow: fetch both datasets -> match -> diff -> (on demand) sync -> report.
Fetches run one after the other; no remote calls are made in parallel.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence

import structlog

from src.reconciler.config import Settings, get_settings
from src.reconciler.sync.differ import compare
from src.reconciler.sync.executor import SyncExecutor
from src.reconciler.sync.fetcher import RecordFetcher
from src.reconciler.sync.field_mapping import get_default_field_mappings, load_field_mappings
from src.reconciler.sync.http import CRMClient, PortalAPIClient
from src.reconciler.sync.reporter import ProgressCallback, summarize_comparisons
from src.reconciler.sync.schemas import (
    BulkSyncResult,
    ComparisonResult,
    ComparisonSummary,
    FieldMapping,
    PortalRecord,
    RemoteRecord,
    SyncOutcome,
)

logger = structlog.get_logger(__name__)


class ReconciliationEngine:
    """Compare portal deals with CRM opportunities and sync differences.

    Args:
        fetcher: Reads both datasets.
        executor: Applies corrections to the portal.
        mappings: Field mapping table shared by diffing and syncing.
        pipeline_id: Default CRM pipeline for fetch_and_compare().
    """

    def __init__(
        self,
        fetcher: RecordFetcher,
        executor: SyncExecutor,
        mappings: Sequence[FieldMapping],
        pipeline_id: str = "",
    ) -> None:
        self._fetcher = fetcher
        self._executor = executor
        self._mappings = list(mappings)
        self._pipeline_id = pipeline_id

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> ReconciliationEngine:
        """Build an engine talking to the configured portal and CRM over HTTP."""
        settings = settings or get_settings()

        if settings.FIELD_MAPPING_FILE:
            mappings = load_field_mappings(settings.FIELD_MAPPING_FILE)
        else:
            mappings = list(get_default_field_mappings())

        portal = PortalAPIClient(
            base_url=settings.PORTAL_API_URL,
            token=settings.PORTAL_API_TOKEN,
            records_path=settings.PORTAL_RECORDS_PATH,
            record_path=settings.PORTAL_RECORD_PATH,
            timeout=settings.HTTP_TIMEOUT_SECONDS,
        )
        crm = CRMClient(
            base_url=settings.CRM_API_URL,
            api_key=settings.CRM_API_KEY,
            api_version=settings.CRM_API_VERSION,
            timeout=settings.HTTP_TIMEOUT_SECONDS,
        )
        fetcher = RecordFetcher(
            portal,
            crm,
            opportunity_id_key=settings.PORTAL_OPPORTUNITY_ID_KEY,
            contact_id_key=settings.PORTAL_CONTACT_ID_KEY,
            label_key=settings.PORTAL_LABEL_KEY,
        )
        executor = SyncExecutor(portal, mappings, delay_seconds=settings.SYNC_DELAY_SECONDS)
        return cls(fetcher, executor, mappings, pipeline_id=settings.CRM_PIPELINE_ID)

    @property
    def mappings(self) -> list[FieldMapping]:
        return list(self._mappings)

    def compare(
        self,
        portal_records: Sequence[PortalRecord],
        remote_records: Sequence[RemoteRecord],
    ) -> list[ComparisonResult]:
        """Match and diff two snapshots. Pure; no I/O."""
        return compare(portal_records, remote_records, self._mappings)

    async def fetch_and_compare(self, pipeline_id: str | None = None) -> list[ComparisonResult]:
        """Fetch both datasets and compare them.

        Raises:
            FetchError: If either dataset cannot be fetched. Nothing partial
                is returned.
        """
        pipeline = pipeline_id or self._pipeline_id
        portal_records = await self._fetcher.fetch_portal()
        remote_records = await self._fetcher.fetch_remote(pipeline)
        return self.compare(portal_records, remote_records)

    async def sync_one(self, result: ComparisonResult) -> SyncOutcome:
        return await self._executor.sync_one(result)

    async def sync_all(
        self,
        results: Sequence[ComparisonResult],
        cancel: asyncio.Event | None = None,
    ) -> BulkSyncResult:
        return await self._executor.sync_all(results, cancel=cancel)

    def subscribe_progress(self, callback: ProgressCallback) -> Callable[[], None]:
        """Receive SyncProgress after each record of a bulk run."""
        return self._executor.reporter.subscribe(callback)

    @staticmethod
    def summarize(results: Sequence[ComparisonResult]) -> ComparisonSummary:
        return summarize_comparisons(results)
