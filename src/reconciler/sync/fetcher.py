"""RecordFetcher -- reads both datasets and parses them into engine records.

Any upstream failure, and any payload that does not parse into records,
surfaces as FetchError. Nothing is retried.
"""

from __future__ import annotations

import structlog
from pydantic import ValidationError

from src.reconciler.sync.adapter import PortalStore, RemoteCRM
from src.reconciler.sync.errors import FetchError
from src.reconciler.sync.schemas import PortalRecord, RemoteRecord

logger = structlog.get_logger(__name__)


class RecordFetcher:
    """Fetches portal deals and CRM opportunities.

    Args:
        portal: Portal deal store.
        crm: CRM opportunity store.
        opportunity_id_key: Portal key holding the CRM opportunity id.
        contact_id_key: Portal key holding the CRM contact id.
        label_key: Portal key holding the human-facing deal id.
    """

    def __init__(
        self,
        portal: PortalStore,
        crm: RemoteCRM,
        opportunity_id_key: str = "ghlOpportunityId",
        contact_id_key: str = "ghlContactId",
        label_key: str = "dealId",
    ) -> None:
        self._portal = portal
        self._crm = crm
        self._opportunity_id_key = opportunity_id_key
        self._contact_id_key = contact_id_key
        self._label_key = label_key

    async def fetch_portal(self) -> list[PortalRecord]:
        """Fetch every portal deal record."""
        try:
            payloads = await self._portal.list_records()
        except FetchError as exc:
            logger.error("fetcher.portal_failed", error=str(exc), status_code=exc.status_code)
            raise

        try:
            records = [
                PortalRecord.from_payload(
                    payload,
                    opportunity_id_key=self._opportunity_id_key,
                    contact_id_key=self._contact_id_key,
                    label_key=self._label_key,
                )
                for payload in payloads
            ]
        except (ValueError, TypeError, AttributeError) as exc:
            logger.error("fetcher.portal_malformed", error=str(exc))
            raise FetchError("portal", f"malformed record: {exc}") from exc

        logger.info(
            "fetcher.portal_fetched",
            count=len(records),
            with_opportunity_id=sum(1 for r in records if r.remote_opportunity_id),
            with_contact_id=sum(1 for r in records if r.remote_contact_id),
        )
        return records

    async def fetch_remote(self, pipeline_id: str) -> list[RemoteRecord]:
        """Fetch every CRM opportunity in a pipeline, in CRM order."""
        try:
            payloads = await self._crm.list_opportunities(pipeline_id)
        except FetchError as exc:
            logger.error(
                "fetcher.remote_failed",
                pipeline_id=pipeline_id,
                error=str(exc),
                status_code=exc.status_code,
            )
            raise

        try:
            records = [RemoteRecord.model_validate(payload) for payload in payloads]
        except ValidationError as exc:
            logger.error("fetcher.remote_malformed", pipeline_id=pipeline_id, error=str(exc))
            raise FetchError("crm", f"malformed opportunity: {exc}") from exc

        logger.info("fetcher.remote_fetched", pipeline_id=pipeline_id, count=len(records))
        return records
