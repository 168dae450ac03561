"""Tests for SyncExecutor -- single and bulk portal updates.

Uses AsyncMock(spec=PortalStore) where only call assertions matter and the
in-memory store from conftest where re-fetching after a sync matters.
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from src.reconciler.sync.adapter import PortalStore
from src.reconciler.sync.differ import compare
from src.reconciler.sync.errors import InvalidStateError, UpdateError
from src.reconciler.sync.executor import ALREADY_IN_SYNC, SyncExecutor
from src.reconciler.sync.schemas import (
    ComparisonResult,
    MatchType,
    PortalRecord,
    RemoteRecord,
)


# ── Helpers ──────────────────────────────────────────────────────────────────


def _portal_payload(record_id: str, opp_id: str, **fields) -> dict:
    return {"id": record_id, "dealId": f"DEAL-{record_id}", "ghlOpportunityId": opp_id, **fields}


def _remote_payload(opp_id: str, **fields) -> dict:
    return {"id": opp_id, "contactId": f"contact-{opp_id}", **fields}


def _results(portal_payloads, remote_payloads, mappings) -> list[ComparisonResult]:
    portals = [PortalRecord.from_payload(p) for p in portal_payloads]
    remotes = [RemoteRecord.model_validate(r) for r in remote_payloads]
    return compare(portals, remotes, mappings)


def _differing_results(count: int, mappings) -> tuple[list[dict], list[ComparisonResult]]:
    """``count`` matched deals whose propertyName disagrees with the CRM."""
    portal_payloads = [_portal_payload(f"d{i}", f"o{i}", propertyName="old") for i in range(1, count + 1)]
    remote_payloads = [_remote_payload(f"o{i}", name=f"New {i}") for i in range(1, count + 1)]
    return portal_payloads, _results(portal_payloads, remote_payloads, mappings)


# ── sync_one ─────────────────────────────────────────────────────────────────


class TestSyncOne:
    """Tests for syncing a single comparison result."""

    @pytest.fixture
    def mock_portal(self):
        return AsyncMock(spec=PortalStore)

    async def test_no_match_raises_without_store_call(self, mock_portal, mappings):
        result = _results([{"id": "d1"}], [], mappings)[0]
        assert result.match_type == MatchType.NO_MATCH

        executor = SyncExecutor(mock_portal, mappings, delay_seconds=0)
        with pytest.raises(InvalidStateError):
            await executor.sync_one(result)

        mock_portal.update_record.assert_not_awaited()

    async def test_in_sync_is_noop_success(self, mock_portal, mappings):
        result = _results(
            [_portal_payload("d1", "o1", propertyName="Oak")],
            [_remote_payload("o1", name="Oak")],
            mappings,
        )[0]

        outcome = await SyncExecutor(mock_portal, mappings).sync_one(result)

        assert outcome.success
        assert outcome.message == ALREADY_IN_SYNC
        assert outcome.updated_fields == []
        mock_portal.update_record.assert_not_awaited()

    async def test_sends_only_differing_fields(self, mock_portal, mappings):
        result = _results(
            [_portal_payload("d1", "o1", propertyName="Old", dealType="Refinance")],
            [_remote_payload("o1", name="New", customFields=[{"id": "DEAL_TYPE_ID", "value": "Refinance"}])],
            mappings,
        )[0]

        outcome = await SyncExecutor(mock_portal, mappings).sync_one(result)

        mock_portal.update_record.assert_awaited_once_with("d1", {"propertyName": "New"})
        assert outcome.success
        assert outcome.updated_fields == ["propertyName"]

    async def test_payload_derived_from_remote_record(self, mock_portal, mappings):
        """The stored differences list is not what drives the update."""
        result = _results(
            [_portal_payload("d1", "o1", propertyName="Old")],
            [_remote_payload("o1", name="New")],
            mappings,
        )[0]
        stale = result.model_copy(update={"differences": []})

        await SyncExecutor(mock_portal, mappings).sync_one(stale)

        mock_portal.update_record.assert_awaited_once_with("d1", {"propertyName": "New"})

    async def test_empty_remote_clears_portal_field(self, mock_portal, mappings):
        result = _results(
            [_portal_payload("d1", "o1", dealType="Acquisition")],
            [_remote_payload("o1")],
            mappings,
        )[0]

        await SyncExecutor(mock_portal, mappings).sync_one(result)

        mock_portal.update_record.assert_awaited_once_with("d1", {"dealType": None})

    async def test_store_failure_becomes_failed_outcome(self, mock_portal, mappings):
        mock_portal.update_record.side_effect = UpdateError("d1", "Deal not found", status_code=404)
        result = _results(
            [_portal_payload("d1", "o1", propertyName="Old")],
            [_remote_payload("o1", name="New")],
            mappings,
        )[0]

        outcome = await SyncExecutor(mock_portal, mappings).sync_one(result)

        assert not outcome.success
        assert outcome.error == "Deal not found"

    async def test_resync_after_refresh_is_noop(self, make_store, mappings):
        """Syncing, re-fetching and syncing again issues no second update."""
        portal_payloads = [_portal_payload("d1", "o1", propertyName="Old", contactPhone="1")]
        remote_payloads = [
            _remote_payload("o1", name="New", customFields=[{"id": "PHONE_ID", "value": "555"}])
        ]
        store = make_store(portal_payloads)
        executor = SyncExecutor(store, mappings, delay_seconds=0)

        first = await executor.sync_one(_results(portal_payloads, remote_payloads, mappings)[0])
        refreshed = _results(await store.list_records(), remote_payloads, mappings)[0]
        second = await executor.sync_one(refreshed)

        assert first.updated_fields == ["propertyName", "contactPhone"]
        assert refreshed.differences == []
        assert second.message == ALREADY_IN_SYNC
        assert len(store.update_calls) == 1


# ── sync_all ─────────────────────────────────────────────────────────────────


class TestSyncAll:
    """Tests for bulk runs."""

    async def test_failure_does_not_stop_run(self, make_store, mappings):
        portal_payloads, results = _differing_results(3, mappings)
        store = make_store(portal_payloads, fail_ids={"d2"})

        bulk = await SyncExecutor(store, mappings, delay_seconds=0).sync_all(results)

        assert [o.success for o in bulk.outcomes] == [True, False, True]
        assert bulk.summary.total == 3
        assert bulk.summary.succeeded == 2
        assert bulk.summary.failed == 1
        assert bulk.summary.failures[0].record_id == "d2"
        assert bulk.summary.failures[0].error == "Deal d2 rejected"
        assert not bulk.cancelled

    async def test_unexpected_error_recorded(self, mappings):
        portal = AsyncMock(spec=PortalStore)
        portal.update_record.side_effect = [RuntimeError("socket closed"), None]
        _, results = _differing_results(2, mappings)

        bulk = await SyncExecutor(portal, mappings, delay_seconds=0).sync_all(results)

        assert [o.success for o in bulk.outcomes] == [False, True]
        assert bulk.outcomes[0].error == "socket closed"

    async def test_records_processed_in_order(self, make_store, mappings):
        portal_payloads, results = _differing_results(3, mappings)
        store = make_store(portal_payloads)

        await SyncExecutor(store, mappings, delay_seconds=0).sync_all(results)

        assert [call[0] for call in store.update_calls] == ["d1", "d2", "d3"]

    async def test_one_update_in_flight_at_a_time(self, mappings):
        in_flight = 0
        peak = 0

        async def slow_update(record_id, fields):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0)
            in_flight -= 1

        portal = AsyncMock(spec=PortalStore)
        portal.update_record.side_effect = slow_update
        _, results = _differing_results(3, mappings)

        await SyncExecutor(portal, mappings, delay_seconds=0).sync_all(results)

        assert peak == 1

    async def test_delay_between_records_only(self, mappings):
        portal = AsyncMock(spec=PortalStore)
        _, results = _differing_results(3, mappings)

        with patch("src.reconciler.sync.executor.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            await SyncExecutor(portal, mappings, delay_seconds=0.5).sync_all(results)

        assert mock_sleep.await_count == 2
        mock_sleep.assert_awaited_with(0.5)

    async def test_skips_unmatched_and_in_sync(self, mappings):
        portal = AsyncMock(spec=PortalStore)
        results = _results(
            [
                {"id": "orphan"},
                _portal_payload("d1", "o1", propertyName="Same"),
                _portal_payload("d2", "o2", propertyName="Old"),
            ],
            [_remote_payload("o1", name="Same"), _remote_payload("o2", name="New")],
            mappings,
        )

        bulk = await SyncExecutor(portal, mappings, delay_seconds=0).sync_all(results)

        assert [o.record_id for o in bulk.outcomes] == ["d2"]
        portal.update_record.assert_awaited_once_with("d2", {"propertyName": "New"})

    async def test_progress_after_each_record(self, make_store, mappings):
        portal_payloads, results = _differing_results(3, mappings)
        executor = SyncExecutor(make_store(portal_payloads), mappings, delay_seconds=0)
        seen = []
        executor.reporter.subscribe(seen.append)

        await executor.sync_all(results)

        assert [(p.current, p.total) for p in seen] == [(1, 3), (2, 3), (3, 3)]
        assert [p.current_record_label for p in seen] == ["DEAL-d1", "DEAL-d2", "DEAL-d3"]

    async def test_cancel_stops_before_next_record(self, make_store, mappings):
        portal_payloads, results = _differing_results(3, mappings)
        store = make_store(portal_payloads)
        executor = SyncExecutor(store, mappings, delay_seconds=0)
        cancel = asyncio.Event()
        executor.reporter.subscribe(lambda progress: cancel.set())

        bulk = await executor.sync_all(results, cancel=cancel)

        assert bulk.cancelled
        assert len(bulk.outcomes) == 1
        assert bulk.summary.total == 1
        assert len(store.update_calls) == 1

    async def test_empty_run(self, mappings):
        portal = AsyncMock(spec=PortalStore)
        bulk = await SyncExecutor(portal, mappings, delay_seconds=0).sync_all([])
        assert bulk.outcomes == []
        assert bulk.summary.total == 0
