"""Shared fixtures for reconciliation tests.

Provides:
- InMemoryPortalStore / InMemoryCRM: fake stores with call recording
- make_store / make_crm fixtures returning those classes
- A small field mapping table covering basic, fallback and custom lookups

No network or database access.
"""

from __future__ import annotations

import copy
from typing import Any

import pytest

from src.reconciler.sync.adapter import PortalStore, RemoteCRM
from src.reconciler.sync.errors import UpdateError
from src.reconciler.sync.schemas import FieldMapping


class InMemoryPortalStore(PortalStore):
    """Portal store holding records in a dict; updates are applied in place.

    Records whose id is in ``fail_ids`` reject every update with UpdateError.
    """

    def __init__(self, records: list[dict[str, Any]], fail_ids: set[str] | None = None) -> None:
        self.records = {r["id"]: copy.deepcopy(r) for r in records}
        self.fail_ids = fail_ids or set()
        self.update_calls: list[tuple[str, dict[str, Any]]] = []

    async def list_records(self) -> list[dict[str, Any]]:
        return [copy.deepcopy(r) for r in self.records.values()]

    async def update_record(self, record_id: str, fields: dict[str, Any]) -> None:
        self.update_calls.append((record_id, dict(fields)))
        if record_id in self.fail_ids:
            raise UpdateError(record_id, f"Deal {record_id} rejected", status_code=500)
        self.records[record_id].update(fields)


class InMemoryCRM(RemoteCRM):
    def __init__(self, opportunities: list[dict[str, Any]]) -> None:
        self.opportunities = opportunities
        self.requested_pipelines: list[str] = []

    async def list_opportunities(self, pipeline_id: str) -> list[dict[str, Any]]:
        self.requested_pipelines.append(pipeline_id)
        return copy.deepcopy(self.opportunities)




@pytest.fixture
def mappings() -> list[FieldMapping]:
    """Basic, basic-with-fallback and custom-only mappings."""
    return [
        FieldMapping(portalField="propertyName", remoteBasicPath="name"),
        FieldMapping(
            portalField="contactPhone",
            remoteBasicPath="contact.phone",
            remoteFieldId="PHONE_ID",
        ),
        FieldMapping(portalField="dealType", remoteFieldId="DEAL_TYPE_ID"),
        FieldMapping(portalField="loanRequest", remoteFieldId="LOAN_ID"),
    ]


@pytest.fixture
def make_store():
    return InMemoryPortalStore


@pytest.fixture
def make_crm():
    return InMemoryCRM
