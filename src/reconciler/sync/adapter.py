"""Abstract interfaces for the two stores the engine reconciles.

- PortalStore: the portal's authoritative deal store (read all, partial update).
- RemoteCRM: the external CRM's opportunity store (read-only here).

Concrete HTTP implementations live in src.reconciler.sync.http. Tests
substitute AsyncMock(spec=...) or in-memory fakes.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class PortalStore(ABC):
    """Read/update interface onto the portal's deal records.

    Methods:
        list_records: Return every portal deal as a raw JSON object.
        update_record: Apply a partial field update to one deal.
    """

    @abstractmethod
    async def list_records(self) -> list[dict[str, Any]]:
        """Return all portal deal records. Raises FetchError on failure."""
        ...

    @abstractmethod
    async def update_record(self, record_id: str, fields: dict[str, Any]) -> None:
        """Partially update one record. Raises UpdateError on failure."""
        ...


class RemoteCRM(ABC):
    """Read interface onto the CRM's opportunities."""

    @abstractmethod
    async def list_opportunities(self, pipeline_id: str) -> list[dict[str, Any]]:
        """Return all opportunities in a pipeline. Raises FetchError on failure."""
        ...
