"""Pairs portal deals with CRM opportunities.

Two tiers, tried in order:
1. ID match: the deal's recorded opportunity id equals an opportunity id.
2. Contact match: the deal's recorded contact id equals an opportunity's
   contact id. When several opportunities share the contact, the one with the
   lowest opportunity id wins, so the pairing does not depend on fetch order.

Pure functions of their inputs; no I/O.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

import structlog

from src.reconciler.sync.schemas import MatchType, PortalRecord, RemoteRecord

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Match:
    """A portal record and the remote record it was paired with, if any."""

    portal_record: PortalRecord
    remote_record: RemoteRecord | None
    match_type: MatchType


class Matcher:
    """Indexes a remote snapshot once and matches portal records against it."""

    def __init__(self, remote_records: Sequence[RemoteRecord]) -> None:
        self._by_id: dict[str, RemoteRecord] = {}
        self._by_contact: dict[str, list[RemoteRecord]] = {}

        for remote in remote_records:
            # Ids are unique within a pipeline; keep the first if the CRM repeats one
            self._by_id.setdefault(remote.id, remote)
            if remote.contact_id:
                self._by_contact.setdefault(remote.contact_id, []).append(remote)

    def match(self, portal: PortalRecord) -> Match:
        if portal.remote_opportunity_id:
            remote = self._by_id.get(portal.remote_opportunity_id)
            if remote is not None:
                return Match(portal, remote, MatchType.ID_MATCH)

        if portal.remote_contact_id:
            candidates = self._by_contact.get(portal.remote_contact_id, [])
            if candidates:
                if len(candidates) > 1:
                    logger.warning(
                        "matcher.ambiguous_contact_match",
                        record_id=portal.id,
                        contact_id=portal.remote_contact_id,
                        candidates=sorted(r.id for r in candidates),
                    )
                remote = min(candidates, key=lambda r: r.id)
                return Match(portal, remote, MatchType.CONTACT_MATCH)

        return Match(portal, None, MatchType.NO_MATCH)


def match_records(
    portal_records: Sequence[PortalRecord],
    remote_records: Sequence[RemoteRecord],
) -> list[Match]:
    """Match every portal record, preserving portal order."""
    matcher = Matcher(remote_records)
    return [matcher.match(portal) for portal in portal_records]
