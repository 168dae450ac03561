"""Field-level diffing of matched portal/remote pairs.

For each matched pair the mapping table is walked in order. Output order is
fixed: basic-path differences (mapping order), then custom-field differences
(mapping order), then remote-only custom fields (CRM order). Unmatched portal
records get a single "missing" difference and no field comparison.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import structlog

from src.reconciler.sync.field_mapping import (
    EMPTY_PLACEHOLDER,
    custom_field_values,
    is_empty,
    mapped_remote_field_ids,
    resolve_remote_value,
    values_equal,
)
from src.reconciler.sync.matcher import Match, match_records
from src.reconciler.sync.schemas import (
    ComparisonResult,
    Difference,
    DifferenceKind,
    FieldMapping,
    PortalRecord,
    RemoteRecord,
)

logger = structlog.get_logger(__name__)

REMOTE_ONLY_PREFIX = "remote_only_"
NOT_IN_PORTAL = "(not in portal)"

MATCH_STATUS_FIELD = "match_status"
MISSING_PORTAL_VALUE = "Portal deal exists"
MISSING_REMOTE_VALUE = "No matching remote opportunity found"


def _display(value: Any) -> Any:
    return EMPTY_PLACEHOLDER if is_empty(value) else value


def missing_difference() -> Difference:
    return Difference(
        field=MATCH_STATUS_FIELD,
        portal_value=MISSING_PORTAL_VALUE,
        remote_value=MISSING_REMOTE_VALUE,
        kind=DifferenceKind.MISSING,
    )


def diff_records(
    portal: PortalRecord,
    remote: RemoteRecord,
    mappings: Sequence[FieldMapping],
) -> list[Difference]:
    """Compare one matched pair.

    Args:
        portal: Portal deal record.
        remote: Matched CRM opportunity.
        mappings: Field mapping table.

    Returns:
        Ordered differences; empty when every mapped field agrees and no
        unmapped custom field carries a value.
    """
    custom_values = custom_field_values(remote)
    basic: list[Difference] = []
    custom: list[Difference] = []

    for mapping in mappings:
        portal_value = portal.get(mapping.portal_field)
        remote_value = resolve_remote_value(remote, mapping, custom_values)
        if values_equal(portal_value, remote_value):
            continue

        kind = DifferenceKind.BASIC if mapping.is_basic else DifferenceKind.CUSTOM
        target = basic if mapping.is_basic else custom
        target.append(
            Difference(
                field=mapping.portal_field,
                portal_value=_display(portal_value),
                remote_value=_display(remote_value),
                kind=kind,
            )
        )

    mapped_ids = mapped_remote_field_ids(mappings)
    remote_only: list[Difference] = []
    seen_ids: set[str] = set()

    for custom_field in remote.custom_fields:
        if custom_field.id in mapped_ids or custom_field.id in seen_ids:
            continue
        seen_ids.add(custom_field.id)
        value = custom_values[custom_field.id]
        if is_empty(value):
            continue
        remote_only.append(
            Difference(
                field=f"{REMOTE_ONLY_PREFIX}{custom_field.id}",
                portal_value=NOT_IN_PORTAL,
                remote_value=value,
                kind=DifferenceKind.REMOTE_ONLY,
            )
        )

    return basic + custom + remote_only


def build_result(match: Match, mappings: Sequence[FieldMapping]) -> ComparisonResult:
    """Turn a Match into a ComparisonResult."""
    if match.remote_record is None:
        return ComparisonResult(
            portal_record=match.portal_record,
            remote_record=None,
            match_type=match.match_type,
            differences=[missing_difference()],
        )

    return ComparisonResult(
        portal_record=match.portal_record,
        remote_record=match.remote_record,
        match_type=match.match_type,
        differences=diff_records(match.portal_record, match.remote_record, mappings),
    )


def compare(
    portal_records: Sequence[PortalRecord],
    remote_records: Sequence[RemoteRecord],
    mappings: Sequence[FieldMapping],
) -> list[ComparisonResult]:
    """Match and diff every portal record against a remote snapshot.

    Returns:
        One ComparisonResult per portal record, in portal order.
    """
    results = [build_result(match, mappings) for match in match_records(portal_records, remote_records)]

    logger.info(
        "differ.compare_complete",
        total=len(results),
        with_differences=sum(1 for r in results if r.has_differences),
    )
    return results
