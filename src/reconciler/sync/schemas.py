"""Pydantic schemas for deal reconciliation -- records, mappings, diffs, outcomes.

Defines all structured types flowing through the engine:
- Enums: MatchType, DifferenceKind
- Records: PortalRecord, CustomField, RemoteRecord
- Configuration: FieldMapping
- Comparison: Difference, ComparisonResult, ComparisonSummary
- Sync: SyncOutcome, SyncProgress, FailureDetail, RunSummary, BulkSyncResult

Remote (CRM) payloads use camelCase on the wire; models expose snake_case
attributes with camelCase aliases and accept either spelling.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


# ── Enums ───────────────────────────────────────────────────────────────────


class MatchType(str, Enum):
    """How a portal record was paired with a remote opportunity."""

    ID_MATCH = "id_match"
    CONTACT_MATCH = "contact_match"
    NO_MATCH = "no_match"


class DifferenceKind(str, Enum):
    """Category of a single field disagreement."""

    BASIC = "basic"
    CUSTOM = "custom"
    REMOTE_ONLY = "remote_only"
    MISSING = "missing"


# ── Records ─────────────────────────────────────────────────────────────────


_CUSTOM_VALUE_KEYS = ("field_value", "fieldValue", "value")


def _blank_to_none(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class PortalRecord(BaseModel):
    """A deal record owned by the portal.

    Attributes:
        id: Portal record identifier (target of partial updates).
        data: All named deal fields as returned by the portal store.
        remote_opportunity_id: CRM opportunity id recorded on the deal, if any.
        remote_contact_id: CRM contact id recorded on the deal, if any.
        label: Human-facing deal identifier, used in progress reporting.
    """

    id: str
    data: dict[str, Any] = Field(default_factory=dict)
    remote_opportunity_id: str | None = None
    remote_contact_id: str | None = None
    label: str | None = None

    @property
    def display_label(self) -> str:
        return self.label or self.id

    def get(self, field: str) -> Any:
        return self.data.get(field)

    @classmethod
    def from_payload(
        cls,
        payload: dict[str, Any],
        *,
        opportunity_id_key: str = "ghlOpportunityId",
        contact_id_key: str = "ghlContactId",
        label_key: str = "dealId",
    ) -> PortalRecord:
        """Build a PortalRecord from a raw portal JSON object.

        Args:
            payload: One deal object from the portal's record listing.
            opportunity_id_key: Key holding the CRM opportunity id.
            contact_id_key: Key holding the CRM contact id.
            label_key: Key holding the human-facing deal id.

        Returns:
            PortalRecord carrying every payload key in ``data``.
        """
        if payload.get("id") in (None, ""):
            raise ValueError("portal record is missing an 'id'")

        return cls(
            id=str(payload["id"]),
            data=dict(payload),
            remote_opportunity_id=_blank_to_none(payload.get(opportunity_id_key)),
            remote_contact_id=_blank_to_none(payload.get(contact_id_key)),
            label=_blank_to_none(payload.get(label_key)),
        )


class CustomField(BaseModel):
    """A dynamically keyed CRM attribute: an (id, key, value) triple.

    The CRM spells the value ``field_value``, ``fieldValue`` or ``value``; the
    first non-empty one wins, so an empty ``field_value`` does not hide a
    populated ``fieldValue``.
    """

    id: str
    key: str | None = None
    value: Any = None

    @model_validator(mode="before")
    @classmethod
    def _pick_value(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        candidates = [data.get(k) for k in _CUSTOM_VALUE_KEYS]
        value = next((c for c in candidates if c not in (None, "")), None)
        if value is None:
            value = next((c for c in candidates if c is not None), None)
        return {**data, "value": value}


class RemoteRecord(BaseModel):
    """An opportunity record read from the CRM.

    Identifiers are coerced to text. Other basic attributes keep the type the
    CRM sent, and any attribute not listed here is kept (``extra="allow"``) so
    dotted basic paths can reach it.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str
    contact_id: str | None = Field(default=None, alias="contactId")
    name: Any = None
    status: Any = None
    monetary_value: Any = Field(default=None, alias="monetaryValue")
    pipeline_id: Any = Field(default=None, alias="pipelineId")
    stage_id: Any = Field(default=None, alias="stageId")
    contact: Any = None
    custom_fields: list[CustomField] = Field(default_factory=list, alias="customFields")

    @model_validator(mode="before")
    @classmethod
    def _normalize_ids(cls, data: Any) -> Any:
        """Stringify ids; take contactId from the nested contact when absent."""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if not data.get("contactId") and not data.get("contact_id"):
            contact = data.get("contact")
            if isinstance(contact, dict) and contact.get("id"):
                data["contactId"] = contact["id"]
        for key in ("id", "contactId", "contact_id"):
            if data.get(key) is not None and not isinstance(data[key], str):
                data[key] = str(data[key])
        return data

    def attributes(self) -> dict[str, Any]:
        """Basic attributes keyed by their CRM (camelCase) names."""
        return self.model_dump(by_alias=True, exclude={"custom_fields"})


# ── Field Mapping ───────────────────────────────────────────────────────────


class FieldMapping(BaseModel):
    """Declares equivalence between one portal field and one remote field.

    At least one remote locator is required. When both are given the basic
    path is tried first and the custom field id is the fallback.
    """

    model_config = ConfigDict(populate_by_name=True, extra="forbid", frozen=True)

    portal_field: str = Field(alias="portalField", min_length=1)
    remote_field_id: str | None = Field(default=None, alias="remoteFieldId")
    remote_basic_path: str | None = Field(default=None, alias="remoteBasicPath")
    label: str | None = None

    @model_validator(mode="after")
    def _require_locator(self) -> FieldMapping:
        if not self.remote_field_id and not self.remote_basic_path:
            raise ValueError(
                f"mapping for '{self.portal_field}' needs remoteFieldId or remoteBasicPath"
            )
        return self

    @property
    def is_basic(self) -> bool:
        return bool(self.remote_basic_path)


# ── Comparison ──────────────────────────────────────────────────────────────


class Difference(BaseModel):
    """One field-level disagreement between a portal and a remote record."""

    field: str
    portal_value: Any = None
    remote_value: Any = None
    kind: DifferenceKind


class ComparisonResult(BaseModel):
    """Outcome of matching and diffing one portal record."""

    portal_record: PortalRecord
    remote_record: RemoteRecord | None = None
    match_type: MatchType
    differences: list[Difference] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_match_invariant(self) -> ComparisonResult:
        if self.match_type == MatchType.NO_MATCH:
            if self.remote_record is not None:
                raise ValueError("no_match result cannot carry a remote record")
            if len(self.differences) != 1 or self.differences[0].kind != DifferenceKind.MISSING:
                raise ValueError("no_match result must carry exactly one 'missing' difference")
        elif self.remote_record is None:
            raise ValueError(f"{self.match_type.value} result requires a remote record")
        return self

    @property
    def has_differences(self) -> bool:
        return bool(self.differences)


class ComparisonSummary(BaseModel):
    """Counts over a set of comparison results."""

    total: int = 0
    id_matches: int = 0
    contact_matches: int = 0
    no_matches: int = 0
    with_differences: int = 0
    in_sync: int = 0


# ── Sync ────────────────────────────────────────────────────────────────────


class SyncOutcome(BaseModel):
    """Result of syncing one portal record."""

    record_id: str
    success: bool
    error: str | None = None
    updated_fields: list[str] = Field(default_factory=list)
    message: str | None = None


class SyncProgress(BaseModel):
    """Progress counter published after each record of a bulk run."""

    current: int = 0
    total: int = 0
    current_record_label: str = ""


class FailureDetail(BaseModel):
    record_id: str
    error: str


class RunSummary(BaseModel):
    """Aggregate of one bulk run's outcomes."""

    total: int = 0
    succeeded: int = 0
    failed: int = 0
    failures: list[FailureDetail] = Field(default_factory=list)


class BulkSyncResult(BaseModel):
    """Return value of a bulk sync: per-record outcomes plus their summary."""

    outcomes: list[SyncOutcome] = Field(default_factory=list)
    summary: RunSummary = Field(default_factory=RunSummary)
    cancelled: bool = False
