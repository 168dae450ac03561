"""Field mapping table and remote value lookup for reconciliation.

Defines:
- load_field_mappings(): Loads and validates a YAML/JSON mapping table.
  The packaged default lives next to this module in field_mappings.yaml.
- resolve_remote_value(): Locates a mapping's value on a remote record
  (basic path first, custom field id as fallback).
- normalize_value() / values_equal(): Trimmed-string comparison where absent,
  empty and the "(empty)" placeholder are all equal.

Values are compared as text only. "$52M" and "52000000" are different values;
no numeric or unit normalization is attempted.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Sequence
from functools import lru_cache
from pathlib import Path
from typing import Any

import structlog
import yaml
from pydantic import TypeAdapter, ValidationError

from src.reconciler.sync.errors import FieldMappingError
from src.reconciler.sync.schemas import FieldMapping, RemoteRecord

logger = structlog.get_logger(__name__)

DEFAULT_FIELD_MAPPING_FILE = Path(__file__).with_name("field_mappings.yaml")

EMPTY_PLACEHOLDER = "(empty)"

_mapping_list_adapter = TypeAdapter(list[FieldMapping])


# ── Loading ─────────────────────────────────────────────────────────────────


def parse_field_mappings(raw: Any) -> list[FieldMapping]:
    """Validate already-decoded mapping data.

    Accepts a list of mapping objects, or an object with a ``mappings`` list.

    Raises:
        FieldMappingError: If the data is not a non-empty list of valid mappings.
    """
    if isinstance(raw, dict) and "mappings" in raw:
        raw = raw["mappings"]

    if not isinstance(raw, list) or not raw:
        raise FieldMappingError("field mapping table must be a non-empty list")

    try:
        return _mapping_list_adapter.validate_python(raw)
    except ValidationError as exc:
        raise FieldMappingError(f"invalid field mapping table: {exc}") from exc


def load_field_mappings(path: str | Path | None = None) -> list[FieldMapping]:
    """Load the field mapping table from a YAML or JSON file.

    Args:
        path: Mapping file. ``None`` or empty loads the packaged default.

    Returns:
        Validated mappings in file order.

    Raises:
        FieldMappingError: If the file is unreadable, malformed, or invalid.
    """
    file_path = Path(path) if path else DEFAULT_FIELD_MAPPING_FILE

    try:
        text = file_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise FieldMappingError(f"cannot read field mapping file {file_path}: {exc}") from exc

    try:
        if file_path.suffix.lower() == ".json":
            raw = json.loads(text)
        else:
            raw = yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise FieldMappingError(f"cannot parse field mapping file {file_path}: {exc}") from exc

    mappings = parse_field_mappings(raw)
    logger.debug("field_mapping.loaded", path=str(file_path), count=len(mappings))
    return mappings


@lru_cache
def get_default_field_mappings() -> tuple[FieldMapping, ...]:
    """Packaged default table, loaded once."""
    return tuple(load_field_mappings())


def mapped_remote_field_ids(mappings: Iterable[FieldMapping]) -> set[str]:
    """Custom field ids targeted by any mapping, including fallbacks."""
    return {m.remote_field_id for m in mappings if m.remote_field_id}


# ── Value Normalization ─────────────────────────────────────────────────────


def render_value(value: Any) -> str:
    """Render a field value as the text the CRM would display.

    Integral floats drop their ``.0``, booleans are lowercase, lists are
    comma-joined (multi-select custom fields).
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (list, tuple)):
        return ",".join(render_value(v) for v in value)
    if isinstance(value, dict):
        return json.dumps(value, sort_keys=True)
    return str(value)


def normalize_value(value: Any) -> str:
    """Trimmed text form of a value; absent and "(empty)" normalize to ""."""
    text = render_value(value).strip()
    if text == EMPTY_PLACEHOLDER:
        return ""
    return text


def values_equal(portal_value: Any, remote_value: Any) -> bool:
    return normalize_value(portal_value) == normalize_value(remote_value)


def is_empty(value: Any) -> bool:
    return normalize_value(value) == ""


# ── Remote Lookup ───────────────────────────────────────────────────────────


def resolve_basic_path(remote: RemoteRecord, path: str) -> Any:
    """Resolve a dotted path on a remote record's basic attributes.

    Missing intermediate objects resolve to ``None`` rather than raising.
    A trailing ``?`` on a segment (``contact?.name``) is tolerated.
    """
    current: Any = remote.attributes()
    for part in path.split("."):
        part = part.rstrip("?")
        if not isinstance(current, dict):
            return None
        current = current.get(part)
        if current is None:
            return None
    return current


def custom_field_values(remote: RemoteRecord) -> dict[str, Any]:
    """Map custom field id -> value. A repeated id keeps its last value."""
    return {cf.id: cf.value for cf in remote.custom_fields}


def resolve_remote_value(
    remote: RemoteRecord,
    mapping: FieldMapping,
    custom_values: dict[str, Any] | None = None,
) -> Any:
    """Locate the remote counterpart of a mapped portal field.

    Args:
        remote: The matched remote record.
        mapping: Mapping entry to resolve.
        custom_values: Pre-built ``custom_field_values(remote)``, to avoid
            rebuilding it for every mapping.

    Returns:
        The raw remote value, or None when absent.
    """
    if custom_values is None:
        custom_values = custom_field_values(remote)

    if mapping.remote_basic_path:
        value = resolve_basic_path(remote, mapping.remote_basic_path)
        if not is_empty(value) or not mapping.remote_field_id:
            return value

    return custom_values.get(mapping.remote_field_id)


def build_update_payload(
    portal_fields: dict[str, Any],
    remote: RemoteRecord,
    mappings: Sequence[FieldMapping],
) -> dict[str, Any]:
    """Portal fields whose value disagrees with the remote-derived value.

    Values are taken from the remote record as-is; a remote value that
    resolves empty clears the portal field (``None``).
    """
    custom_values = custom_field_values(remote)
    payload: dict[str, Any] = {}

    for mapping in mappings:
        remote_value = resolve_remote_value(remote, mapping, custom_values)
        if values_equal(portal_fields.get(mapping.portal_field), remote_value):
            continue
        payload[mapping.portal_field] = None if is_empty(remote_value) else remote_value

    return payload
