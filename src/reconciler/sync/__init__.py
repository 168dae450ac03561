"""Reconciliation layer -- compares portal deals with CRM opportunities.

Provides:
- RecordFetcher: Reads portal deals and CRM opportunities
- Matcher / match_records: Pairs records by opportunity id, then contact id
- compare / diff_records: Field-level diffs driven by the field mapping table
- SyncExecutor: One-way portal updates from CRM values, single or bulk
- RunReporter: Progress and summary for bulk runs
- ReconciliationEngine: Facade wiring all of the above

Architecture: the portal store and the CRM are external collaborators behind
PortalStore / RemoteCRM; HTTP implementations live in http.py.
"""

from src.reconciler.sync.adapter import PortalStore, RemoteCRM
from src.reconciler.sync.differ import compare, diff_records
from src.reconciler.sync.engine import ReconciliationEngine
from src.reconciler.sync.errors import (
    FetchError,
    FieldMappingError,
    InvalidStateError,
    UpdateError,
)
from src.reconciler.sync.executor import SyncExecutor
from src.reconciler.sync.fetcher import RecordFetcher
from src.reconciler.sync.field_mapping import (
    get_default_field_mappings,
    load_field_mappings,
)
from src.reconciler.sync.http import CRMClient, PortalAPIClient
from src.reconciler.sync.matcher import Matcher, match_records
from src.reconciler.sync.reporter import RunReporter, summarize_comparisons

__all__ = [
    "PortalStore",
    "RemoteCRM",
    "PortalAPIClient",
    "CRMClient",
    "RecordFetcher",
    "Matcher",
    "match_records",
    "compare",
    "diff_records",
    "SyncExecutor",
    "RunReporter",
    "summarize_comparisons",
    "ReconciliationEngine",
    "load_field_mappings",
    "get_default_field_mappings",
    "FetchError",
    "FieldMappingError",
    "InvalidStateError",
    "UpdateError",
]
