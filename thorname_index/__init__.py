"""THORName resolution and reverse lookups over a name-change event log."""

from .context import QueryCancelled, QueryContext
from .event_log import DataSourceError, EventLog, EventQuery, SQLiteEventLog
from .model import AuthoritativeRecord, ChangeEvent, THORName, THORNameEntry
from .resolver import ROOT_CHAIN, expand_entries, get_thorname, resolve_authoritative
from .reverse import (
    CandidateOutcome,
    CandidateStatus,
    OWNER_CHECK_LATEST,
    OWNER_CHECK_LIVE,
    names_bound_to,
    names_owned_by,
)

__all__ = [
    "AuthoritativeRecord",
    "CandidateOutcome",
    "CandidateStatus",
    "ChangeEvent",
    "DataSourceError",
    "EventLog",
    "EventQuery",
    "OWNER_CHECK_LATEST",
    "OWNER_CHECK_LIVE",
    "QueryCancelled",
    "QueryContext",
    "ROOT_CHAIN",
    "SQLiteEventLog",
    "THORName",
    "THORNameEntry",
    "expand_entries",
    "get_thorname",
    "names_bound_to",
    "names_owned_by",
    "resolve_authoritative",
]
