"""Forward resolution of THORNames from the change-event log.

Expiration of a THORName is tracked only by its record on the root chain
(``THOR``). Records on every other chain follow the status of that root
record: a name whose root record has expired resolves to nothing, even if
other chains still carry entries for it.
"""

from __future__ import annotations

import logging
from typing import Optional, Tuple

from thorname_index.context import QueryContext, ensure_context
from thorname_index.event_log import EventLog, EventQuery
from thorname_index.model import AuthoritativeRecord, THORName, THORNameEntry

logger = logging.getLogger(__name__)

ROOT_CHAIN = "THOR"


def resolve_authoritative(
    log: EventLog,
    name: str,
    current_height: int,
    *,
    root_chain: str = ROOT_CHAIN,
    require_live: bool = True,
    ctx: QueryContext | None = None,
) -> Optional[AuthoritativeRecord]:
    """Return the owner and expiry of the governing root-chain event.

    With ``require_live`` only events expiring after ``current_height`` are
    considered. ``None`` means the name is unregistered or expired; failures
    of the event log propagate as :class:`~thorname_index.event_log.DataSourceError`.
    """

    query = EventQuery(
        name=name,
        chain=root_chain,
        min_expire_height=current_height if require_live else None,
        limit=1,
    )
    events = log.query_events(query, ctx=ctx)
    if not events:
        logger.debug("No %s record for %s at height %s", "live" if require_live else "root", name, current_height)
        return None
    event = events[0]
    return AuthoritativeRecord(owner=event.owner, expire=event.expire_height)


def expand_entries(
    log: EventLog, name: str, *, ctx: QueryContext | None = None
) -> Tuple[THORNameEntry, ...]:
    """Latest address per chain for ``name``, ordered by chain.

    This is a raw snapshot and does not look at the root record; use
    :func:`get_thorname` when the entries must belong to a live name.
    """

    events = log.query_events(EventQuery(name=name, distinct_on="chain"), ctx=ctx)
    return tuple(THORNameEntry(chain=event.chain, address=event.address) for event in events)


def get_thorname(
    log: EventLog,
    name: str,
    current_height: int,
    *,
    root_chain: str = ROOT_CHAIN,
    ctx: QueryContext | None = None,
) -> Optional[THORName]:
    """Resolve ``name`` fully: live root record first, then its entries."""

    ctx = ensure_context(ctx)
    record = resolve_authoritative(log, name, current_height, root_chain=root_chain, ctx=ctx)
    # a live root record without an owner does not register the name
    if record is None or not record.owner:
        return None
    ctx.check()
    entries = expand_entries(log, name, ctx=ctx)
    return THORName(name=name, owner=record.owner, expire=record.expire, entries=entries)


__all__ = ["ROOT_CHAIN", "expand_entries", "get_thorname", "resolve_authoritative"]
