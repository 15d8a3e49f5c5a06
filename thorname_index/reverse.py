"""Reverse lookups: which THORNames point at, or are owned by, an address.

Raw rows in the change log are only candidates. An address may have been
replaced on its chain, or the name may have changed hands or expired since
the row was written, so every candidate is resolved again and kept only if
the current projection still agrees with the queried address.

Candidate validation yields a tagged :class:`CandidateOutcome`; the lookups
keep ``ACCEPTED`` outcomes and drop the rest. A candidate whose resolution
hits a :class:`~thorname_index.event_log.DataSourceError` is dropped as
``FAILED`` rather than failing the whole lookup. Failure of the initial
candidate scan and caller cancellation always propagate.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError, as_completed
from dataclasses import dataclass
from enum import Enum
from typing import AbstractSet, Callable, Iterable, List, Set

from thorname_index.context import QueryCancelled, QueryContext, ensure_context
from thorname_index.event_log import DataSourceError, EventLog, EventQuery
from thorname_index.model import THORNameEntry
from thorname_index.resolver import ROOT_CHAIN, get_thorname, resolve_authoritative

logger = logging.getLogger(__name__)

DEFAULT_CASE_INSENSITIVE_CHAINS = frozenset({"ETH"})
DEFAULT_MAX_WORKERS = 4
OWNER_CHECK_LIVE = "live"
OWNER_CHECK_LATEST = "latest"
OWNER_CHECK_MODES = (OWNER_CHECK_LIVE, OWNER_CHECK_LATEST)


class CandidateStatus(str, Enum):
    ACCEPTED = "accepted"
    STALE = "stale"
    ABSENT = "absent"
    FAILED = "failed"


@dataclass(frozen=True)
class CandidateOutcome:
    name: str
    status: CandidateStatus
    detail: str = ""

    @property
    def accepted(self) -> bool:
        return self.status is CandidateStatus.ACCEPTED


def accepted_names(outcomes: Iterable[CandidateOutcome]) -> Set[str]:
    """Fold validation outcomes into the result set, dropping every rejection."""

    names: Set[str] = set()
    for outcome in outcomes:
        if outcome.accepted:
            names.add(outcome.name)
        else:
            logger.debug("Dropping candidate %s (%s) %s", outcome.name, outcome.status.value, outcome.detail)
    return names


def _address_matches(entry: THORNameEntry, address: str, case_insensitive_chains: AbstractSet[str]) -> bool:
    if entry.chain in case_insensitive_chains:
        return entry.address.casefold() == address.casefold()
    return entry.address == address


def validate_bound_candidate(
    log: EventLog,
    name: str,
    address: str,
    current_height: int,
    *,
    root_chain: str = ROOT_CHAIN,
    case_insensitive_chains: AbstractSet[str] = DEFAULT_CASE_INSENSITIVE_CHAINS,
    ctx: QueryContext | None = None,
) -> CandidateOutcome:
    """Check that ``address`` is still one of the live entries of ``name``."""

    try:
        thorname = get_thorname(log, name, current_height, root_chain=root_chain, ctx=ctx)
    except DataSourceError as exc:
        logger.warning("Could not resolve candidate %s: %s", name, exc)
        return CandidateOutcome(name, CandidateStatus.FAILED, str(exc))
    if thorname is None:
        return CandidateOutcome(name, CandidateStatus.ABSENT, "no live root record")
    for entry in thorname.entries:
        if _address_matches(entry, address, case_insensitive_chains):
            return CandidateOutcome(name, CandidateStatus.ACCEPTED, f"bound on {entry.chain}")
    return CandidateOutcome(name, CandidateStatus.STALE, "address superseded")


def validate_owned_candidate(
    log: EventLog,
    name: str,
    address: str,
    current_height: int,
    *,
    root_chain: str = ROOT_CHAIN,
    owner_check: str = OWNER_CHECK_LIVE,
    ctx: QueryContext | None = None,
) -> CandidateOutcome:
    """Check that ``address`` is the authoritative owner of ``name``.

    ``owner_check="live"`` only trusts a root record that has not expired;
    ``"latest"`` compares against the newest root record whatever its expiry.
    """

    if owner_check not in OWNER_CHECK_MODES:
        raise ValueError(f"owner_check must be one of {OWNER_CHECK_MODES}, got {owner_check!r}")
    try:
        record = resolve_authoritative(
            log,
            name,
            current_height,
            root_chain=root_chain,
            require_live=owner_check == OWNER_CHECK_LIVE,
            ctx=ctx,
        )
    except DataSourceError as exc:
        logger.warning("Could not resolve owner of candidate %s: %s", name, exc)
        return CandidateOutcome(name, CandidateStatus.FAILED, str(exc))
    if record is None:
        return CandidateOutcome(name, CandidateStatus.ABSENT, "no root record")
    if record.owner == address:
        return CandidateOutcome(name, CandidateStatus.ACCEPTED)
    return CandidateOutcome(name, CandidateStatus.STALE, "owner changed")


def _candidate_names(log: EventLog, query: EventQuery, ctx: QueryContext) -> List[str]:
    return [event.name for event in log.query_events(query, ctx=ctx)]


def validate_candidates(
    candidates: List[str],
    validate: Callable[[str], CandidateOutcome],
    *,
    max_workers: int = DEFAULT_MAX_WORKERS,
    ctx: QueryContext | None = None,
) -> List[CandidateOutcome]:
    """Run ``validate`` for every candidate on at most ``max_workers`` threads.

    Outcomes come back in completion order. On cancellation the pending
    validations are cancelled and nothing is returned.
    """

    ctx = ensure_context(ctx)
    ctx.check()
    if not candidates:
        return []
    if max_workers < 1:
        raise ValueError("max_workers must be at least 1")

    outcomes: List[CandidateOutcome] = []
    with ThreadPoolExecutor(max_workers=min(max_workers, len(candidates))) as executor:
        futures = [executor.submit(validate, name) for name in candidates]
        try:
            for future in as_completed(futures, timeout=ctx.remaining()):
                outcomes.append(future.result())
        except FutureTimeoutError as exc:
            raise QueryCancelled("Query deadline exceeded while validating candidates") from exc
        finally:
            for future in futures:
                future.cancel()
    ctx.check()
    return outcomes


def names_bound_to(
    log: EventLog,
    address: str,
    current_height: int,
    *,
    root_chain: str = ROOT_CHAIN,
    case_insensitive_chains: AbstractSet[str] = DEFAULT_CASE_INSENSITIVE_CHAINS,
    max_workers: int = DEFAULT_MAX_WORKERS,
    ctx: QueryContext | None = None,
) -> Set[str]:
    """Names whose current entries include ``address``."""

    ctx = ensure_context(ctx)
    query = EventQuery(address=address, address_nocase=bool(case_insensitive_chains), distinct_on="name")
    candidates = _candidate_names(log, query, ctx)
    logger.debug("%d candidate name(s) for address %s", len(candidates), address)

    def validate(name: str) -> CandidateOutcome:
        return validate_bound_candidate(
            log,
            name,
            address,
            current_height,
            root_chain=root_chain,
            case_insensitive_chains=case_insensitive_chains,
            ctx=ctx,
        )

    return accepted_names(validate_candidates(candidates, validate, max_workers=max_workers, ctx=ctx))


def names_owned_by(
    log: EventLog,
    address: str,
    current_height: int,
    *,
    root_chain: str = ROOT_CHAIN,
    owner_check: str = OWNER_CHECK_LIVE,
    max_workers: int = DEFAULT_MAX_WORKERS,
    ctx: QueryContext | None = None,
) -> Set[str]:
    """Names whose authoritative owner is ``address``."""

    if owner_check not in OWNER_CHECK_MODES:
        raise ValueError(f"owner_check must be one of {OWNER_CHECK_MODES}, got {owner_check!r}")
    ctx = ensure_context(ctx)
    candidates = _candidate_names(log, EventQuery(owner=address, distinct_on="name"), ctx)
    logger.debug("%d candidate name(s) owned by %s", len(candidates), address)

    def validate(name: str) -> CandidateOutcome:
        return validate_owned_candidate(
            log,
            name,
            address,
            current_height,
            root_chain=root_chain,
            owner_check=owner_check,
            ctx=ctx,
        )

    return accepted_names(validate_candidates(candidates, validate, max_workers=max_workers, ctx=ctx))


__all__ = [
    "CandidateOutcome",
    "CandidateStatus",
    "DEFAULT_CASE_INSENSITIVE_CHAINS",
    "OWNER_CHECK_LATEST",
    "OWNER_CHECK_LIVE",
    "OWNER_CHECK_MODES",
    "accepted_names",
    "names_bound_to",
    "names_owned_by",
    "validate_bound_candidate",
    "validate_candidates",
    "validate_owned_candidate",
]
