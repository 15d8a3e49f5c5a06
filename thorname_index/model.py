"""Domain models for THORName resolution.

A THORName is never stored directly. Its current state is projected from the
immutable rows of the ``thorname_change_events`` log every time it is
queried, so the types below are plain value objects with no behaviour beyond
serialisation helpers.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Optional, Tuple


@dataclass(frozen=True)
class ChangeEvent:
    """A single row of the name-change log.

    ``event_id`` is assigned by the store on append and only serves as a
    deterministic tie-break between rows sharing a ``block_timestamp``.
    """

    name: str
    chain: str
    address: str
    owner: str
    expire_height: int
    block_timestamp: int
    event_id: Optional[int] = None


@dataclass(frozen=True)
class THORNameEntry:
    chain: str
    address: str


@dataclass(frozen=True)
class AuthoritativeRecord:
    """Owner and expiry taken from the governing root-chain event."""

    owner: str
    expire: int


@dataclass(frozen=True)
class THORName:
    name: str
    owner: str
    expire: int
    entries: Tuple[THORNameEntry, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
