from __future__ import annotations

from pathlib import Path

import pytest

from thorname_index.event_log import DataSourceError, EventLog, EventQuery, SQLiteEventLog
from thorname_index.model import AuthoritativeRecord, ChangeEvent, THORName, THORNameEntry
from thorname_index.resolver import expand_entries, get_thorname, resolve_authoritative


def _event(name: str, chain: str, address: str, ts: int, *, owner: str, expire: int = 1000) -> ChangeEvent:
    return ChangeEvent(
        name=name,
        chain=chain,
        address=address,
        owner=owner,
        expire_height=expire,
        block_timestamp=ts,
    )


@pytest.fixture
def alice_log(tmp_path: Path) -> SQLiteEventLog:
    log = SQLiteEventLog(tmp_path / "events.sqlite", create=True)
    log.extend(
        [
            _event("alice", "THOR", "thor1x", 1, owner="thor1x"),
            _event("alice", "ETH", "0xAB", 2, owner="thor1x"),
        ]
    )
    return log


class FailingLog(EventLog):
    def query_events(self, query: EventQuery, ctx=None) -> list[ChangeEvent]:
        raise DataSourceError("connection reset")

    def current_height(self, ctx=None) -> int:
        return 0


def test_resolves_live_root_record(alice_log: SQLiteEventLog) -> None:
    record = resolve_authoritative(alice_log, "alice", 500)

    assert record == AuthoritativeRecord(owner="thor1x", expire=1000)


def test_expand_entries_orders_by_chain(alice_log: SQLiteEventLog) -> None:
    entries = expand_entries(alice_log, "alice")

    assert entries == (THORNameEntry("ETH", "0xAB"), THORNameEntry("THOR", "thor1x"))


def test_get_thorname_combines_record_and_entries(alice_log: SQLiteEventLog) -> None:
    thorname = get_thorname(alice_log, "alice", 500)

    assert thorname == THORName(
        name="alice",
        owner="thor1x",
        expire=1000,
        entries=(THORNameEntry("ETH", "0xAB"), THORNameEntry("THOR", "thor1x")),
    )
    assert thorname.to_dict()["entries"][0] == {"chain": "ETH", "address": "0xAB"}


def test_expired_root_record_resolves_to_nothing(alice_log: SQLiteEventLog) -> None:
    assert resolve_authoritative(alice_log, "alice", 1500) is None
    assert resolve_authoritative(alice_log, "alice", 1000) is None
    assert get_thorname(alice_log, "alice", 1500) is None
    # the raw per-chain snapshot is still available
    assert len(expand_entries(alice_log, "alice")) == 2


def test_unknown_name_is_absent_not_an_error(alice_log: SQLiteEventLog) -> None:
    assert resolve_authoritative(alice_log, "nobody", 500) is None
    assert expand_entries(alice_log, "nobody") == ()
    assert get_thorname(alice_log, "nobody", 500) is None


def test_only_root_chain_governs_liveness(tmp_path: Path) -> None:
    log = SQLiteEventLog(tmp_path / "events.sqlite", create=True)
    log.extend(
        [
            _event("bob", "THOR", "thor1b", 1, owner="thor1b", expire=100),
            _event("bob", "BTC", "bc1q", 2, owner="thor1other", expire=5000),
        ]
    )

    assert resolve_authoritative(log, "bob", 200) is None
    assert get_thorname(log, "bob", 50).owner == "thor1b"


def test_newest_live_root_event_wins(tmp_path: Path) -> None:
    log = SQLiteEventLog(tmp_path / "events.sqlite", create=True)
    log.extend(
        [
            _event("carol", "THOR", "thor1c", 1, owner="thor1old", expire=2000),
            _event("carol", "THOR", "thor1c", 2, owner="thor1new", expire=900),
        ]
    )

    assert resolve_authoritative(log, "carol", 500).owner == "thor1new"
    # once the newer record lapses, the older still-live record governs
    assert resolve_authoritative(log, "carol", 950).owner == "thor1old"


def test_same_timestamp_tie_break_is_deterministic(tmp_path: Path) -> None:
    log = SQLiteEventLog(tmp_path / "events.sqlite", create=True)
    log.extend(
        [
            _event("dave", "THOR", "thor1d", 7, owner="thor1first"),
            _event("dave", "THOR", "thor1d", 7, owner="thor1second"),
        ]
    )

    results = {resolve_authoritative(log, "dave", 1).owner for _ in range(5)}

    assert results == {"thor1second"}


def test_require_live_false_ignores_expiry(alice_log: SQLiteEventLog) -> None:
    record = resolve_authoritative(alice_log, "alice", 1500, require_live=False)

    assert record == AuthoritativeRecord(owner="thor1x", expire=1000)


def test_custom_root_chain(alice_log: SQLiteEventLog) -> None:
    record = resolve_authoritative(alice_log, "alice", 500, root_chain="ETH")

    assert record == AuthoritativeRecord(owner="thor1x", expire=1000)


def test_repeated_queries_are_identical(alice_log: SQLiteEventLog) -> None:
    first = get_thorname(alice_log, "alice", 500)
    second = get_thorname(alice_log, "alice", 500)

    assert first == second


def test_data_source_errors_propagate() -> None:
    log = FailingLog()

    with pytest.raises(DataSourceError):
        resolve_authoritative(log, "alice", 1)
    with pytest.raises(DataSourceError):
        expand_entries(log, "alice")
    with pytest.raises(DataSourceError):
        get_thorname(log, "alice", 1)


def test_live_root_record_without_owner_is_not_registered(tmp_path: Path) -> None:
    log = SQLiteEventLog(tmp_path / "events.sqlite", create=True)
    log.extend(
        [
            _event("erin", "THOR", "thor1e", 1, owner=""),
            _event("erin", "BTC", "bc1e", 2, owner=""),
        ]
    )

    assert resolve_authoritative(log, "erin", 500) == AuthoritativeRecord(owner="", expire=1000)
    assert get_thorname(log, "erin", 500) is None
