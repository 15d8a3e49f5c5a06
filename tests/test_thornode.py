from __future__ import annotations

from typing import Any

import pytest
import requests

from thorname_index.config import IndexConfig
from thorname_index.context import QueryCancelled, QueryContext
from thorname_index.event_log import DataSourceError
from thorname_index.thornode import ThorNodeClient


class StubResponse:
    def __init__(self, payload: Any, status_code: int = 200, text: str = "") -> None:
        self._payload = payload
        self.status_code = status_code
        self.text = text

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Server Error")

    def json(self) -> Any:
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class StubSession:
    def __init__(self, response: StubResponse | None = None, error: Exception | None = None) -> None:
        self.response = response
        self.error = error
        self.calls: list[tuple[str, float]] = []

    def get(self, url: str, timeout: float) -> StubResponse:
        self.calls.append((url, timeout))
        if self.error is not None:
            raise self.error
        assert self.response is not None
        return self.response


def test_current_height_uses_highest_thorchain_height() -> None:
    session = StubSession(
        StubResponse(
            [
                {"chain": "BTC", "last_observed_in": 800000, "thorchain": 12000},
                {"chain": "ETH", "last_observed_in": 18000000, "thorchain": 12002},
            ]
        )
    )
    client = ThorNodeClient("http://node:1317/thorchain/", session=session)

    assert client.current_height() == 12002
    assert session.calls[0][0] == "http://node:1317/thorchain/lastblock"


def test_request_timeout_is_capped_by_context_deadline() -> None:
    session = StubSession(StubResponse({"thorchain": 5}))
    client = ThorNodeClient("http://node:1317/thorchain", timeout=30, session=session)

    assert client.current_height(ctx=QueryContext.with_timeout(2)) == 5
    assert session.calls[0][1] <= 2


def test_connection_failure_becomes_data_source_error() -> None:
    session = StubSession(error=requests.ConnectionError("refused"))
    client = ThorNodeClient("http://node:1317/thorchain", session=session)

    with pytest.raises(DataSourceError):
        client.current_height()


def test_http_error_becomes_data_source_error() -> None:
    client = ThorNodeClient("http://node:1317/thorchain", session=StubSession(StubResponse({}, status_code=503)))

    with pytest.raises(DataSourceError):
        client.current_height()


@pytest.mark.parametrize("payload", [ValueError("bad json"), [], [{"chain": "BTC"}], "oops", [{"thorchain": "x"}]])
def test_malformed_payloads_raise(payload: Any) -> None:
    client = ThorNodeClient("http://node:1317/thorchain", session=StubSession(StubResponse(payload)))

    with pytest.raises(DataSourceError):
        client.current_height()


def test_cancelled_context_skips_the_request() -> None:
    session = StubSession(StubResponse({"thorchain": 5}))
    ctx = QueryContext()
    ctx.cancel()

    with pytest.raises(QueryCancelled):
        ThorNodeClient("http://node:1317/thorchain", session=session).current_height(ctx=ctx)
    assert session.calls == []


def test_from_config_uses_configured_url() -> None:
    client = ThorNodeClient.from_config(IndexConfig(thornode_url="https://thornode.example/thorchain"))

    assert client.base_url == "https://thornode.example/thorchain"
