"""Current chain height from a THORNode REST endpoint.

The event log records the heights it has indexed, but operators following
the live chain can read the height straight from a THORNode instead. The
client is thin: one GET, no caching and no retries.
"""

from __future__ import annotations

import logging
from typing import Any

import requests
from requests import RequestException

from .config import IndexConfig
from .context import QueryContext, ensure_context
from .event_log import DataSourceError

logger = logging.getLogger(__name__)


class ThorNodeClient:
    """Read ``/lastblock`` from a THORNode and report the THORChain height."""

    def __init__(self, base_url: str, timeout: float = 8.0, session: requests.Session | None = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()

    @classmethod
    def from_config(cls, config: IndexConfig) -> "ThorNodeClient":
        return cls(config.thornode_url)

    def _get(self, path: str, ctx: QueryContext) -> Any:
        ctx.check()
        remaining = ctx.remaining()
        timeout = self.timeout if remaining is None else min(self.timeout, remaining)
        url = f"{self.base_url}/{path.lstrip('/')}"
        logger.debug("THORNode GET %s", url)
        try:
            response = self._session.get(url, timeout=timeout)
            response.raise_for_status()
        except requests.HTTPError as exc:
            logger.error("THORNode HTTP error: %s", exc, exc_info=logger.isEnabledFor(logging.DEBUG))
            raise DataSourceError(f"THORNode returned an HTTP error for {url}: {exc}") from exc
        except RequestException as exc:
            logger.error("THORNode connection failed: %s", exc, exc_info=logger.isEnabledFor(logging.DEBUG))
            raise DataSourceError(f"THORNode unreachable at {url}; check THORNAME_THORNODE_URL") from exc
        try:
            return response.json()
        except ValueError as exc:
            logger.debug("THORNode JSON parse error: %s", response.text, exc_info=True)
            raise DataSourceError("THORNode returned malformed JSON") from exc

    def current_height(self, ctx: QueryContext | None = None) -> int:
        """Return the highest ``thorchain`` height reported by ``/lastblock``."""

        payload = self._get("lastblock", ensure_context(ctx))
        if isinstance(payload, dict):
            payload = [payload]
        if not isinstance(payload, list):
            raise DataSourceError("Unexpected /lastblock payload from THORNode")
        heights = []
        for item in payload:
            if not isinstance(item, dict) or item.get("thorchain") is None:
                continue
            try:
                heights.append(int(item["thorchain"]))
            except (TypeError, ValueError) as exc:
                raise DataSourceError(f"Invalid thorchain height in /lastblock: {item['thorchain']!r}") from exc
        if not heights:
            raise DataSourceError("THORNode /lastblock did not report a thorchain height")
        return max(heights)


__all__ = ["ThorNodeClient"]
