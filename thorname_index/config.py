"""Shared configuration loader for the THORName index."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, FrozenSet, Mapping
from urllib.parse import urlparse

import yaml

from .event_log import SQLiteEventLog
from .reverse import DEFAULT_CASE_INSENSITIVE_CHAINS, DEFAULT_MAX_WORKERS, OWNER_CHECK_LIVE, OWNER_CHECK_MODES
from .resolver import ROOT_CHAIN


class ConfigurationError(RuntimeError):
    """Raised when configuration is invalid."""


DEFAULT_CONFIG_PATH = Path.home() / ".thorname-index.yaml"
DEFAULT_DB_PATH = SQLiteEventLog.DEFAULT_DB_PATH
DEFAULT_THORNODE_URL = "http://localhost:1317/thorchain"


@dataclass
class IndexConfig:
    """Settings shared by the CLI and library callers."""

    db_path: Path = DEFAULT_DB_PATH
    root_chain: str = ROOT_CHAIN
    max_workers: int = DEFAULT_MAX_WORKERS
    owner_check: str = OWNER_CHECK_LIVE
    case_insensitive_chains: FrozenSet[str] = field(default_factory=lambda: DEFAULT_CASE_INSENSITIVE_CHAINS)
    query_timeout: float | None = None
    thornode_url: str = DEFAULT_THORNODE_URL


def _load_config_file(path: Path, *, required: bool) -> dict[str, Any]:
    if not path.exists():
        if required:
            raise ConfigurationError(f"Config file not found: {path}")
        return {}

    try:
        loaded = yaml.safe_load(path.read_text()) or {}
    except yaml.YAMLError as exc:  # pragma: no cover - delegated to PyYAML
        raise ConfigurationError(f"Invalid YAML in config file {path}: {exc}") from exc

    if not isinstance(loaded, dict):
        raise ConfigurationError(f"Expected {path} to contain a YAML object with an 'index' section")
    return loaded


def _first_value(*values: Any, default: Any = None) -> Any:
    for value in values:
        if value is not None:
            return value
    return default


def _coerce_int(raw: Any, *, name: str, source: str) -> int | None:
    if raw is None:
        return None
    try:
        value = int(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid {name} in {source}: {raw}") from exc
    if value < 1:
        raise ConfigurationError(f"{name} must be at least 1 in {source}, got {value}")
    return value


def _coerce_timeout(raw: Any, *, source: str) -> float | None:
    if raw is None or raw == "":
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid query_timeout in {source}: {raw}") from exc
    if value <= 0:
        raise ConfigurationError(f"query_timeout must be positive in {source}, got {value}")
    return value


def _coerce_chains(raw: Any, *, source: str) -> FrozenSet[str] | None:
    if raw is None:
        return None
    if isinstance(raw, str):
        pieces = raw.split(",")
    elif isinstance(raw, (list, tuple, set, frozenset)):
        pieces = list(raw)
    else:
        raise ConfigurationError(f"Invalid case_insensitive_chains in {source}: {raw!r}")
    return frozenset(str(piece).strip().upper() for piece in pieces if str(piece).strip())


def _check_owner_check(raw: Any, *, source: str) -> str | None:
    if raw is None:
        return None
    value = str(raw).strip().lower()
    if value not in OWNER_CHECK_MODES:
        raise ConfigurationError(f"owner_check must be one of {', '.join(OWNER_CHECK_MODES)} in {source}, got {raw}")
    return value


def _check_url(raw: str | None) -> str | None:
    if not raw:
        return None
    parsed = urlparse(raw)
    if parsed.scheme not in {"http", "https"} or not parsed.hostname:
        raise ConfigurationError(f"Invalid THORNode URL: {raw}")
    return raw.rstrip("/")


def load_index_config(
    *,
    config_path: str | Path | None = None,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> IndexConfig:
    """Load index settings from overrides, environment variables and optional YAML."""

    env_map = os.environ if env is None else env
    explicit_path = config_path is not None
    path = Path(config_path).expanduser() if config_path is not None else DEFAULT_CONFIG_PATH

    file_config = _load_config_file(path, required=explicit_path)
    section = file_config.get("index", {}) or {}
    if not isinstance(section, dict):
        raise ConfigurationError(f"Expected 'index' to be a mapping in {path}")

    override_map = {key: value for key, value in dict(overrides or {}).items() if value is not None}
    file_source = f"{path} index"

    db_path = _first_value(
        override_map.get("db_path"),
        env_map.get("THORNAME_DB_PATH") or None,
        section.get("db_path"),
        DEFAULT_DB_PATH,
    )
    root_chain = _first_value(
        override_map.get("root_chain"),
        env_map.get("THORNAME_ROOT_CHAIN") or None,
        section.get("root_chain"),
        ROOT_CHAIN,
    )
    max_workers = _first_value(
        _coerce_int(override_map.get("max_workers"), name="max_workers", source="overrides"),
        _coerce_int(env_map.get("THORNAME_MAX_WORKERS"), name="max_workers", source="environment"),
        _coerce_int(section.get("max_workers"), name="max_workers", source=file_source),
        DEFAULT_MAX_WORKERS,
    )
    owner_check = _first_value(
        _check_owner_check(override_map.get("owner_check"), source="overrides"),
        _check_owner_check(env_map.get("THORNAME_OWNER_CHECK"), source="environment"),
        _check_owner_check(section.get("owner_check"), source=file_source),
        OWNER_CHECK_LIVE,
    )
    case_insensitive_chains = _first_value(
        _coerce_chains(override_map.get("case_insensitive_chains"), source="overrides"),
        _coerce_chains(env_map.get("THORNAME_CASE_INSENSITIVE_CHAINS"), source="environment"),
        _coerce_chains(section.get("case_insensitive_chains"), source=file_source),
        DEFAULT_CASE_INSENSITIVE_CHAINS,
    )
    query_timeout = _first_value(
        _coerce_timeout(override_map.get("query_timeout"), source="overrides"),
        _coerce_timeout(env_map.get("THORNAME_QUERY_TIMEOUT"), source="environment"),
        _coerce_timeout(section.get("query_timeout"), source=file_source),
    )
    thornode_url = _first_value(
        _check_url(override_map.get("thornode_url")),
        _check_url(env_map.get("THORNAME_THORNODE_URL")),
        _check_url(section.get("thornode_url")),
        DEFAULT_THORNODE_URL,
    )

    return IndexConfig(
        db_path=Path(db_path).expanduser(),
        root_chain=str(root_chain).strip().upper(),
        max_workers=max_workers,
        owner_check=owner_check,
        case_insensitive_chains=case_insensitive_chains,
        query_timeout=query_timeout,
        thornode_url=thornode_url,
    )
