"""
Runtime configuration.

Credentials and directories come from positional arguments. Tunables come
from an optional JSON config file (``--config`` or ``$WAVEMIGRATE_CONFIG``)
and can be overridden one by one on the command line.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from .auth import GOOGLE_TOKEN_URL
from .bundles import BUNDLE_SUFFIX
from .errors import ConfigError
from .export import DEFAULT_PAGE_SIZE, DEFAULT_SEARCH_QUERY
from .retry import NO_RETRY, RetryExecutor, backoff_strategy
from .rpc import DEFAULT_RPC_URL

CONFIG_ENV_VAR = "WAVEMIGRATE_CONFIG"


@dataclass
class RetrySettings:
    start_delay: float = 0.5
    max_delay: float = 10.0
    max_total: float = 120.0

    def executor(self) -> RetryExecutor:
        if self.max_total <= 0:
            return NO_RETRY
        return RetryExecutor(backoff_strategy(self.start_delay, self.max_delay, self.max_total))


@dataclass
class ExportConfig:
    client_id: str
    client_secret: str
    user_id: str
    participant: str
    refresh_token: str
    access_token: str
    export_dir: Path
    rpc_url: str = DEFAULT_RPC_URL
    token_url: str = GOOGLE_TOKEN_URL
    search_query: str = DEFAULT_SEARCH_QUERY
    page_size: int = DEFAULT_PAGE_SIZE
    request_timeout: float = 20.0
    retry: RetrySettings = field(default_factory=RetrySettings)
    count_only: bool = False


@dataclass
class ImportConfig:
    import_url: str
    domain: str
    bundle_dir: Path
    bundle_suffix: str = BUNDLE_SUFFIX
    request_timeout: float = 60.0


# key -> expected type of the config file value
TUNABLES: Dict[str, type] = {
    "rpc_url": str,
    "token_url": str,
    "search_query": str,
    "page_size": int,
    "request_timeout": float,
    "retry_start_delay": float,
    "retry_max_delay": float,
    "retry_max_total": float,
    "bundle_suffix": str,
}


def load_config_payload(path: Optional[str]) -> Dict[str, Any]:
    """Reads the JSON config file; no file at all is an empty config."""
    if path is None:
        path = os.getenv(CONFIG_ENV_VAR)
        if not path:
            return {}
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found at {config_path.resolve()}")
    with open(config_path, "r", encoding="utf-8") as cfg_file:
        payload = json.load(cfg_file)
    if not isinstance(payload, dict):
        raise ConfigError(f"Configuration file {config_path} must contain a JSON object")
    return payload


def merge_tunables(payload: Mapping[str, Any], overrides: Mapping[str, Any]) -> Dict[str, Any]:
    merged = dict(payload)
    for key, value in overrides.items():
        if value is not None:
            merged[key] = value
    unknown = sorted(set(merged) - set(TUNABLES))
    if unknown:
        raise ConfigError(f"Unknown configuration keys: {', '.join(unknown)}")
    result: Dict[str, Any] = {}
    for key, value in merged.items():
        kind = TUNABLES[key]
        try:
            result[key] = kind(value)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Configuration key {key!r} must be {kind.__name__}, got {value!r}") from exc
    if result.get("page_size", 1) <= 0:
        raise ConfigError("page_size must be positive")
    return result


def build_export_config(positional: Mapping[str, Any], tunables: Mapping[str, Any], count_only: bool = False) -> ExportConfig:
    retry = RetrySettings(
        start_delay=tunables.get("retry_start_delay", RetrySettings.start_delay),
        max_delay=tunables.get("retry_max_delay", RetrySettings.max_delay),
        max_total=tunables.get("retry_max_total", RetrySettings.max_total),
    )
    known = {f.name for f in fields(ExportConfig)}
    kwargs = {k: v for k, v in tunables.items() if k in known}
    return ExportConfig(
        client_id=positional["client_id"],
        client_secret=positional["client_secret"],
        user_id=positional["user_id"],
        participant=positional["participant"],
        refresh_token=positional["refresh_token"],
        access_token=positional["access_token"],
        export_dir=Path(positional["export_dir"]),
        retry=retry,
        count_only=count_only,
        **kwargs,
    )


def build_import_config(positional: Mapping[str, Any], tunables: Mapping[str, Any]) -> ImportConfig:
    known = {f.name for f in fields(ImportConfig)}
    kwargs = {k: v for k, v in tunables.items() if k in known}
    return ImportConfig(
        import_url=positional["import_url"],
        domain=positional["domain"],
        bundle_dir=Path(positional["bundle_dir"]),
        **kwargs,
    )
