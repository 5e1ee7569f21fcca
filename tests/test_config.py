"""
Unit tests for configuration loading and the command-line surface.

Tests cover:
- Config file loading and command-line overrides
- Validation of keys and value types
- Argument parsing for both entry points
"""

import json

import pytest

from wavemigrate.cli import (
    build_export_config_from_args,
    build_import_config_from_args,
    parse_export_args,
    parse_import_args,
)
from wavemigrate.config import CONFIG_ENV_VAR, load_config_payload, merge_tunables
from wavemigrate.errors import ConfigError
from wavemigrate.retry import NO_RETRY

EXPORT_ARGS = ["cid", "secret", "uid", "me@googlewave.com", "refresh", "access", "out"]


class TestLoadConfig:
    def test_no_file_is_empty(self, monkeypatch):
        monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
        assert load_config_payload(None) == {}

    def test_env_var_points_at_file(self, monkeypatch, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"page_size": 50}))
        monkeypatch.setenv(CONFIG_ENV_VAR, str(path))

        assert load_config_payload(None) == {"page_size": 50}

    def test_missing_explicit_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config_payload(str(tmp_path / "absent.json"))


class TestMergeTunables:
    def test_overrides_win(self):
        merged = merge_tunables({"page_size": 50, "search_query": "a"}, {"page_size": 10, "search_query": None})
        assert merged == {"page_size": 10, "search_query": "a"}

    def test_unknown_key(self):
        with pytest.raises(ConfigError, match="mayan_base"):
            merge_tunables({"mayan_base": "x"}, {})

    def test_bad_type(self):
        with pytest.raises(ConfigError, match="page_size"):
            merge_tunables({"page_size": "many"}, {})

    def test_page_size_positive(self):
        with pytest.raises(ConfigError):
            merge_tunables({"page_size": 0}, {})


class TestCommandLine:
    def test_export_positionals(self, monkeypatch):
        monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
        cfg = build_export_config_from_args(parse_export_args(EXPORT_ARGS + ["--page-size", "25"]))

        assert cfg.client_id == "cid"
        assert cfg.participant == "me@googlewave.com"
        assert cfg.refresh_token == "refresh"
        assert cfg.access_token == "access"
        assert str(cfg.export_dir) == "out"
        assert cfg.page_size == 25
        assert cfg.search_query == "after:2000/01/01 before:2012/12/31"

    def test_zero_retry_budget_selects_no_retry(self, monkeypatch, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"retry_max_total": 0}))
        args = parse_export_args(EXPORT_ARGS + ["--config", str(path)])

        cfg = build_export_config_from_args(args)

        assert cfg.retry.executor() is NO_RETRY

    def test_import_positionals(self, monkeypatch):
        monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
        args = parse_import_args(["http://dest/import", "dest.example", "bundles", "--request-timeout", "5"])

        cfg = build_import_config_from_args(args)

        assert cfg.import_url == "http://dest/import"
        assert cfg.domain == "dest.example"
        assert str(cfg.bundle_dir) == "bundles"
        assert cfg.request_timeout == 5.0
        assert cfg.bundle_suffix == "json"

    def test_export_requires_all_positionals(self):
        with pytest.raises(SystemExit):
            parse_export_args(EXPORT_ARGS[:-1])
