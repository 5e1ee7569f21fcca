"""Command-line entry points: ``wave-export`` and ``wave-import``."""

from __future__ import annotations

import argparse
import logging
from typing import List, Optional

import requests

from .auth import AuthorizedTransport, CredentialHolder, OAuthCredentials, OAuthTokenRefresher
from .config import (
    ExportConfig,
    ImportConfig,
    build_export_config,
    build_import_config,
    load_config_payload,
    merge_tunables,
)
from .errors import WaveMigrateError
from .export import ExportDriver
from .importer import HttpImportTarget, ImportDriver
from .rpc import RobotRpcClient

logger = logging.getLogger(__name__)


def setup_logging(debug: bool) -> None:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(logging.DEBUG if debug else logging.INFO)
    # urllib3 connection chatter drowns out everything else at DEBUG.
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config",
        help="Optional path to a JSON file containing configuration overrides.",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable verbose debug logging of API calls.",
    )
    parser.add_argument(
        "--request-timeout",
        type=float,
        help="Timeout (seconds) for each HTTP request.",
    )


def parse_export_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Export wavelet delta histories from Google Wave into bundle files."
    )
    for name in ("client_id", "client_secret", "user_id", "participant", "refresh_token", "access_token", "export_dir"):
        parser.add_argument(name)
    _add_common_arguments(parser)
    parser.add_argument(
        "--count-only",
        action="store_true",
        help="Only count wavelets that still need exporting without fetching anything.",
    )
    parser.add_argument("--rpc-url", help="Override the robot RPC endpoint.")
    parser.add_argument("--token-url", help="Override the OAuth2 token endpoint.")
    parser.add_argument("--search-query", help="Search query used to enumerate waves.")
    parser.add_argument("--page-size", type=int, help="Number of search results per page.")
    parser.add_argument(
        "--retry-start-delay",
        type=float,
        help="Initial backoff ceiling (seconds) between RPC retries.",
    )
    parser.add_argument(
        "--retry-max-delay",
        type=float,
        help="Maximum backoff delay (seconds) between RPC retries.",
    )
    parser.add_argument(
        "--retry-max-total",
        type=float,
        help="Total time budget (seconds) for retrying one RPC; 0 disables retries.",
    )
    return parser.parse_args(argv)


def parse_import_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Import exported bundle files into a wave server."
    )
    parser.add_argument("import_url")
    parser.add_argument("domain")
    parser.add_argument("bundle_dir")
    _add_common_arguments(parser)
    parser.add_argument("--bundle-suffix", help="File name suffix identifying bundle files.")
    return parser.parse_args(argv)


def build_export_config_from_args(args: argparse.Namespace) -> ExportConfig:
    overrides = {
        "rpc_url": args.rpc_url,
        "token_url": args.token_url,
        "search_query": args.search_query,
        "page_size": args.page_size,
        "request_timeout": args.request_timeout,
        "retry_start_delay": args.retry_start_delay,
        "retry_max_delay": args.retry_max_delay,
        "retry_max_total": args.retry_max_total,
    }
    tunables = merge_tunables(load_config_payload(args.config), overrides)
    return build_export_config(vars(args), tunables, count_only=args.count_only)


def build_import_config_from_args(args: argparse.Namespace) -> ImportConfig:
    overrides = {
        "request_timeout": args.request_timeout,
        "bundle_suffix": args.bundle_suffix,
    }
    tunables = merge_tunables(load_config_payload(args.config), overrides)
    return build_import_config(vars(args), tunables)


def build_export_driver(cfg: ExportConfig, session: requests.Session) -> ExportDriver:
    refresher = OAuthTokenRefresher(
        session, cfg.client_id, cfg.client_secret, cfg.token_url, cfg.request_timeout
    )
    holder = CredentialHolder(OAuthCredentials(cfg.refresh_token, cfg.access_token), refresher)
    transport = AuthorizedTransport(session, holder, cfg.request_timeout)
    client = RobotRpcClient(transport, cfg.rpc_url, cfg.retry.executor())
    return ExportDriver(
        client,
        cfg.export_dir,
        query=cfg.search_query,
        page_size=cfg.page_size,
        count_only=cfg.count_only,
    )


def export_main(argv: Optional[List[str]] = None) -> int:
    args = parse_export_args(argv)
    setup_logging(args.debug)
    cfg = build_export_config_from_args(args)
    cfg.export_dir.mkdir(parents=True, exist_ok=True)
    logger.info("Exporting as %s (%s) into %s", cfg.participant, cfg.user_id, cfg.export_dir)
    with requests.Session() as session:
        driver = build_export_driver(cfg, session)
        exit_code = 0
        try:
            driver.run()
        except (WaveMigrateError, KeyboardInterrupt) as exc:
            logger.error("Export aborted: %s", exc)
            exit_code = 1
        holder = driver.client.transport.credentials
        if holder.credentials.access_token != cfg.access_token:
            logger.info("Access token was refreshed during the run: %r", holder.credentials)
    stats = driver.stats
    if cfg.count_only:
        print(f"Count-only mode: {stats.pending} wavelets would be exported")
    print(f"Exported count {stats.exported}")
    print(f"Skipped count {stats.skipped}")
    print(f"Not exported count {stats.failed}")
    return exit_code


def import_main(argv: Optional[List[str]] = None) -> int:
    args = parse_import_args(argv)
    setup_logging(args.debug)
    cfg = build_import_config_from_args(args)
    with requests.Session() as session:
        target = HttpImportTarget(session, cfg.import_url, cfg.request_timeout)
        driver = ImportDriver(target, cfg.domain, cfg.bundle_dir, cfg.bundle_suffix)
        exit_code = 0
        try:
            driver.run()
        except KeyboardInterrupt:
            logger.error("Import interrupted")
            exit_code = 1
    stats = driver.stats
    print(f"Imported count {stats.imported}")
    print(f"Not imported count {stats.failed}")
    print(f"Skipped count {stats.skipped}")
    return exit_code

