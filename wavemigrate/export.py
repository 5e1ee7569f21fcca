"""Export every visible wavelet's delta history into bundle files."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Union

from .bundles import bundle_path, write_bundle
from .errors import CredentialConsistencyError, ProtocolError, ReauthorizationRequired
from .ids import WaveletName
from .retry import RetryInterrupted
from .rpc import RobotRpcClient, SearchDigest

logger = logging.getLogger(__name__)

DEFAULT_SEARCH_QUERY = "after:2000/01/01 before:2012/12/31"
DEFAULT_PAGE_SIZE = 100
PROGRESS_EVERY = 20

# These end the run; anything else only fails the wave or wavelet at hand.
FATAL_ERRORS = (
    RetryInterrupted,
    ReauthorizationRequired,
    CredentialConsistencyError,
    ProtocolError,
)


@dataclass
class ExportStats:
    exported: int = 0
    skipped: int = 0
    failed: int = 0
    pending: int = 0
    waves: int = 0


class ExportDriver:
    def __init__(
        self,
        client: RobotRpcClient,
        export_dir: Union[str, Path],
        query: str = DEFAULT_SEARCH_QUERY,
        page_size: int = DEFAULT_PAGE_SIZE,
        count_only: bool = False,
    ) -> None:
        self.client = client
        self.export_dir = Path(export_dir)
        self.query = query
        self.page_size = page_size
        self.count_only = count_only
        self.stats = ExportStats()

    def run(self) -> ExportStats:
        stats = self.stats = ExportStats()
        index = 0
        try:
            while True:
                digests = self.client.search(self.query, index, self.page_size)
                if not digests:
                    break
                index += len(digests)
                for digest in digests:
                    self.export_wave(digest, stats)
                    stats.waves += 1
                    if stats.waves % PROGRESS_EVERY == 0:
                        logger.info("  ...%d waves processed", stats.waves)
        finally:
            logger.info(
                "Export finished: %d exported, %d skipped, %d failed, %d pending over %d waves",
                stats.exported,
                stats.skipped,
                stats.failed,
                stats.pending,
                stats.waves,
            )
        return stats

    def export_wave(self, digest: SearchDigest, stats: ExportStats) -> None:
        logger.info("%s: %s", digest.wave_id, digest.title)
        try:
            wavelet_ids = self.client.list_wavelets(digest.wave_id)
        except FATAL_ERRORS:
            stats.failed += 1
            raise
        except Exception as exc:
            stats.failed += 1
            logger.error(
                "Failed to list wavelets of %s: %s. Skipping to next.",
                digest.wave_id,
                exc,
                exc_info=logger.isEnabledFor(logging.DEBUG),
            )
            return
        for wavelet_id in wavelet_ids:
            self.export_wavelet(WaveletName(digest.wave_id, wavelet_id), stats)

    def export_wavelet(self, name: WaveletName, stats: ExportStats) -> None:
        path = bundle_path(self.export_dir, name)
        if path.exists():
            logger.info("Skipped %s", path.name)
            stats.skipped += 1
            return
        if self.count_only:
            stats.pending += 1
            return
        logger.info("Exporting %s...", path.name)
        try:
            bundle = self.client.fetch_delta_history(name)
            write_bundle(path, bundle)
        except FATAL_ERRORS:
            stats.failed += 1
            raise
        except Exception as exc:
            stats.failed += 1
            logger.error(
                "Failed to export %s: %s. Skipping to next.",
                name,
                exc,
                exc_info=logger.isEnabledFor(logging.DEBUG),
            )
            return
        stats.exported += 1
