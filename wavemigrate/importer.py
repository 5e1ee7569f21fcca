"""Import exported bundle files into a destination wave server."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, Union

import requests

from .bundles import BUNDLE_SUFFIX, destination_name, list_bundles, read_bundle
from .errors import ImportRejected
from .ids import WaveletName
from .replay import SKIPPED, BundleReplayer

logger = logging.getLogger(__name__)

CONTENT_TYPE = "application/json; charset=UTF-8"


class ImportTarget(Protocol):
    def import_bundle(self, domain: str, name: WaveletName, bundle: str) -> bool:
        """Returns True when imported, False when the destination already had it."""


class HttpImportTarget:
    """Posts whole bundles to a destination import endpoint."""

    def __init__(self, session: requests.Session, url: str, timeout: float = 60.0) -> None:
        self.session = session
        self.url = url
        self.timeout = timeout

    def import_bundle(self, domain: str, name: WaveletName, bundle: str) -> bool:
        headers = {
            "Content-Type": CONTENT_TYPE,
            "domain": domain,
            "waveId": name.wave_id.serialise(),
            "waveletId": name.wavelet_id.serialise(),
        }
        resp = self.session.post(
            self.url, headers=headers, data=bundle.encode("utf-8"), timeout=self.timeout
        )
        content = resp.content.decode("utf-8", "replace")
        if resp.status_code != 200:
            raise ImportRejected(resp.status_code, content)
        logger.info("... %s", content)
        return content != SKIPPED


class LocalImportTarget:
    """Replays bundles directly against an in-process wavelet provider."""

    def __init__(self, replayer: BundleReplayer) -> None:
        self.replayer = replayer

    def import_bundle(self, domain: str, name: WaveletName, bundle: str) -> bool:
        return not self.replayer.replay(domain, name, bundle).skipped


@dataclass
class ImportStats:
    imported: int = 0
    skipped: int = 0
    failed: int = 0


class ImportDriver:
    def __init__(
        self,
        target: ImportTarget,
        domain: str,
        bundle_dir: Union[str, Path],
        suffix: str = BUNDLE_SUFFIX,
    ) -> None:
        self.target = target
        self.domain = domain
        self.bundle_dir = Path(bundle_dir)
        self.suffix = suffix
        self.stats = ImportStats()

    def run(self) -> ImportStats:
        stats = self.stats = ImportStats()
        try:
            for path in list_bundles(self.bundle_dir, self.suffix):
                self.import_file(path, stats)
        finally:
            logger.info(
                "Import finished: %d imported, %d skipped, %d failed",
                stats.imported,
                stats.skipped,
                stats.failed,
            )
        return stats

    def import_file(self, path: Path, stats: ImportStats) -> None:
        logger.info("Importing %s...", path)
        try:
            _, name = destination_name(path.name, self.domain)
            if self.target.import_bundle(self.domain, name, read_bundle(path)):
                stats.imported += 1
            else:
                stats.skipped += 1
        except Exception as exc:
            stats.failed += 1
            logger.error(
                "Failed to import %s: %s",
                path.name,
                exc,
                exc_info=logger.isEnabledFor(logging.DEBUG),
            )
