"""Bundle files: one exported delta history per ``<waveId>#<waveletId>#json`` file."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, List, Mapping, Tuple, Union

from .ids import WaveId, WaveletId, WaveletName

FIELD_SEPARATOR = "#"
BUNDLE_SUFFIX = "json"
TEMP_SUFFIX = ".partial"


def bundle_filename(name: WaveletName) -> str:
    return FIELD_SEPARATOR.join(
        (name.wave_id.serialise(), name.wavelet_id.serialise(), BUNDLE_SUFFIX)
    )


def bundle_path(export_dir: Union[str, Path], name: WaveletName) -> Path:
    return Path(export_dir) / bundle_filename(name)


def parse_bundle_filename(filename: str) -> WaveletName:
    parts = filename.split(FIELD_SEPARATOR)
    if len(parts) < 2:
        raise ValueError(f"Not a bundle file name: {filename!r}")
    return WaveletName(WaveId.deserialise(parts[0]), WaveletId.deserialise(parts[1]))


def list_bundles(bundle_dir: Union[str, Path], suffix: str = BUNDLE_SUFFIX) -> List[Path]:
    return sorted(
        p for p in Path(bundle_dir).iterdir() if p.is_file() and p.name.endswith(suffix)
    )


def write_bundle(path: Path, bundle: Mapping[str, Any]) -> None:
    """Writes the bundle next to its final name, then renames it into place."""
    temp = path.with_name(path.name + TEMP_SUFFIX)
    try:
        with open(temp, "w", encoding="utf-8") as fh:
            json.dump(bundle, fh)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(temp, path)
    finally:
        if temp.exists():
            temp.unlink()


def read_bundle(path: Path) -> str:
    with open(path, "r", encoding="utf-8") as fh:
        return fh.read()


def destination_name(filename: str, domain: str) -> Tuple[WaveletName, WaveletName]:
    """Returns the source name encoded in ``filename`` and the same name on ``domain``."""
    source = parse_bundle_filename(filename)
    return source, WaveletName(source.wave_id.rescoped(domain), source.wavelet_id.rescoped(domain))
