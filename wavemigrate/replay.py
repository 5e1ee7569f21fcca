"""
Destination-side replay of an exported delta bundle.

Deltas are submitted one at a time in recorded order. Each submission returns
the hashed version after application, which seeds the next delta. The first
rejected delta aborts the rest of the bundle; deltas applied before it stay
applied.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Protocol, Union

from .deltas import DeltaCodec, DeltaTransformer, HashedVersion, JsonDeltaCodec, WaveletDelta
from .errors import ChainIntegrityError, ProtocolError, WaveMigrateError
from .ids import WaveId, WaveletId, WaveletName

logger = logging.getLogger(__name__)

SKIPPED = "skipped"
IMPORTED = "imported"


class SnapshotUnavailable(WaveMigrateError):
    """A provider could not tell whether a wavelet exists."""


@dataclass(frozen=True)
class SubmitResult:
    operations_applied: int = 0
    hashed_version: Optional[HashedVersion] = None
    application_timestamp: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class WaveletProvider(Protocol):
    """The destination wave store."""

    def get_snapshot(self, name: WaveletName) -> Optional[Any]:
        ...

    def submit_request(self, name: WaveletName, delta: WaveletDelta) -> SubmitResult:
        ...


@dataclass(frozen=True)
class ReplayOutcome:
    skipped: bool
    applied: int = 0

    @property
    def status(self) -> str:
        return SKIPPED if self.skipped else IMPORTED


def raw_deltas_of(bundle: Union[str, Mapping[str, Any]]) -> List[bytes]:
    """Decodes ``data.rawDeltas`` of an exported bundle."""
    if isinstance(bundle, str):
        try:
            bundle = json.loads(bundle)
        except ValueError as exc:
            raise ProtocolError("Bundle is not valid JSON", bundle) from exc
    try:
        encoded = bundle["data"]["rawDeltas"]
    except (KeyError, TypeError) as exc:
        raise ProtocolError("Bundle has no data.rawDeltas", bundle) from exc
    if not isinstance(encoded, list):
        raise ProtocolError("data.rawDeltas is not an array", bundle)
    try:
        return [base64.b64decode(item) for item in encoded]
    except (binascii.Error, TypeError, ValueError) as exc:
        raise ProtocolError("Invalid base64 in data.rawDeltas", encoded) from exc


class BundleReplayer:
    def __init__(self, provider: WaveletProvider, codec: Optional[DeltaCodec] = None) -> None:
        self.provider = provider
        self.codec = codec or JsonDeltaCodec()

    def already_imported(self, name: WaveletName) -> bool:
        try:
            return self.provider.get_snapshot(name) is not None
        except SnapshotUnavailable:
            logger.exception("Could not look up snapshot of %s; importing anyway", name)
            return False

    def replay(
        self, domain: str, name: WaveletName, bundle: Union[str, Mapping[str, Any]]
    ) -> ReplayOutcome:
        if self.already_imported(name):
            logger.info("%s already present; skipped", name)
            return ReplayOutcome(skipped=True)

        deltas: List[WaveletDelta] = []
        for index, raw in enumerate(raw_deltas_of(bundle)):
            try:
                deltas.append(self.codec.decode_applied(raw))
            except (KeyError, TypeError, ValueError) as exc:
                raise ProtocolError(f"Failed to decode delta {index} of {name}", raw) from exc

        transformer = DeltaTransformer(name, domain)
        previous: Optional[HashedVersion] = None
        applied = 0
        for index, delta in enumerate(deltas):
            try:
                new_delta = transformer.transform(delta, previous)
            except ValueError as exc:
                raise ChainIntegrityError(str(exc), wavelet=str(name), index=index) from exc
            result = self.provider.submit_request(name, new_delta)
            if not result.ok:
                raise ChainIntegrityError(
                    f"Delta {index} of {name} rejected after {applied} applied: {result.error}",
                    wavelet=str(name),
                    index=index,
                )
            if result.hashed_version is None:
                raise ChainIntegrityError(
                    f"Delta {index} of {name} applied without a resulting hashed version",
                    wavelet=str(name),
                    index=index,
                )
            previous = result.hashed_version
            applied += 1
        logger.info("Imported %d deltas into %s", applied, name)
        return ReplayOutcome(skipped=False, applied=applied)

    def handle_request(self, headers: Mapping[str, str], body: str) -> str:
        """Serves one import request; returns the response body on success."""
        lowered: Dict[str, str] = {k.lower(): v for k, v in headers.items()}
        try:
            domain = lowered["domain"]
            name = WaveletName(
                WaveId.deserialise(lowered["waveid"]),
                WaveletId.deserialise(lowered["waveletid"]),
            )
        except (KeyError, ValueError) as exc:
            raise ProtocolError("Import request is missing or has malformed headers", dict(headers)) from exc
        return self.replay(domain, name, body).status
