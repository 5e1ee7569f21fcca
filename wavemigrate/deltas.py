"""
Delta records and the transform applied to them on import.

The binary delta encoding stays behind ``DeltaCodec``. The transform rewrites
participant domains for the destination and re-seeds hashed versions so the
destination's history chain continues correctly.
"""

from __future__ import annotations

import base64
import json
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Protocol, Tuple

from .ids import WaveletName

# Participants on this gateway domain are malformed aliases of a real participant.
FOREIGN_GATEWAY_SUFFIX = "@a.gwave.com"


@dataclass(frozen=True)
class HashedVersion:
    version: int
    history_hash: bytes

    def __post_init__(self) -> None:
        if self.version < 0:
            raise ValueError(f"Negative version: {self.version}")


@dataclass(frozen=True)
class WaveletOperation:
    """One wavelet operation. Anything other than participant changes is opaque."""

    add_participant: Optional[str] = None
    remove_participant: Optional[str] = None
    other: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class WaveletDelta:
    author: str
    hashed_version: HashedVersion
    operations: Tuple[WaveletOperation, ...] = ()
    extra: Dict[str, Any] = field(default_factory=dict)


class DeltaCodec(Protocol):
    def decode_applied(self, raw: bytes) -> WaveletDelta:
        """Extracts the original wire-level delta from an applied-delta record."""

    def encode_delta(self, delta: WaveletDelta) -> bytes:
        ...


class JsonDeltaCodec:
    """Reads applied-delta records serialised as JSON.

    Record shape::

        {"signedOriginalDelta": {"delta": {
            "author": "a@example.com",
            "hashedVersion": {"version": 0, "historyHash": "<base64>"},
            "operation": [{"addParticipant": "b@example.com"}, {"mutateDocument": {...}}]}}}
    """

    def decode_applied(self, raw: bytes) -> WaveletDelta:
        record = json.loads(raw.decode("utf-8"))
        delta = record["signedOriginalDelta"]["delta"]
        version = delta["hashedVersion"]
        operations = []
        for op in delta.get("operation", []):
            op = dict(op)
            operations.append(
                WaveletOperation(
                    add_participant=op.pop("addParticipant", None),
                    remove_participant=op.pop("removeParticipant", None),
                    other=op,
                )
            )
        extra = {
            k: v for k, v in delta.items() if k not in ("author", "hashedVersion", "operation")
        }
        return WaveletDelta(
            author=delta["author"],
            hashed_version=HashedVersion(
                int(version["version"]), base64.b64decode(version.get("historyHash", ""))
            ),
            operations=tuple(operations),
            extra=extra,
        )

    def encode_delta(self, delta: WaveletDelta) -> bytes:
        operations = []
        for op in delta.operations:
            encoded = dict(op.other)
            if op.add_participant is not None:
                encoded["addParticipant"] = op.add_participant
            if op.remove_participant is not None:
                encoded["removeParticipant"] = op.remove_participant
            operations.append(encoded)
        body = dict(delta.extra)
        body.update(
            {
                "author": delta.author,
                "hashedVersion": {
                    "version": delta.hashed_version.version,
                    "historyHash": base64.b64encode(delta.hashed_version.history_hash).decode("ascii"),
                },
                "operation": operations,
            }
        )
        return json.dumps(body, sort_keys=True).encode("utf-8")


def rewrite_domain(
    participant: str, domain: str, last_rewritten: Optional[str]
) -> Tuple[str, Optional[str]]:
    """Moves a participant address onto ``domain``.

    Returns the rewritten value and the carry-over state for the next call,
    which is the value just returned. Values without ``@`` are untouched. A
    value on the foreign gateway domain is replaced by the previous rewritten
    value of the same bundle, when there is one.
    """
    index = participant.find("@")
    if index != -1:
        if participant.endswith(FOREIGN_GATEWAY_SUFFIX) and last_rewritten is not None:
            participant = last_rewritten
        else:
            participant = participant[: index + 1] + domain
    return participant, participant


def genesis_hashed_version(name: WaveletName, version: int = 0) -> HashedVersion:
    """The version-zero hashed version of a wavelet, derived from its name only."""
    uri = f"wave://{name.wave_id.domain}/{name.wave_id.id}/{name.wavelet_id.id}"
    return HashedVersion(version, uri.encode("utf-8"))


class DeltaTransformer:
    """Rewrites the deltas of one bundle, in order.

    Holds the participant carry-over state for the bundle; create a new one
    for every bundle.
    """

    def __init__(self, name: WaveletName, domain: str) -> None:
        self.name = name
        self.domain = domain
        self.last_participant: Optional[str] = None

    def _rewrite(self, participant: str) -> str:
        rewritten, self.last_participant = rewrite_domain(
            participant, self.domain, self.last_participant
        )
        return rewritten

    def transform(
        self, delta: WaveletDelta, previous: Optional[HashedVersion]
    ) -> WaveletDelta:
        """Rewrites ``delta``; ``previous`` is what the destination returned for the last delta."""
        author = self._rewrite(delta.author)
        operations: List[WaveletOperation] = []
        for op in delta.operations:
            if op.add_participant is not None:
                op = replace(op, add_participant=self._rewrite(op.add_participant))
            elif op.remove_participant is not None:
                op = replace(op, remove_participant=self._rewrite(op.remove_participant))
            operations.append(op)
        if delta.hashed_version.version == 0:
            hashed_version = genesis_hashed_version(self.name)
        elif previous is None:
            raise ValueError(
                f"Delta at version {delta.hashed_version.version} has no predecessor to chain from"
            )
        else:
            hashed_version = previous
        return replace(
            delta, author=author, operations=tuple(operations), hashed_version=hashed_version
        )
