"""
Unit tests for destination-side bundle replay.

Tests cover:
- Skipping wavelets that already exist
- Sequential submission with chained hashed versions
- Aborting a bundle on the first rejected delta
- Request header handling
"""

import base64
import json

import pytest

from wavemigrate.deltas import HashedVersion
from wavemigrate.errors import ChainIntegrityError, ProtocolError
from wavemigrate.ids import WaveId, WaveletId, WaveletName
from wavemigrate.replay import (
    IMPORTED,
    SKIPPED,
    BundleReplayer,
    SnapshotUnavailable,
    SubmitResult,
)

DEST = WaveletName(WaveId("dest.example", "w+abc"), WaveletId("dest.example", "conv+root"))


def raw_delta(version, author="alice@googlewave.com", ops=()):
    record = {
        "signedOriginalDelta": {
            "delta": {
                "author": author,
                "hashedVersion": {"version": version, "historyHash": base64.b64encode(b"src").decode()},
                "operation": list(ops),
            }
        }
    }
    return base64.b64encode(json.dumps(record).encode()).decode()


def bundle(*deltas):
    return json.dumps({"id": "op_id", "data": {"rawDeltas": list(deltas)}})


class FakeProvider:
    def __init__(self, existing=(), reject_at=None):
        self.existing = set(existing)
        self.reject_at = reject_at
        self.submitted = []

    def get_snapshot(self, name):
        return object() if name in self.existing else None

    def submit_request(self, name, delta):
        index = len(self.submitted)
        self.submitted.append(delta)
        if index == self.reject_at:
            return SubmitResult(error="Delta hash mismatch")
        self.existing.add(name)
        version = delta.hashed_version.version + 1
        return SubmitResult(
            operations_applied=1,
            hashed_version=HashedVersion(version, f"dest-{version}".encode()),
        )


class TestBundleReplayer:
    def test_skips_existing_wavelet(self):
        provider = FakeProvider(existing=[DEST])

        outcome = BundleReplayer(provider).replay("dest.example", DEST, bundle(raw_delta(0)))

        assert outcome.skipped
        assert outcome.status == SKIPPED
        assert provider.submitted == []

    def test_chains_each_delta_from_previous_result(self):
        provider = FakeProvider()
        body = bundle(raw_delta(0), raw_delta(1), raw_delta(2))

        outcome = BundleReplayer(provider).replay("dest.example", DEST, body)

        assert outcome.status == IMPORTED
        assert outcome.applied == 3
        versions = [d.hashed_version for d in provider.submitted]
        assert versions == [
            HashedVersion(0, b"wave://dest.example/w+abc/conv+root"),
            HashedVersion(1, b"dest-1"),
            HashedVersion(2, b"dest-2"),
        ]
        assert {d.author for d in provider.submitted} == {"alice@dest.example"}

    def test_rejection_aborts_remaining_deltas(self):
        provider = FakeProvider(reject_at=1)
        body = bundle(raw_delta(0), raw_delta(1), raw_delta(2))

        with pytest.raises(ChainIntegrityError, match="hash mismatch") as info:
            BundleReplayer(provider).replay("dest.example", DEST, body)
        assert info.value.index == 1
        assert len(provider.submitted) == 2

    def test_participant_state_scoped_to_one_bundle(self):
        provider = FakeProvider()
        replayer = BundleReplayer(provider)
        replayer.replay("dest.example", DEST, bundle(raw_delta(0, author="bob@googlewave.com")))
        other = WaveletName(DEST.wave_id, WaveletId("dest.example", "conv+other"))

        replayer.replay("dest.example", other, bundle(raw_delta(0, author="q@a.gwave.com")))

        assert provider.submitted[-1].author == "q@dest.example"

    def test_replay_is_deterministic(self):
        body = bundle(
            raw_delta(0, ops=[{"addParticipant": "bob@googlewave.com"}]),
            raw_delta(1, author="x@a.gwave.com"),
        )
        first, second = FakeProvider(), FakeProvider()

        BundleReplayer(first).replay("dest.example", DEST, body)
        BundleReplayer(second).replay("dest.example", DEST, body)

        assert first.submitted == second.submitted

    def test_missing_raw_deltas(self):
        with pytest.raises(ProtocolError, match="rawDeltas"):
            BundleReplayer(FakeProvider()).replay("dest.example", DEST, json.dumps({"data": {}}))

    def test_undecodable_delta(self):
        body = bundle(base64.b64encode(b"not json").decode())

        with pytest.raises(ProtocolError, match="decode delta 0"):
            BundleReplayer(FakeProvider()).replay("dest.example", DEST, body)

    def test_snapshot_lookup_failure_imports_anyway(self):
        provider = FakeProvider()

        def broken(name):
            raise SnapshotUnavailable("store down")

        provider.get_snapshot = broken

        outcome = BundleReplayer(provider).replay("dest.example", DEST, bundle(raw_delta(0)))

        assert outcome.applied == 1


class TestHandleRequest:
    def test_reads_names_from_headers(self):
        provider = FakeProvider()
        headers = {
            "domain": "dest.example",
            "waveId": "dest.example!w+abc",
            "waveletId": "dest.example!conv+root",
        }

        assert BundleReplayer(provider).handle_request(headers, bundle(raw_delta(0))) == IMPORTED
        assert BundleReplayer(provider).handle_request(headers, bundle(raw_delta(0))) == SKIPPED

    def test_missing_headers(self):
        with pytest.raises(ProtocolError):
            BundleReplayer(FakeProvider()).handle_request({"domain": "d"}, bundle())
