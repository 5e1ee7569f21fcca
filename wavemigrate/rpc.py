"""
Client for the Wave robot RPC endpoint.

Each call sends a JSON array holding exactly one operation:

    [{"id": "op_id", "method": "wave.robot.search",
      "params": {"query": "abc", "index": 0, "numResults": 100}}]

and expects back an array holding exactly one result with the same id:

    [{"id": "op_id",
      "data": {"searchResults": {"query": "abc", "numResults": 1,
                                 "digests": [{"waveId": "googlewave.com!w+aaaa",
                                              "title": "aaaa",
                                              "participants": ["aaaa@googlewave.com"],
                                              "lastModified": 1111111111111,
                                              "snippet": "aaaa",
                                              "blipCount": 2,
                                              "unreadCount": 1}]}}}]

The server sometimes answers ``{"id": "op_id", "data": {}}`` when something
went wrong on its side, so an empty data object is treated as a transient
failure and retried.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import requests

from .auth import AuthorizedTransport, get_utf8_response_body
from .errors import ProtocolError, RpcError, TransientIOError, abbrev
from .ids import WaveId, WaveletId, WaveletName
from .retry import RetryableFailure, RetryExecutor, backoff_strategy

logger = logging.getLogger(__name__)

OP_ID = "op_id"
EXPECTED_CONTENT_TYPE = "application/json; charset=UTF-8"

ROBOT_API_METHOD_FETCH_WAVE = "wave.robot.fetchWave"
ROBOT_API_METHOD_SEARCH = "wave.robot.search"
WIAB_ROBOT_API_CREATE_WAVELET = "robot.createWavelet"

DEFAULT_RPC_URL = "https://www-opensocial.googleusercontent.com/api/rpc"


@dataclass(frozen=True)
class SearchDigest:
    wave_id: WaveId
    title: str
    participants: Tuple[str, ...]
    last_modified: int
    snippet: str
    blip_count: int
    unread_count: int


def parse_envelope(body: str) -> Dict[str, Any]:
    """Returns the single result object of a response envelope."""
    try:
        items = json.loads(body)
    except ValueError as exc:
        raise ProtocolError("Response is not valid JSON", body) from exc
    if not isinstance(items, list):
        raise ProtocolError("Response is not a JSON array", body)
    if len(items) != 1:
        raise ProtocolError(f"Unexpected length: {len(items)}", body)
    item = items[0]
    if not isinstance(item, dict):
        raise ProtocolError("Response item is not an object", body)
    if item.get("id") != OP_ID:
        raise ProtocolError("Unexpected id", item)
    return item


def robot_error_401_detector(resp: requests.Response) -> bool:
    """Token refresh is needed on HTTP 401 or an embedded ``{"error": {"code": 401}}``."""
    if resp.status_code == 401:
        return True
    if resp.headers.get("Content-Type") != EXPECTED_CONTENT_TYPE:
        return False
    try:
        item = parse_envelope(resp.content.decode("utf-8", "replace"))
    except ProtocolError:
        # Reported properly once the body is parsed for real.
        return False
    error = item.get("error")
    return isinstance(error, dict) and error.get("code") == 401


def _b64decode(value: Any, what: str, payload: Any) -> bytes:
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, TypeError, ValueError) as exc:
        raise ProtocolError(f"Invalid base64 in {what}", payload) from exc


def parse_digest(raw: Dict[str, Any]) -> SearchDigest:
    try:
        participants: List[str] = []
        for participant in raw["participants"]:
            if participant not in participants:
                participants.append(str(participant))
        return SearchDigest(
            wave_id=WaveId.deserialise(raw["waveId"]),
            title=str(raw["title"]),
            participants=tuple(participants),
            last_modified=int(raw["lastModified"]),
            snippet=str(raw["snippet"]),
            blip_count=int(raw["blipCount"]),
            unread_count=int(raw["unreadCount"]),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise ProtocolError("Failed to parse search digest", raw) from exc


class RobotRpcClient:
    def __init__(
        self,
        transport: AuthorizedTransport,
        base_url: str = DEFAULT_RPC_URL,
        retry: Optional[RetryExecutor] = None,
    ) -> None:
        self.transport = transport
        self.base_url = base_url
        self.retry = retry or RetryExecutor(backoff_strategy(0.5, 10.0, 120.0))

    def _post_once(self, method: str, params: Dict[str, Any]) -> Dict[str, Any]:
        ops = [{"id": OP_ID, "method": method, "params": params}]
        payload = json.dumps(ops)
        logger.debug("payload=%s", payload)
        resp = self.transport.fetch(
            "POST",
            self.base_url,
            headers={"Content-Type": EXPECTED_CONTENT_TYPE},
            data=payload.encode("utf-8"),
            refresh_needed=robot_error_401_detector,
        )
        item = parse_envelope(get_utf8_response_body(resp, EXPECTED_CONTENT_TYPE))
        logger.debug("result=%s", abbrev(item))
        if "error" in item:
            logger.warning("Error result: %s", item)
            raise RpcError(method, item["error"])
        if "data" not in item:
            raise ProtocolError("Result has neither error nor data", item)
        data = item["data"]
        if not isinstance(data, dict):
            raise ProtocolError("Result data is not an object", item)
        if not data:
            raise TransientIOError(f"Robot API response looks like an error: {item}", payload=str(item))
        return item

    def call_raw(self, method: str, params: Dict[str, Any]) -> Dict[str, Any]:
        """Performs one operation and returns the whole result object, ``id`` included."""

        def attempt() -> Dict[str, Any]:
            try:
                return self._post_once(method, params)
            except TransientIOError as exc:
                raise RetryableFailure(str(exc), cause=exc) from exc

        return self.retry.run(attempt, description=method)

    def call(self, method: str, params: Dict[str, Any]) -> Dict[str, Any]:
        return self.call_raw(method, params)["data"]

    def fetch_snapshot(self, name: WaveletName) -> Tuple[bytes, List[bytes]]:
        """Returns the raw wavelet metadata and the raw documents, in server order."""
        data = self.call(
            ROBOT_API_METHOD_FETCH_WAVE,
            {
                "waveId": name.wave_id.serialise(),
                "waveletId": name.wavelet_id.serialise(),
                "returnRawSnapshot": True,
            },
        )
        snapshot = data.get("rawSnapshot")
        if not isinstance(snapshot, list) or not snapshot:
            raise ProtocolError("Failed to parse snapshot response", data)
        # Element 0 is the wavelet metadata, the rest are documents.
        wavelet = _b64decode(snapshot[0], "wavelet metadata", data)
        documents = [_b64decode(part, "document", data) for part in snapshot[1:]]
        return wavelet, documents

    def list_wavelets(self, wave_id: WaveId) -> List[WaveletId]:
        """Returns the wavelets of a wave that are visible to the user."""
        data = self.call(
            ROBOT_API_METHOD_FETCH_WAVE,
            {"waveId": wave_id.serialise(), "listWavelets": True},
        )
        raw_ids = data.get("waveletIds")
        if not isinstance(raw_ids, list):
            raise ProtocolError("Failed to parse listWavelets response", data)
        view: List[WaveletId] = []
        try:
            for raw_id in raw_ids:
                wavelet_id = WaveletId.deserialise(raw_id)
                if wavelet_id not in view:
                    view.append(wavelet_id)
        except (TypeError, ValueError) as exc:
            raise ProtocolError("Failed to parse listWavelets response", data) from exc
        logger.info("list_wavelets(%s) = %s", wave_id, [str(w) for w in view])
        return view

    def fetch_delta_history(self, name: WaveletName) -> Dict[str, Any]:
        """Returns the full result object; ``data.rawDeltas`` holds base64 applied deltas."""
        return self.call_raw(
            ROBOT_API_METHOD_FETCH_WAVE,
            {
                "waveId": name.wave_id.serialise(),
                "waveletId": name.wavelet_id.serialise(),
                "rawDeltasFromVersion": 0,
            },
        )

    def search(self, query: str, start_index: int, max_results: int) -> List[SearchDigest]:
        """Searches the user's waves.

        Returns at most ``max_results`` digests starting with the
        ``start_index``-th hit. The server may cap the overall result set for a
        query at a few hundred hits regardless of paging, so paging does not
        guarantee full coverage; an empty page only means nothing more from
        this offset.
        """
        logger.info("search(%r, %d, %d)", query, start_index, max_results)
        data = self.call(
            ROBOT_API_METHOD_SEARCH,
            {"query": query, "index": start_index, "numResults": max_results},
        )
        results = data.get("searchResults")
        if not isinstance(results, dict):
            raise ProtocolError("Failed to parse search response", data)
        raw_digests = results.get("digests")
        num_results = results.get("numResults")
        if not isinstance(raw_digests, list) or not isinstance(num_results, int):
            raise ProtocolError("Failed to parse search results", results)
        if num_results != len(raw_digests):
            raise ProtocolError(
                f"Mismatched numResults and digests array length: {num_results} vs. {len(raw_digests)}",
                results,
            )
        return [parse_digest(raw) for raw in raw_digests]

    def create_wavelet(self, wavelet_data: Any) -> Dict[str, Any]:
        return self.call(WIAB_ROBOT_API_CREATE_WAVELET, {"waveletData": wavelet_data})
