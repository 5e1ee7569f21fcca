"""Shared fakes for the test suite."""

import json
from typing import Any, List, Optional

import requests

from wavemigrate.auth import AuthorizedTransport, CredentialHolder, OAuthCredentials
from wavemigrate.rpc import EXPECTED_CONTENT_TYPE, OP_ID


def make_response(status: int = 200, body: Any = "", content_type: Optional[str] = EXPECTED_CONTENT_TYPE) -> requests.Response:
    resp = requests.Response()
    resp.status_code = status
    resp.encoding = "utf-8"
    if not isinstance(body, (str, bytes)):
        body = json.dumps(body)
    resp._content = body.encode("utf-8") if isinstance(body, str) else body
    if content_type is not None:
        resp.headers["Content-Type"] = content_type
    return resp


def envelope(data: Any = None, error: Any = None, op_id: str = OP_ID) -> requests.Response:
    item = {"id": op_id}
    if error is not None:
        item["error"] = error
    if data is not None:
        item["data"] = data
    return make_response(200, [item])


class FakeSession:
    """Answers ``request``/``post`` calls from a queue and records them."""

    def __init__(self, responses: Optional[List[Any]] = None) -> None:
        self.responses = list(responses or [])
        self.calls: List[dict] = []

    def request(self, method, url, headers=None, data=None, timeout=None):
        self.calls.append({"method": method, "url": url, "headers": dict(headers or {}), "data": data})
        item = self.responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    def post(self, url, headers=None, data=None, timeout=None):
        return self.request("POST", url, headers=headers, data=data, timeout=timeout)

    def sent_json(self, index: int = -1) -> Any:
        return json.loads(self.calls[index]["data"].decode("utf-8"))


class FakeRefresher:
    def __init__(self, access_tokens: List[str], refresh_token: Optional[str] = None) -> None:
        self.access_tokens = list(access_tokens)
        self.refresh_token = refresh_token
        self.calls = 0

    def refresh(self, refresh_token: str) -> OAuthCredentials:
        self.calls += 1
        return OAuthCredentials(self.refresh_token or refresh_token, self.access_tokens.pop(0))


def make_transport(session: FakeSession, refresher: Optional[FakeRefresher] = None) -> AuthorizedTransport:
    holder = CredentialHolder(
        OAuthCredentials("refresh-1", "access-1"), refresher or FakeRefresher(["access-2"])
    )
    return AuthorizedTransport(session, holder)
