"""
OAuth2-signed HTTP transport with transparent token refresh.

A request is signed with the current access token and sent. If the response
says the token needs refreshing, the token is refreshed exactly once and the
request is sent again; needing a refresh a second time in a row means the
grant itself is unusable and ``ReauthorizationRequired`` is raised.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, Mapping, Optional

import requests

from .errors import (
    CredentialConsistencyError,
    ReauthorizationRequired,
    TransientIOError,
    abbrev,
)

logger = logging.getLogger(__name__)

GOOGLE_TOKEN_URL = "https://accounts.google.com/o/oauth2/token"

RefreshNeededDetector = Callable[[requests.Response], bool]


def RESPONSE_CODE_401_DETECTOR(resp: requests.Response) -> bool:
    return resp.status_code == 401


@dataclass(frozen=True)
class OAuthCredentials:
    refresh_token: str
    access_token: str

    def __repr__(self) -> str:
        return (
            f"OAuthCredentials(refresh_token={abbrev(self.refresh_token, 6)!r}, "
            f"access_token={abbrev(self.access_token, 6)!r})"
        )


class OAuthTokenRefresher:
    """Exchanges a refresh token for a new access token at the token endpoint."""

    def __init__(
        self,
        session: requests.Session,
        client_id: str,
        client_secret: str,
        token_url: str = GOOGLE_TOKEN_URL,
        timeout: float = 20.0,
    ) -> None:
        self.session = session
        self.client_id = client_id
        self.client_secret = client_secret
        self.token_url = token_url
        self.timeout = timeout

    def refresh(self, refresh_token: str) -> OAuthCredentials:
        payload = {
            "grant_type": "refresh_token",
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "refresh_token": refresh_token,
        }
        try:
            resp = self.session.post(self.token_url, data=payload, timeout=self.timeout)
        except requests.RequestException as exc:
            raise TransientIOError(f"Token refresh request failed: {exc}") from exc
        if resp.status_code >= 500:
            raise TransientIOError(
                f"Token endpoint returned {resp.status_code}", payload=resp.text
            )
        if resp.status_code != 200:
            logger.warning("Token refresh returned %s; perhaps revoked", resp.status_code)
            raise ReauthorizationRequired(
                f"Token refresh failed with status {resp.status_code}; perhaps revoked: "
                f"{abbrev(resp.text)}"
            )
        try:
            body = resp.json()
        except ValueError as exc:
            raise ReauthorizationRequired(
                f"Token refresh returned a non-JSON body: {abbrev(resp.text)}"
            ) from exc
        access_token = body.get("access_token") if isinstance(body, dict) else None
        if not access_token:
            raise ReauthorizationRequired("No access token provided after refresh")
        # Google omits refresh_token from refresh responses; absence means unchanged.
        return OAuthCredentials(
            refresh_token=body.get("refresh_token") or refresh_token,
            access_token=access_token,
        )


class CredentialHolder:
    """Owns the credentials of one session; only ``refresh`` mutates them."""

    def __init__(self, credentials: OAuthCredentials, refresher: OAuthTokenRefresher) -> None:
        self._credentials = credentials
        self._refresher = refresher
        self._lock = threading.Lock()

    @property
    def credentials(self) -> OAuthCredentials:
        return self._credentials

    def authorization_header_value(self) -> str:
        return f"Bearer {self._credentials.access_token}"

    def authorize(self, headers: Dict[str, str]) -> Dict[str, str]:
        signed = dict(headers)
        signed["Authorization"] = self.authorization_header_value()
        return signed

    def refresh(self) -> OAuthCredentials:
        with self._lock:
            old = self._credentials
            logger.info("Trying to refresh token; credentials: %r", old)
            new = self._refresher.refresh(old.refresh_token)
            if new.refresh_token != old.refresh_token:
                raise CredentialConsistencyError(old.refresh_token, new.refresh_token)
            self._credentials = new
            logger.info("Successfully refreshed token: %r", new)
            return new


def describe_request(method: str, url: str, headers: Mapping[str, str]) -> str:
    lines = [f"{method} {url}"]
    for name, value in headers.items():
        if name.lower() == "authorization":
            value = abbrev(value, 12)
        lines.append(f"{name}: {value}")
    return "\n".join(lines)


def describe_response(resp: requests.Response, include_body: bool) -> str:
    lines = [f"{resp.status_code} with {len(resp.content or b'')} bytes of content"]
    lines.extend(f"{name}: {value}" for name, value in resp.headers.items())
    lines.append(resp.content.decode("utf-8", "replace") if include_body else "<content elided>")
    return "\n".join(lines)


class AuthorizedTransport:
    def __init__(
        self,
        session: requests.Session,
        credentials: CredentialHolder,
        timeout: float = 20.0,
    ) -> None:
        self.session = session
        self.credentials = credentials
        self.timeout = timeout

    def _send(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str],
        data: Optional[bytes],
        refresh_needed: RefreshNeededDetector,
        token_just_refreshed: bool,
    ) -> requests.Response:
        signed = self.credentials.authorize(dict(headers))
        logger.debug(
            "Sending request (token just refreshed: %s): %s",
            token_just_refreshed,
            describe_request(method, url, signed),
        )
        try:
            resp = self.session.request(method, url, headers=signed, data=data, timeout=self.timeout)
        except requests.RequestException as exc:
            raise TransientIOError(f"{method} {url} failed: {exc}") from exc
        logger.debug("response: %s", describe_response(resp, False))
        if not refresh_needed(resp):
            return resp
        if token_just_refreshed:
            raise ReauthorizationRequired(
                "Token just refreshed, still no good: " + describe_response(resp, True)
            )
        self.credentials.refresh()
        return self._send(method, url, headers, data, refresh_needed, True)

    def fetch(
        self,
        method: str,
        url: str,
        headers: Optional[Mapping[str, str]] = None,
        data: Optional[bytes] = None,
        refresh_needed: RefreshNeededDetector = RESPONSE_CODE_401_DETECTOR,
    ) -> requests.Response:
        return self._send(method, url, headers or {}, data, refresh_needed, False)


def get_utf8_response_body(resp: requests.Response, expected_content_type: str) -> str:
    """Checks the Content-Type exactly and returns the body decoded as UTF-8."""
    content_type = resp.headers.get("Content-Type")
    body = (resp.content or b"").decode("utf-8", "replace")
    if content_type != expected_content_type:
        raise TransientIOError(
            f"Unexpected Content-Type: {content_type} (wanted {expected_content_type}); "
            f"body as UTF-8: {abbrev(body)}",
            payload=body,
        )
    return body
