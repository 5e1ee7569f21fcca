"""
Error types for the Wave migration pipeline.

- WaveMigrateError: base for everything raised by this package
- TransientIOError: network failures and server glitches worth retrying
- ReauthorizationRequired: OAuth credentials can no longer be refreshed
- CredentialConsistencyError: refresh token changed underneath us
- ProtocolError: the remote side broke the envelope contract
- RpcError: the remote side answered with an explicit error object
- ChainIntegrityError: a delta could not be applied at the destination
- ImportRejected: the destination import endpoint refused a bundle
- ConfigError: bad configuration values

Retry-specific failures live in ``wavemigrate.retry``.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


def abbrev(text: Any, limit: int = 500) -> str:
    text = str(text)
    if len(text) <= limit:
        return text
    return f"{text[:limit]}... ({len(text)} chars)"


class WaveMigrateError(Exception):
    """Base exception for all migration errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "WAVEMIGRATE_ERROR"
        self.details = details or {}


class TransientIOError(WaveMigrateError):
    """I/O failure that may succeed when tried again."""

    def __init__(self, message: str, payload: Optional[str] = None) -> None:
        super().__init__(message, code="TRANSIENT_IO", details={"payload": payload})
        self.payload = payload


class ReauthorizationRequired(WaveMigrateError):
    """The OAuth grant is revoked or unusable; a new authorization is needed."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="REAUTHORIZATION_REQUIRED")


class CredentialConsistencyError(WaveMigrateError):
    """A token refresh returned a different refresh token than the one sent."""

    def __init__(self, old_token: str, new_token: str) -> None:
        super().__init__(
            "Unexpectedly got a different refresh token after refresh",
            code="CREDENTIAL_CONSISTENCY",
            details={"had": abbrev(old_token, 8), "got": abbrev(new_token, 8)},
        )


class ProtocolError(WaveMigrateError):
    """The response did not follow the RPC envelope contract.

    The offending raw payload is always part of the message.
    """

    def __init__(self, message: str, payload: Any = None) -> None:
        full = message if payload is None else f"{message}: {abbrev(payload)}"
        super().__init__(full, code="PROTOCOL_ERROR", details={"payload": payload})
        self.payload = payload


class RpcError(WaveMigrateError):
    """The server reported an error for the operation."""

    def __init__(self, method: str, error: Any) -> None:
        super().__init__(
            f"Error from robot API calling {method}: {error}",
            code="RPC_ERROR",
            details={"method": method, "error": error},
        )
        self.method = method
        self.error = error


class ChainIntegrityError(WaveMigrateError):
    """A delta in a bundle was rejected or could not be chained."""

    def __init__(self, message: str, wavelet: Optional[str] = None, index: Optional[int] = None) -> None:
        super().__init__(
            message,
            code="CHAIN_INTEGRITY",
            details={"wavelet": wavelet, "index": index},
        )
        self.wavelet = wavelet
        self.index = index


class ImportRejected(WaveMigrateError):
    """The destination import endpoint answered with a non-200 status."""

    def __init__(self, status_code: int, body: str) -> None:
        super().__init__(body, code="IMPORT_REJECTED", details={"status": status_code})
        self.status_code = status_code


class ConfigError(WaveMigrateError):
    """Configuration is missing or malformed."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="CONFIG_ERROR")
