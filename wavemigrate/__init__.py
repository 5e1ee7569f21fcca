"""Migrate Google Wave wavelet histories into a Wave in a Box server."""

from .errors import (
    ChainIntegrityError,
    ProtocolError,
    ReauthorizationRequired,
    TransientIOError,
    WaveMigrateError,
)
from .export import ExportDriver, ExportStats
from .importer import ImportDriver, ImportStats
from .rpc import RobotRpcClient, SearchDigest

__version__ = "0.1.0"

__all__ = [
    "ChainIntegrityError",
    "ExportDriver",
    "ExportStats",
    "ImportDriver",
    "ImportStats",
    "ProtocolError",
    "ReauthorizationRequired",
    "RobotRpcClient",
    "SearchDigest",
    "TransientIOError",
    "WaveMigrateError",
]
