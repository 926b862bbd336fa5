"""
核心类型：错误分类与判别式 outcome。
"""

from __future__ import annotations

from tsbridge.core.errors import (
    BridgeError,
    BridgeIssue,
    LifecycleError,
    ProtocolError,
    RegistryError,
    TransportError,
    UnknownResultTypeError,
    UpstreamError,
    WorkerSpawnError,
)
from tsbridge.core.outcome import BridgeErrorKind, BridgeOutcome, classify_bridge_exception

__all__ = [
    "BridgeError",
    "BridgeErrorKind",
    "BridgeIssue",
    "BridgeOutcome",
    "LifecycleError",
    "ProtocolError",
    "RegistryError",
    "TransportError",
    "UnknownResultTypeError",
    "UpstreamError",
    "WorkerSpawnError",
    "classify_bridge_exception",
]
