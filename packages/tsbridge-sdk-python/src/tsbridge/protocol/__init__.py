"""
Bridge wire 协议：请求/结果 schema、ResultRegistry 与 Codec。
"""

from __future__ import annotations

from tsbridge.protocol.codec import Codec, Envelope
from tsbridge.protocol.registry import ResultRegistry, build_default_registry
from tsbridge.protocol.requests import BridgeRequest
from tsbridge.protocol.results import BridgeResult, ErrorResult, Result

__all__ = [
    "BridgeRequest",
    "BridgeResult",
    "Codec",
    "Envelope",
    "ErrorResult",
    "Result",
    "ResultRegistry",
    "build_default_registry",
]
