"""
tsbridge SDK（Python）。

说明：
- 宿主应用通过长驻 worker 进程（例如运行 TypeScript language service 的 Node 脚本）的
  stdin/stdout，以“一行一条 JSON”的形式交换请求/响应；
- 本包只负责协议与进程监管核心：帧、两阶段 typed 解码、故障重启、单飞请求生命周期；
- 具体 feature 的 payload（补全/检查/高亮）作为内置示例注册在 `tsbridge.services`。
"""

from __future__ import annotations

from tsbridge.client import (
    BridgeClient,
    BridgeState,
    SerializedBridgeClient,
    get_bridge,
    start_bridge,
    stop_bridge,
)
from tsbridge.config.loader import BridgeConfig, WorkerConfig
from tsbridge.core.errors import (
    BridgeError,
    LifecycleError,
    ProtocolError,
    RegistryError,
    TransportError,
    UnknownResultTypeError,
    UpstreamError,
    WorkerSpawnError,
)
from tsbridge.core.outcome import BridgeErrorKind, BridgeOutcome
from tsbridge.protocol import BridgeRequest, BridgeResult, Codec, ErrorResult, ResultRegistry, build_default_registry

__all__ = [
    "BridgeClient",
    "BridgeConfig",
    "BridgeError",
    "BridgeErrorKind",
    "BridgeOutcome",
    "BridgeRequest",
    "BridgeResult",
    "BridgeState",
    "Codec",
    "ErrorResult",
    "LifecycleError",
    "ProtocolError",
    "RegistryError",
    "ResultRegistry",
    "SerializedBridgeClient",
    "TransportError",
    "UnknownResultTypeError",
    "UpstreamError",
    "WorkerConfig",
    "WorkerSpawnError",
    "build_default_registry",
    "get_bridge",
    "start_bridge",
    "stop_bridge",
    "__version__",
]

__version__ = "0.1.0"
