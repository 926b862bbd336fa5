"""
Bridge 错误分类（异常类型）。

说明：
- 所有异常都携带稳定错误码（英文大写下划线）、英文 message 与结构化 details；
- 区分“worker 坏了”（TransportError）、“worker 明确拒绝了本次请求”（UpstreamError）
  与“看不懂响应形态”（ProtocolError / UnknownResultTypeError），调用方可据此分别处理；
- 本模块只定义类型，不做任何重试/恢复决策。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class BridgeIssue:
    """结构化问题对象（可 JSON 序列化；用于日志与 outcome details）。"""

    code: str
    message: str
    details: Dict[str, Any]


class BridgeError(Exception):
    """Bridge 错误基类（`code/message/details`）。"""

    default_code = "BRIDGE_ERROR"

    def __init__(self, message: str, *, code: Optional[str] = None, details: Dict[str, Any] | None = None) -> None:
        """创建 bridge 错误。

        参数：
        - `message`：英文错误消息
        - `code`：稳定错误码；缺省使用类级 `default_code`
        - `details`：结构化上下文信息
        """

        super().__init__(message)
        self.code = code or self.default_code
        self.message = message
        self.details: Dict[str, Any] = details or {}

    def __str__(self) -> str:
        """返回用于日志的字符串表示。"""

        return f"{self.code}: {self.message}"

    def to_issue(self) -> BridgeIssue:
        """把异常转换为可序列化问题对象。"""

        return BridgeIssue(code=self.code, message=self.message, details=dict(self.details))


class TransportError(BridgeError):
    """
    worker 流读写失败或读到 end-of-stream。

    说明：
    - 抛出前 supervisor 已完成 worker 重启（副作用）；
    - 触发本错误的请求不会被自动重试。
    """

    default_code = "WORKER_IO_FAILED"


class WorkerSpawnError(BridgeError):
    """worker 进程无法启动（致命错误）。"""

    default_code = "WORKER_SPAWN_FAILED"


class ProtocolError(BridgeError):
    """请求无法编码，或响应行无法解析为合法 envelope / 目标 schema。"""

    default_code = "INVALID_ENVELOPE"


class UnknownResultTypeError(BridgeError):
    """envelope 声明成功，但其 resultType 没有注册 schema。"""

    default_code = "UNKNOWN_RESULT_TYPE"

    def __init__(self, result_type: Optional[str]) -> None:
        """创建 `UnknownResultTypeError`。

        参数：
        - `result_type`：响应中的 tag（可能缺失）
        """

        shown = result_type if result_type is not None else "<missing>"
        super().__init__(f"no result schema registered for type {shown}", details={"result_type": result_type})
        self.result_type = result_type


class UpstreamError(BridgeError):
    """worker 返回 `valid=false`；message 为 worker 提供的原始错误信息。"""

    default_code = "UPSTREAM_ERROR"

    def __init__(self, message: str) -> None:
        """创建 `UpstreamError`。

        参数：
        - `message`：worker 提供的错误信息（原样保留）
        """

        super().__init__(message)

    def __str__(self) -> str:
        """只返回 worker 的原始信息（便于直接展示给用户）。"""

        return self.message


class LifecycleError(BridgeError):
    """bridge 生命周期误用（重复 start、未 start 就 get/stop 等）。"""

    default_code = "BRIDGE_LIFECYCLE"


class RegistryError(BridgeError):
    """Result Registry 配置错误（启动期；例如重复 tag、冻结后注册）。"""

    default_code = "REGISTRY_ERROR"
