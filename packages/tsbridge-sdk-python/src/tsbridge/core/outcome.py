"""
请求结果的判别式表示（BridgeOutcome / BridgeErrorKind）。

说明：
- `BridgeClient.send_request` 以异常报告失败；`try_send_request` 则把同样的信息折叠为
  `BridgeOutcome` 返回，调用方可按 `error_kind` 分支处理而不依赖异常展开；
- 分类只依赖 `tsbridge.core.errors` 中的异常类型；未知异常归为 `unknown`。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Optional

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

if TYPE_CHECKING:  # pragma: no cover
    from tsbridge.protocol.results import BridgeResult


class BridgeErrorKind(str, Enum):
    """失败的稳定分类（机器可消费）。"""

    TRANSPORT = "transport"
    WORKER_SPAWN = "worker_spawn"
    PROTOCOL = "protocol"
    UNKNOWN_RESULT_TYPE = "unknown_result_type"
    UPSTREAM = "upstream"
    LIFECYCLE = "lifecycle"
    CONFIG = "config"

    UNKNOWN = "unknown"


@dataclass(frozen=True)
class BridgeOutcome:
    """
    一次请求的判别式结果。

    字段：
    - result：成功时的 typed result（失败时为 None）
    - error_kind：失败分类（成功时为 None）
    - message：可读错误消息
    - retryable：是否建议上层重试（仅 transport 类为 True：新 worker 已就绪）
    - details：结构化上下文（含稳定 `code`）
    """

    result: Optional["BridgeResult"] = None
    error_kind: Optional[BridgeErrorKind] = None
    message: str = ""
    retryable: bool = False
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        """是否成功。"""

        return self.error_kind is None

    @classmethod
    def success(cls, result: "BridgeResult") -> "BridgeOutcome":
        """构造成功 outcome。"""

        return cls(result=result)

    @classmethod
    def failure(cls, exc: BaseException) -> "BridgeOutcome":
        """由异常构造失败 outcome（分类见 `classify_bridge_exception`）。"""

        return classify_bridge_exception(exc)

    def to_payload(self) -> Dict[str, Any]:
        """转换为可 JSON 序列化的 dict（稳定字段名；result 按 wire alias 输出）。"""

        if self.ok:
            assert self.result is not None
            return {"ok": True, "result": self.result.model_dump(mode="json", by_alias=True, exclude_none=True)}
        assert self.error_kind is not None
        out: Dict[str, Any] = {
            "ok": False,
            "error_kind": str(self.error_kind.value),
            "message": str(self.message or ""),
            "retryable": bool(self.retryable),
        }
        if self.details:
            out["details"] = dict(self.details)
        return out


def classify_bridge_exception(exc: BaseException) -> BridgeOutcome:
    """
    将异常映射为失败的 `BridgeOutcome`。

    约束：
    - 子类判断优先于基类（WorkerSpawnError/UpstreamError 等均是 BridgeError）；
    - message 使用异常自身的 message，不做截断/改写。
    """

    kind = BridgeErrorKind.UNKNOWN
    retryable = False
    if isinstance(exc, TransportError):
        kind = BridgeErrorKind.TRANSPORT
        retryable = True
    elif isinstance(exc, WorkerSpawnError):
        kind = BridgeErrorKind.WORKER_SPAWN
    elif isinstance(exc, UnknownResultTypeError):
        kind = BridgeErrorKind.UNKNOWN_RESULT_TYPE
    elif isinstance(exc, ProtocolError):
        kind = BridgeErrorKind.PROTOCOL
    elif isinstance(exc, UpstreamError):
        kind = BridgeErrorKind.UPSTREAM
    elif isinstance(exc, LifecycleError):
        kind = BridgeErrorKind.LIFECYCLE
    elif isinstance(exc, (RegistryError, ValueError)):
        kind = BridgeErrorKind.CONFIG

    if isinstance(exc, BridgeError):
        issue = exc.to_issue()
        details: Dict[str, Any] = {"code": issue.code}
        details.update(issue.details)
        return BridgeOutcome(error_kind=kind, message=issue.message, retryable=retryable, details=details)
    return BridgeOutcome(error_kind=kind, message=str(exc), retryable=retryable)
