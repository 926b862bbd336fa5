"""
自动补全与文件检查 feature。

wire 形态：
- 请求：`{"feature":"complete","fileName":...,"line":10,"col":4}` /
  `{"feature":"checkFile","fileName":...}`
- 响应：`{"valid":true,"resultType":"AUTOCOMPLETE","completions":[...]}` /
  `{"valid":true,"resultType":"CHECK_FILE","diagnostics":[...]}`
"""

from __future__ import annotations

from typing import TYPE_CHECKING, ClassVar, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from tsbridge.protocol.registry import ResultRegistry
from tsbridge.protocol.requests import BridgeRequest
from tsbridge.protocol.results import BridgeResult
from tsbridge.services._utils import expect_result

if TYPE_CHECKING:  # pragma: no cover
    from tsbridge.client import BridgeClient


class AutoCompleteRequest(BridgeRequest):
    """在 `file_name` 的 (line, col) 位置请求补全（0-based）。"""

    feature: Literal["complete"] = "complete"
    file_name: Optional[str] = None
    line: int = Field(ge=0)
    col: int = Field(ge=0)


class CheckFileRequest(BridgeRequest):
    """请求对 `file_name` 做语法/语义检查。"""

    feature: Literal["checkFile"] = "checkFile"
    file_name: str


class AutoCompleteResult(BridgeResult):
    """补全候选列表（顺序即 worker 给出的排序）。"""

    RESULT_TYPE: ClassVar[str] = "AUTOCOMPLETE"

    completions: List[str] = Field(default_factory=list)


class Diagnostic(BaseModel):
    """单条诊断（位置为字符偏移）。"""

    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True, alias_generator=to_camel)

    start: int = Field(ge=0)
    length: int = Field(ge=0)
    message: str
    category: str = "error"


class CheckFileResult(BridgeResult):
    """文件检查结果；diagnostics 为空表示没有问题。"""

    RESULT_TYPE: ClassVar[str] = "CHECK_FILE"

    diagnostics: List[Diagnostic] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        """没有任何 error 级诊断。"""

        return not any(d.category == "error" for d in self.diagnostics)


def register_results(registry: ResultRegistry) -> None:
    """注册本 feature 的 result schema（AUTOCOMPLETE / CHECK_FILE）。"""

    registry.register(AutoCompleteResult)
    registry.register(CheckFileResult)


class AutoCompleteService:
    """补全/检查服务：组装请求并通过 bridge 发送。"""

    def __init__(self, bridge: "BridgeClient") -> None:
        """
        参数：
        - bridge：已启动的 `BridgeClient`（或提供同名 `send_request` 的包装）
        """

        self._bridge = bridge

    def complete(self, *, line: int, col: int, file_name: Optional[str] = None) -> AutoCompleteResult:
        """
        请求补全。

        异常：
        - 透传 bridge 的全部错误（TransportError/UpstreamError/...）
        - ProtocolError：worker 返回了其它 resultType
        """

        result = self._bridge.send_request(AutoCompleteRequest(file_name=file_name, line=line, col=col))
        return expect_result(result, AutoCompleteResult)

    def check_file(self, file_name: str) -> CheckFileResult:
        """请求检查文件（错误语义同 `complete`）。"""

        result = self._bridge.send_request(CheckFileRequest(file_name=file_name))
        return expect_result(result, CheckFileResult)
