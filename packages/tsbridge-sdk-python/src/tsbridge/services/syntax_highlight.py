"""
语法高亮 feature。

wire 形态：
- 请求：`{"feature":"highlight","text":"...","lexState":0}`
- 响应：`{"valid":true,"resultType":"SYNTAX_HIGHLIGHT","classifications":[{"length":3,"classification":"keyword"}],"finalLexState":0}`

说明：
- classifications 按顺序首尾相接覆盖整段文本；`final_lex_state` 可作为下一段文本的 `lex_state`，
  用于跨行（多行注释/模板字符串）的增量着色。
"""

from __future__ import annotations

from typing import TYPE_CHECKING, ClassVar, List, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from tsbridge.protocol.registry import ResultRegistry
from tsbridge.protocol.requests import BridgeRequest
from tsbridge.protocol.results import BridgeResult
from tsbridge.services._utils import expect_result

if TYPE_CHECKING:  # pragma: no cover
    from tsbridge.client import BridgeClient


class SyntaxHighlightRequest(BridgeRequest):
    """对一段文本做词法分类。"""

    feature: Literal["highlight"] = "highlight"
    text: str
    lex_state: int = Field(default=0, ge=0)


class ClassificationSpan(BaseModel):
    """一段连续文本的分类。"""

    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True, alias_generator=to_camel)

    length: int = Field(ge=0)
    classification: str


class SyntaxHighlightResult(BridgeResult):
    """分类结果。"""

    RESULT_TYPE: ClassVar[str] = "SYNTAX_HIGHLIGHT"

    classifications: List[ClassificationSpan] = Field(default_factory=list)
    final_lex_state: int = 0

    def spans(self) -> list[tuple[int, int, str]]:
        """把相对长度展开为 `(offset, length, classification)` 绝对区间。"""

        out: list[tuple[int, int, str]] = []
        offset = 0
        for c in self.classifications:
            out.append((offset, c.length, c.classification))
            offset += c.length
        return out


def register_results(registry: ResultRegistry) -> None:
    """注册本 feature 的 result schema（SYNTAX_HIGHLIGHT）。"""

    registry.register(SyntaxHighlightResult)


class SyntaxHighlightService:
    """语法高亮服务。"""

    def __init__(self, bridge: "BridgeClient") -> None:
        """
        参数：
        - bridge：已启动的 `BridgeClient`
        """

        self._bridge = bridge

    def highlight(self, text: str, *, lex_state: int = 0) -> SyntaxHighlightResult:
        """请求对 text 分类（错误语义同 `AutoCompleteService.complete`）。"""

        result = self._bridge.send_request(SyntaxHighlightRequest(text=text, lex_state=lex_state))
        return expect_result(result, SyntaxHighlightResult)
