"""
内置 feature 服务（autocomplete / check file / syntax highlight）。

每个 feature 模块提供：
- 请求 model（`BridgeRequest` 子类）
- result schema（`BridgeResult` 子类，声明唯一 `RESULT_TYPE`）
- `register_results(registry)`：在 bridge 启动前注册自己的 tag
"""

from __future__ import annotations

from tsbridge.protocol.registry import ResultRegistry
from tsbridge.services import autocomplete, syntax_highlight
from tsbridge.services.autocomplete import (
    AutoCompleteRequest,
    AutoCompleteResult,
    AutoCompleteService,
    CheckFileRequest,
    CheckFileResult,
    Diagnostic,
)
from tsbridge.services.syntax_highlight import (
    ClassificationSpan,
    SyntaxHighlightRequest,
    SyntaxHighlightResult,
    SyntaxHighlightService,
)


def register_builtin_results(registry: ResultRegistry) -> None:
    """把全部内置 feature 的 result schema 注册到 registry。"""

    autocomplete.register_results(registry)
    syntax_highlight.register_results(registry)


__all__ = [
    "AutoCompleteRequest",
    "AutoCompleteResult",
    "AutoCompleteService",
    "CheckFileRequest",
    "CheckFileResult",
    "ClassificationSpan",
    "Diagnostic",
    "SyntaxHighlightRequest",
    "SyntaxHighlightResult",
    "SyntaxHighlightService",
    "register_builtin_results",
]
