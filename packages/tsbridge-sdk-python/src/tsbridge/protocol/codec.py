"""
Codec：请求编码与两阶段响应解码。

wire 约定：
- 每个方向每条消息一行 UTF-8 JSON，行尾 `\\n` 是唯一的帧边界（无消息 id、无批量）；
- 响应先按 Envelope 宽松解码（忽略未知字段），只信任 `valid/resultType/errorMessage`；
- `valid=false`：直接返回 ErrorResult，不做 tag 查找；
- `valid=true`：按 tag 查 ResultRegistry，再用具体 schema 严格解码整行（未知字段报错）。
"""

from __future__ import annotations

import json
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, StrictBool, ValidationError
from pydantic.alias_generators import to_camel

from tsbridge.core.errors import ProtocolError, UnknownResultTypeError
from tsbridge.protocol.registry import ResultRegistry
from tsbridge.protocol.results import ErrorResult, Result

_LINE_TERMINATORS = ("\n", "\r")
_MAX_PREVIEW_CHARS = 200


class Envelope(BaseModel):
    """所有响应共有的外层形态（宽松解码）。"""

    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True, alias_generator=to_camel)

    valid: StrictBool
    # 只在 valid=true 时要求是字符串（valid=false 时 tag 不参与解码）
    result_type: Optional[Any] = None
    error_message: Optional[str] = None


def _preview(line: str) -> str:
    """截断响应行用于错误 details（避免把超长 payload 塞进日志）。"""

    if len(line) <= _MAX_PREVIEW_CHARS:
        return line
    return line[:_MAX_PREVIEW_CHARS] + "...<truncated>"


class Codec:
    """
    请求/响应编解码器。

    说明：
    - 无状态（除只读的 registry 引用外），可在多个 client 间共享；
    - 所有失败都以 `ProtocolError` / `UnknownResultTypeError` 抛出，不做兜底。
    """

    def __init__(self, registry: ResultRegistry) -> None:
        """
        创建 codec。

        参数：
        - registry：resultType -> schema 注册表（decode 时查询）
        """

        self._registry = registry

    @property
    def registry(self) -> ResultRegistry:
        """codec 使用的注册表。"""

        return self._registry

    def encode(self, request: Any) -> str:
        """
        把请求序列化为一行 JSON（不含行尾）。

        参数：
        - request：pydantic model（按 alias 导出、省略 None）或 JSON 兼容值

        异常：
        - ProtocolError(REQUEST_NOT_SERIALIZABLE)：无法序列化，或结果不能编码为 UTF-8
        - ProtocolError(FRAMING_HAZARD)：序列化结果包含行终止符（会破坏帧同步）
        """

        try:
            payload = request.model_dump(mode="json", by_alias=True, exclude_none=True) if isinstance(request, BaseModel) else request
            line = json.dumps(payload, ensure_ascii=False, separators=(",", ":"), allow_nan=False)
        except (TypeError, ValueError) as e:
            raise ProtocolError(
                f"request is not JSON serializable: {e}",
                code="REQUEST_NOT_SERIALIZABLE",
                details={"request_type": type(request).__name__},
            ) from e

        try:
            line.encode("utf-8")
        except UnicodeEncodeError as e:
            # ensure_ascii=False 时孤立代理项（例如 "\ud800"）原样保留
            raise ProtocolError(
                f"request is not encodable as UTF-8: {e.reason}",
                code="REQUEST_NOT_SERIALIZABLE",
                details={"request_type": type(request).__name__},
            ) from e

        if any(t in line for t in _LINE_TERMINATORS):
            raise ProtocolError(
                "serialized request contains a line terminator",
                code="FRAMING_HAZARD",
                details={"request_type": type(request).__name__},
            )
        return line

    def decode_envelope(self, line: str) -> Envelope:
        """
        第一阶段：只解码 Envelope。

        异常：
        - ProtocolError(INVALID_ENVELOPE)：空行、非 JSON、非 object、`valid` 缺失或非布尔
        """

        text = line.rstrip("\r\n")
        if not text.strip():
            raise ProtocolError("empty response line", code="INVALID_ENVELOPE", details={"line": ""})
        try:
            return Envelope.model_validate_json(text)
        except ValidationError as e:
            raise ProtocolError(
                f"response is not a valid envelope: {e.error_count()} error(s)",
                code="INVALID_ENVELOPE",
                details={"line": _preview(text), "errors": e.errors(include_url=False, include_input=False)},
            ) from e

    def decode(self, line: str) -> Result:
        """
        两阶段解码一行响应。

        返回：
        - ErrorResult：`valid=false`
        - BridgeResult 子类实例：`valid=true` 且 tag 已注册、payload 符合 schema

        异常：
        - ProtocolError：envelope 非法（含 `valid=true` 时 resultType 不是字符串），
          或 payload 不符合已注册 schema
        - UnknownResultTypeError：`valid=true` 但 tag 缺失/未注册
        """

        envelope = self.decode_envelope(line)
        if not envelope.valid:
            return ErrorResult(message=envelope.error_message or "")

        tag = envelope.result_type
        if tag is not None and not isinstance(tag, str):
            raise ProtocolError(
                f"resultType must be a string, got {type(tag).__name__}",
                code="INVALID_ENVELOPE",
                details={"line": _preview(line.rstrip("\r\n"))},
            )
        schema = self._registry.get(tag) if tag else None
        if schema is None:
            raise UnknownResultTypeError(tag)

        text = line.rstrip("\r\n")
        try:
            return schema.model_validate_json(text)
        except ValidationError as e:
            raise ProtocolError(
                f"response does not match schema {tag}: {e.error_count()} error(s)",
                code="RESULT_SCHEMA_MISMATCH",
                details={
                    "result_type": tag,
                    "line": _preview(text),
                    "errors": e.errors(include_url=False, include_input=False),
                },
            ) from e
