"""
响应结果 schema（BridgeResult / ErrorResult）。

约定：
- 每个具体 result schema 继承 `BridgeResult` 并声明唯一的 `RESULT_TYPE`（wire 上的 `resultType`）；
- 具体 schema 默认拒绝未知字段：只有在 tag 已确定、schema 完全已知时才会用它解码；
- wire 字段名为 camelCase（`resultType/errorMessage/...`），Python 侧使用 snake_case。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, model_validator
from pydantic.alias_generators import to_camel


class BridgeResult(BaseModel):
    """成功响应的基类（对应 `valid=true` 的 envelope）。"""

    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True, alias_generator=to_camel)

    RESULT_TYPE: ClassVar[str] = ""

    valid: Literal[True] = True
    result_type: str = ""
    error_message: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _fill_result_type(cls, data: Any) -> Any:
        """
        补齐/校验 result_type。

        说明：
        - Python 侧构造时可省略 result_type，默认取 `RESULT_TYPE`；
        - 若输入显式给出且与 `RESULT_TYPE` 不一致，视为 schema 不匹配。
        """

        if not isinstance(data, dict) or not cls.RESULT_TYPE:
            return data
        given = data.get("resultType", data.get("result_type"))
        if given is None:
            out = dict(data)
            out["result_type"] = cls.RESULT_TYPE
            return out
        if given != cls.RESULT_TYPE:
            raise ValueError(f"resultType {given!r} does not match schema {cls.RESULT_TYPE!r}")
        return data

    def to_wire(self) -> dict[str, Any]:
        """按 wire 形态（camelCase alias）导出为 dict。"""

        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


@dataclass(frozen=True)
class ErrorResult:
    """失败响应（`valid=false`）；message 为 worker 提供的错误信息。"""

    message: str


Result = Union[BridgeResult, ErrorResult]
