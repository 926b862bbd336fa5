"""
请求基类（BridgeRequest）。

说明：
- bridge 本身把请求视为不透明值：任何 pydantic model 或 JSON 兼容 mapping 都可以发送；
- feature 自带的请求建议继承 `BridgeRequest`，以获得统一的 camelCase wire 字段与未知字段拒绝。
"""

from __future__ import annotations

from typing import Any, Dict

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class BridgeRequest(BaseModel):
    """feature 请求基类；`feature` 字段由子类以 Literal 固定。"""

    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True, alias_generator=to_camel)

    feature: str

    def to_wire(self) -> Dict[str, Any]:
        """按 wire 形态（camelCase alias，省略 None）导出为 dict。"""

        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
