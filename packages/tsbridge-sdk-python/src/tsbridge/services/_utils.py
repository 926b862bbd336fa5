from __future__ import annotations

from typing import Type, TypeVar

from tsbridge.core.errors import ProtocolError
from tsbridge.protocol.results import BridgeResult

_R = TypeVar("_R", bound=BridgeResult)


def expect_result(result: BridgeResult, schema: Type[_R]) -> _R:
    """
    校验 result 的具体类型（feature 服务只接受自己注册的 schema）。

    异常：
    - ProtocolError(UNEXPECTED_RESULT_TYPE)：worker 返回了其它已注册的 resultType
    """

    if not isinstance(result, schema):
        raise ProtocolError(
            f"unexpected result type {result.result_type}, expected {schema.RESULT_TYPE}",
            code="UNEXPECTED_RESULT_TYPE",
            details={"result_type": result.result_type, "expected": schema.RESULT_TYPE},
        )
    return result
