"""
ResultRegistry：resultType tag -> result schema 的注册表。

语义：
- 初始化期可变：各 feature 在 bridge 可用前各自注册一个（或多个）tag；
- 冻结后只读：`BridgeClient.start()` 会调用 `freeze()`，之后注册一律拒绝；
- tag 空间不相交：重复注册同一 tag 是启动期配置错误（不做覆盖）；
- 注册顺序无关；只有 Codec 会查询本注册表。
"""

from __future__ import annotations

from typing import Dict, Iterator, Optional, Type

from tsbridge.core.errors import RegistryError
from tsbridge.protocol.results import BridgeResult


class ResultRegistry:
    """resultType -> `BridgeResult` 子类 的映射。"""

    def __init__(self) -> None:
        """创建空注册表（未冻结）。"""

        self._schemas: Dict[str, Type[BridgeResult]] = {}
        self._frozen = False

    @property
    def frozen(self) -> bool:
        """是否已冻结（冻结后只读）。"""

        return self._frozen

    def register(self, schema: Type[BridgeResult]) -> Type[BridgeResult]:
        """
        注册一个 result schema（tag 取 `schema.RESULT_TYPE`）。

        参数：
        - schema：`BridgeResult` 子类

        返回：
        - schema 本身（便于作为类装饰器使用）

        异常：
        - RegistryError：已冻结 / 非 BridgeResult 子类 / tag 为空 / tag 重复
        """

        if self._frozen:
            raise RegistryError("result registry is frozen", code="REGISTRY_FROZEN")
        if not isinstance(schema, type) or not issubclass(schema, BridgeResult):
            raise RegistryError(f"result schema must subclass BridgeResult: {schema!r}", code="INVALID_RESULT_SCHEMA")
        tag = str(schema.RESULT_TYPE or "").strip()
        if not tag:
            raise RegistryError(f"result schema {schema.__name__} has no RESULT_TYPE", code="INVALID_RESULT_SCHEMA")
        existing = self._schemas.get(tag)
        if existing is not None:
            raise RegistryError(
                f"duplicate result type: {tag}",
                code="DUPLICATE_RESULT_TYPE",
                details={"result_type": tag, "existing": existing.__name__, "new": schema.__name__},
            )
        self._schemas[tag] = schema
        return schema

    def freeze(self) -> None:
        """冻结注册表（幂等）。"""

        self._frozen = True

    def get(self, tag: str) -> Optional[Type[BridgeResult]]:
        """按 tag 查找 schema；未注册返回 None。"""

        return self._schemas.get(tag)

    def tags(self) -> list[str]:
        """返回已注册 tag（排序后，便于展示/断言）。"""

        return sorted(self._schemas)

    def __contains__(self, tag: object) -> bool:
        """判断 tag 是否已注册。"""

        return tag in self._schemas

    def __iter__(self) -> Iterator[str]:
        """按注册顺序迭代 tag。"""

        return iter(list(self._schemas))

    def __len__(self) -> int:
        """已注册 tag 数量。"""

        return len(self._schemas)


def build_default_registry() -> ResultRegistry:
    """创建一个新的注册表，并注册内置 feature 的 result schema（未冻结）。"""

    from tsbridge.services import register_builtin_results  # local import to avoid cycle

    registry = ResultRegistry()
    register_builtin_results(registry)
    return registry
