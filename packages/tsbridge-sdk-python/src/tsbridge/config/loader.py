"""
配置加载器（YAML）。

设计目标：
- 支持加载多个 YAML，并按顺序做深度合并（后者覆盖前者）；
- 使用 pydantic 做 schema 校验；默认拒绝未知字段（避免拼写错误与误配置被静默吞掉）；
- 唯一的运行时配置面是 worker 启动参数（可执行文件路径 + bridge 脚本路径）及其进程参数。
"""

from __future__ import annotations

from copy import deepcopy
from pathlib import Path
from typing import Any, Dict, Mapping, MutableMapping, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator


def _deep_merge(base: MutableMapping[str, Any], overlay: Mapping[str, Any]) -> MutableMapping[str, Any]:
    """
    深度合并两个 dict（overlay 覆盖 base）。

    合并规则：
    - dict + dict：递归合并
    - 其它类型：overlay 直接覆盖
    - list：整体覆盖（不做去重/拼接）
    """

    for key, overlay_value in overlay.items():
        if key in base and isinstance(base[key], dict) and isinstance(overlay_value, Mapping):
            _deep_merge(base[key], overlay_value)  # type: ignore[arg-type]
            continue
        base[key] = deepcopy(overlay_value)
    return base


class WorkerConfig(BaseModel):
    """worker 进程配置。"""

    model_config = ConfigDict(extra="forbid")

    executable_path: str
    bridge_script_path: str
    cwd: Optional[str] = None
    env: Dict[str, str] = Field(default_factory=dict)
    read_timeout_sec: Optional[float] = Field(default=None, gt=0.0)
    shutdown_timeout_sec: float = Field(default=2.0, ge=0.0)
    stderr_log_path: Optional[str] = None

    @field_validator("executable_path", "bridge_script_path")
    @classmethod
    def _non_blank(cls, value: str) -> str:
        """路径必须是非空白字符串。"""

        v = str(value or "").strip()
        if not v:
            raise ValueError("must be a non-empty string")
        return v


class BridgeConfig(BaseModel):
    """tsbridge 配置根对象。"""

    model_config = ConfigDict(extra="forbid")

    config_version: int = 1
    worker: WorkerConfig


def _load_yaml_file(path: Path) -> Dict[str, Any]:
    """
    读取单个 YAML 文件并返回 dict（空文件视为 `{}`）。

    异常：
    - ValueError：根节点不是 mapping
    """

    obj = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
    if not isinstance(obj, dict):
        raise ValueError(f"config root must be a mapping(dict): {path}")
    return obj


def load_config_dicts(config_dicts: list[Dict[str, Any]]) -> BridgeConfig:
    """
    加载并合并多个 dict 配置，返回校验后的 `BridgeConfig`。

    参数：
    - config_dicts：按顺序做深度合并（后者覆盖前者）
    """

    merged: Dict[str, Any] = {}
    for overlay in config_dicts:
        if not overlay:
            continue
        _deep_merge(merged, overlay)
    return BridgeConfig.model_validate(merged)


def load_config(config_paths: list[Path]) -> BridgeConfig:
    """
    加载并合并多个配置文件，返回校验后的 `BridgeConfig`。

    参数：
    - config_paths：YAML 路径列表；按顺序合并（后者覆盖前者）
    """

    overlays: list[Dict[str, Any]] = []
    for path in config_paths:
        overlays.append(_load_yaml_file(Path(path)))
    return load_config_dicts(overlays)
