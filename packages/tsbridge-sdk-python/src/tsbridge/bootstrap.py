"""
Bootstrap：宿主侧的配置发现与来源追踪。

设计目标：
- 保持核心无隐式 I/O：`BridgeClient` 只接受显式 `BridgeConfig`，不会自行读取 env/overlay；
- 宿主可选用本模块：按固定顺序合并默认配置、overlay 与 env，并记录关键字段来源，便于排障。

优先级（低 -> 高）：
1) 内置默认（`tsbridge/assets/default.yaml`）
2) `<workspace_root>/config/tsbridge.yaml`（若存在）
3) `TSBRIDGE_CONFIG_PATHS`（逗号/分号分隔；相对路径相对 workspace_root）
4) `TSBRIDGE_EXECUTABLE_PATH` / `TSBRIDGE_BRIDGE_SCRIPT_PATH`
5) 调用方显式 overrides
"""

from __future__ import annotations

import os
from copy import deepcopy
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

import yaml

from tsbridge.config.defaults import load_default_config_dict
from tsbridge.config.loader import BridgeConfig, load_config_dicts

ENV_CONFIG_PATHS = "TSBRIDGE_CONFIG_PATHS"
ENV_EXECUTABLE_PATH = "TSBRIDGE_EXECUTABLE_PATH"
ENV_BRIDGE_SCRIPT_PATH = "TSBRIDGE_BRIDGE_SCRIPT_PATH"

_ENV_WORKER_FIELDS: Tuple[Tuple[str, str], ...] = (
    (ENV_EXECUTABLE_PATH, "executable_path"),
    (ENV_BRIDGE_SCRIPT_PATH, "bridge_script_path"),
)


def _get_env_nonempty(key: str, *, env: Optional[Mapping[str, str]] = None) -> Optional[str]:
    """
    读取 env 并返回非空白字符串（否则视为未设置）。

    参数：
    - key：环境变量名
    - env：env 映射（默认 os.environ）
    """

    v = (os.environ if env is None else env).get(key)
    if v is None:
        return None
    s = str(v).strip()
    return s or None


def _split_paths(raw: str) -> list[str]:
    """将逗号/分号分隔的路径串切分为片段列表（去空白与空项，保序）。"""

    parts: list[str] = []
    for chunk in raw.replace(";", ",").split(","):
        s = chunk.strip()
        if s:
            parts.append(s)
    return parts


def discover_overlay_paths(*, workspace_root: Path, env: Optional[Mapping[str, str]] = None) -> list[Path]:
    """
    overlay 路径发现规则（固定，顺序稳定，按 canonical path 去重）：
    1) 默认 overlay：`<workspace_root>/config/tsbridge.yaml`（存在才加入）
    2) `TSBRIDGE_CONFIG_PATHS` 指定的显式 overlay（必须存在，否则加载时报错）
    """

    ws = Path(workspace_root).resolve()
    overlays: list[Path] = []

    default_overlay = (ws / "config" / "tsbridge.yaml").resolve()
    if default_overlay.exists():
        overlays.append(default_overlay)

    raw = _get_env_nonempty(ENV_CONFIG_PATHS, env=env) or ""
    for p in _split_paths(raw):
        pp = Path(p).expanduser()
        pp = (ws / pp).resolve() if not pp.is_absolute() else pp.resolve()
        overlays.append(pp)

    seen: set[Path] = set()
    uniq: list[Path] = []
    for p in overlays:
        if p in seen:
            continue
        seen.add(p)
        uniq.append(p)
    return uniq


def _record_leaf_sources(value: Any, *, prefix: str, sources: Dict[str, str], label: str) -> None:
    """递归记录 mapping 的叶子字段来源（`sources[dotted.path] = label`）。"""

    if isinstance(value, Mapping):
        for k, v in value.items():
            path = f"{prefix}.{k}" if prefix else str(k)
            _record_leaf_sources(v, prefix=path, sources=sources, label=label)
        return
    sources[prefix] = label


def _merge_with_sources(
    base: Dict[str, Any],
    overlay: Mapping[str, Any],
    *,
    sources: Dict[str, str],
    label: str,
    prefix: str = "",
) -> None:
    """
    将 overlay 深度合并到 base，并同步写入叶子字段来源。

    参数：
    - base：被合并的目标 dict（就地修改）
    - overlay：覆盖层 mapping
    - sources：叶子来源追踪字典（就地修改）
    - label：本次 overlay 的来源标签
    - prefix：当前递归的 dotted path 前缀
    """

    for key, overlay_value in overlay.items():
        k = str(key)
        path = f"{prefix}.{k}" if prefix else k
        if k in base and isinstance(base[k], dict) and isinstance(overlay_value, Mapping):
            _merge_with_sources(base[k], overlay_value, sources=sources, label=label, prefix=path)
            continue
        base[k] = deepcopy(overlay_value)
        _record_leaf_sources(overlay_value, prefix=path, sources=sources, label=label)


def _load_yaml_mapping(path: Path) -> Dict[str, Any]:
    """
    读取 overlay YAML 并确保根节点是 mapping(dict)。

    异常：
    - ValueError：文件不存在或根节点不是 mapping
    """

    if not path.exists():
        raise ValueError(f"overlay config not found: {path}")
    obj = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(obj, dict):
        raise ValueError(f"overlay config root must be a mapping(dict): {path}")
    return obj


@dataclass(frozen=True)
class ResolvedBridgeConfig:
    """
    bootstrap 解析结果。

    字段：
    - config：校验后的 `BridgeConfig`（最终生效值）
    - overlay_paths：参与合并的 overlay 文件路径（字符串化）
    - sources：叶子字段来源（`embedded_default` / `overlay:<path>` / `env:<NAME>` / `override`）
    """

    config: BridgeConfig
    overlay_paths: list[str]
    sources: Dict[str, str]


def resolve_bridge_config(
    *,
    workspace_root: Path,
    env: Optional[Mapping[str, str]] = None,
    overrides: Optional[Mapping[str, Any]] = None,
) -> ResolvedBridgeConfig:
    """
    解析有效配置（overrides > env > overlays > 默认），并返回来源追踪。

    参数：
    - workspace_root：相对路径锚点（overlay 发现与 `TSBRIDGE_CONFIG_PATHS` 解析）
    - env：env 映射（默认 os.environ；测试可注入）
    - overrides：与配置同形的 dict（例如 `{"worker": {"read_timeout_sec": 5}}`）

    异常：
    - ValueError：overlay 缺失/非法
    - pydantic.ValidationError：合并结果不满足 schema
    """

    ws = Path(workspace_root).resolve()
    overlay_paths = discover_overlay_paths(workspace_root=ws, env=env)

    entries: list[Tuple[str, Dict[str, Any]]] = [("embedded_default", load_default_config_dict())]
    for p in overlay_paths:
        entries.append((f"overlay:{p}", _load_yaml_mapping(p)))

    worker_env: Dict[str, Any] = {}
    for env_key, field_name in _ENV_WORKER_FIELDS:
        v = _get_env_nonempty(env_key, env=env)
        if v is not None:
            worker_env[field_name] = v
    for env_key, field_name in _ENV_WORKER_FIELDS:
        if field_name in worker_env:
            entries.append((f"env:{env_key}", {"worker": {field_name: worker_env[field_name]}}))

    if overrides:
        entries.append(("override", dict(overrides)))

    merged: Dict[str, Any] = {}
    sources: Dict[str, str] = {}
    for label, d in entries:
        _merge_with_sources(merged, d, sources=sources, label=label)

    cfg = load_config_dicts([merged])
    return ResolvedBridgeConfig(
        config=cfg,
        overlay_paths=[str(p) for p in overlay_paths],
        sources=sources,
    )
