from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

from tsbridge.config.loader import WorkerConfig


@dataclass(frozen=True)
class WorkerCommand:
    """worker 启动参数（已解析为可直接交给 subprocess 的形态）。"""

    executable_path: str
    script_path: str
    cwd: Optional[str] = None
    env: Dict[str, str] = field(default_factory=dict)

    @property
    def argv(self) -> list[str]:
        """`[executable_path, script_path]`。"""

        return [self.executable_path, self.script_path]


def resolve_worker_command(worker: WorkerConfig, *, base_dir: Optional[Path] = None) -> WorkerCommand:
    """
    把 `WorkerConfig` 解析为 `WorkerCommand`。

    参数：
    - worker：worker 配置
    - base_dir：相对 `bridge_script_path` 的解析基准（通常是插件/安装根目录）；缺省为当前工作目录

    规则：
    - script 为绝对路径时原样使用（展开 `~`）；
    - executable 只含文件名（不含路径分隔符）时保持原样，交给 PATH 查找；否则展开 `~`；
    - cwd 为相对路径时同样按 base_dir 解析。
    """

    base = Path(base_dir).resolve() if base_dir is not None else Path.cwd().resolve()

    script = Path(worker.bridge_script_path).expanduser()
    if not script.is_absolute():
        script = base / script

    executable = worker.executable_path
    if "/" in executable or "\\" in executable:
        executable = str(Path(executable).expanduser())

    cwd: Optional[str] = None
    if worker.cwd:
        c = Path(worker.cwd).expanduser()
        cwd = str(c if c.is_absolute() else (base / c))

    return WorkerCommand(executable_path=executable, script_path=str(script), cwd=cwd, env=dict(worker.env))
