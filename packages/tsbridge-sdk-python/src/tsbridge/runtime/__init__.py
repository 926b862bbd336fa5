"""
Worker 进程监管：启动参数解析与 stdin/stdout 单行往返。
"""

from __future__ import annotations

from tsbridge.runtime.paths import WorkerCommand, resolve_worker_command
from tsbridge.runtime.supervisor import WorkerHandle, WorkerSupervisor

__all__ = ["WorkerCommand", "WorkerHandle", "WorkerSupervisor", "resolve_worker_command"]
