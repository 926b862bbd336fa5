from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, ClassVar, Iterator

import pytest

import tsbridge.client as bridge_client_module
from tsbridge.config.loader import WorkerConfig
from tsbridge.protocol.registry import ResultRegistry, build_default_registry
from tsbridge.protocol.results import BridgeResult

FAKE_WORKER = Path(__file__).resolve().parent / "fixtures" / "fake_worker.py"


class WorkerInfoResult(BridgeResult):
    """测试 worker 自报的进程信息。"""

    RESULT_TYPE: ClassVar[str] = "WORKER_INFO"

    pid: int
    handled: int


class EchoResult(BridgeResult):
    """原样回显请求 payload。"""

    RESULT_TYPE: ClassVar[str] = "ECHO"

    payload: Any = None


@pytest.fixture
def fake_worker_path() -> Path:
    return FAKE_WORKER


@pytest.fixture
def worker_config(tmp_path: Path) -> WorkerConfig:
    """以当前解释器运行 fake worker；stderr 落盘，避免污染测试输出。"""

    return WorkerConfig(
        executable_path=sys.executable,
        bridge_script_path=str(FAKE_WORKER),
        shutdown_timeout_sec=2.0,
        stderr_log_path=str(tmp_path / "worker.stderr.log"),
    )


@pytest.fixture
def registry() -> ResultRegistry:
    """内置 schema + 测试专用 schema（未冻结）。"""

    reg = build_default_registry()
    reg.register(WorkerInfoResult)
    reg.register(EchoResult)
    return reg


@pytest.fixture(autouse=True)
def _reset_bridge_singleton() -> Iterator[None]:
    """每个用例结束后关闭并清空进程级单例，避免用例之间互相影响。"""

    yield
    client = bridge_client_module._BRIDGE
    bridge_client_module._BRIDGE = None
    if client is not None and client.state.value == "running":
        client.close()
