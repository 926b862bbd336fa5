"""
BridgeClient：宿主侧的公共入口。

职责：
- 组合 WorkerSupervisor + Codec，实现一次同步的请求/响应往返：
  encode -> 写入并 flush -> 读取一行 -> 两阶段 decode -> 返回 typed result 或抛 typed error；
- 显式生命周期：UNSTARTED -> RUNNING（start）-> STOPPED（close/stop），只有这一条合法路径。

说明：
- `BridgeClient` 是调用方持有的显式 handle，可同时存在多个独立实例（例如测试）；
- 为保持宿主原有用法，模块级 `start_bridge/get_bridge/stop_bridge` 提供进程级单例门面；
- 单飞模型：同一实例同一时刻只允许一个请求在途；需要并发访问时使用 `SerializedBridgeClient`。
"""

from __future__ import annotations

import logging
import threading
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

from tsbridge.config.defaults import load_default_config_dict
from tsbridge.config.loader import BridgeConfig, load_config_dicts
from tsbridge.core.errors import BridgeError, LifecycleError, UpstreamError
from tsbridge.core.outcome import BridgeOutcome
from tsbridge.protocol.codec import Codec
from tsbridge.protocol.registry import ResultRegistry, build_default_registry
from tsbridge.protocol.results import BridgeResult, ErrorResult
from tsbridge.runtime.supervisor import WorkerSupervisor
from tsbridge.services import AutoCompleteService, SyntaxHighlightService

logger = logging.getLogger(__name__)


class BridgeState(str, Enum):
    """bridge 生命周期状态。"""

    UNSTARTED = "unstarted"
    RUNNING = "running"
    STOPPED = "stopped"


def default_bridge_config() -> BridgeConfig:
    """只由内置默认配置构造 `BridgeConfig`（不读 env/overlay；见 `tsbridge.bootstrap`）。"""

    return load_config_dicts([load_default_config_dict()])


class BridgeClient:
    """
    与单个 worker 进程通信的 bridge handle。

    用法：
    - `client = BridgeClient(config).start()` ... `client.close()`
    - 或 `with BridgeClient(config) as client: ...`
    """

    def __init__(
        self,
        config: Optional[BridgeConfig] = None,
        *,
        registry: Optional[ResultRegistry] = None,
        base_dir: Optional[Path] = None,
        supervisor: Optional[WorkerSupervisor] = None,
    ) -> None:
        """
        创建 bridge（不会启动 worker）。

        参数：
        - config：配置；缺省为内置默认配置
        - registry：result 注册表；缺省为 `build_default_registry()`。start 时会被冻结
        - base_dir：相对 `bridge_script_path` 的解析基准（插件/安装根目录）
        - supervisor：可选；直接注入已构造的 supervisor（此时忽略 config.worker 与 base_dir）
        """

        self._config = config if config is not None else default_bridge_config()
        self._registry = registry if registry is not None else build_default_registry()
        self._codec = Codec(self._registry)
        self._supervisor = supervisor or WorkerSupervisor.from_config(self._config.worker, base_dir=base_dir)
        self._state = BridgeState.UNSTARTED
        self._autocomplete: Optional[AutoCompleteService] = None
        self._syntax_highlight: Optional[SyntaxHighlightService] = None

    @property
    def state(self) -> BridgeState:
        """当前生命周期状态。"""

        return self._state

    @property
    def config(self) -> BridgeConfig:
        """生效配置。"""

        return self._config

    @property
    def registry(self) -> ResultRegistry:
        """result 注册表（RUNNING 后只读）。"""

        return self._registry

    @property
    def codec(self) -> Codec:
        """编解码器。"""

        return self._codec

    @property
    def worker_pid(self) -> Optional[int]:
        """当前 worker 进程号；未运行时为 None。"""

        return self._supervisor.pid

    @property
    def restart_count(self) -> int:
        """worker 累计重启次数。"""

        return self._supervisor.restart_count

    @property
    def autocomplete(self) -> AutoCompleteService:
        """补全/检查服务（首次访问时创建，绑定本 bridge）。"""

        if self._autocomplete is None:
            self._autocomplete = AutoCompleteService(self)
        return self._autocomplete

    @property
    def syntax_highlight(self) -> SyntaxHighlightService:
        """语法高亮服务（首次访问时创建，绑定本 bridge）。"""

        if self._syntax_highlight is None:
            self._syntax_highlight = SyntaxHighlightService(self)
        return self._syntax_highlight

    def start(self) -> "BridgeClient":
        """
        冻结注册表并启动 worker。

        异常：
        - LifecycleError：已启动（BRIDGE_ALREADY_STARTED）或已停止（BRIDGE_STOPPED）
        - WorkerSpawnError：worker 无法启动（状态保持 UNSTARTED）
        """

        if self._state is BridgeState.RUNNING:
            raise LifecycleError("bridge is already started, it cannot be started again", code="BRIDGE_ALREADY_STARTED")
        if self._state is BridgeState.STOPPED:
            raise LifecycleError("bridge has been stopped, create a new bridge instead", code="BRIDGE_STOPPED")

        self._registry.freeze()
        self._supervisor.start()
        self._state = BridgeState.RUNNING
        logger.info("bridge started (worker pid=%s, result types=%s)", self._supervisor.pid, self._registry.tags())
        return self

    def close(self) -> None:
        """
        关闭 worker（释放两条流并回收进程），状态转为 STOPPED。

        异常：
        - LifecycleError：未处于 RUNNING（BRIDGE_NOT_STARTED）
        """

        if self._state is not BridgeState.RUNNING:
            raise LifecycleError("bridge has not been started, it cannot be stopped", code="BRIDGE_NOT_STARTED")
        try:
            self._supervisor.close()
        finally:
            self._state = BridgeState.STOPPED
        logger.info("bridge stopped")

    stop = close

    def __enter__(self) -> "BridgeClient":
        """启动 bridge 并返回自身。"""

        return self.start()

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        """RUNNING 时关闭 bridge（不吞异常）。"""

        if self._state is BridgeState.RUNNING:
            self.close()

    def restart_worker(self) -> None:
        """
        宿主显式重启 worker（例如 worker 配置文件变化后）。

        异常：
        - LifecycleError：未处于 RUNNING
        - WorkerSpawnError：新进程无法启动
        """

        self._require_running()
        self._supervisor.restart()

    def send_request(self, request: Any) -> BridgeResult:
        """
        发送一个请求并返回 typed result。

        参数：
        - request：pydantic model（通常是 `BridgeRequest` 子类）或 JSON 兼容 mapping

        返回：
        - 已注册 schema 的实例

        异常（均原样透传，不做吞掉/重试）：
        - LifecycleError：未处于 RUNNING
        - ProtocolError：请求无法编码 / 响应不是合法 envelope / payload 不符合 schema
        - TransportError：worker 读写失败或 end-of-stream（抛出前 worker 已重启；本请求不重试）
        - UnknownResultTypeError：`valid=true` 但 tag 未注册
        - UpstreamError：`valid=false`，携带 worker 提供的 message
        """

        self._require_running()
        line = self._codec.encode(request)
        logger.debug("-> worker: %s", line)
        raw = self._supervisor.exchange(line)
        logger.debug("<- worker: %s", raw)
        result = self._codec.decode(raw)
        if isinstance(result, ErrorResult):
            raise UpstreamError(result.message)
        return result

    def try_send_request(self, request: Any) -> BridgeOutcome:
        """
        与 `send_request` 相同的往返，但把 bridge 错误折叠为判别式 `BridgeOutcome` 返回。

        说明：
        - 只折叠 `BridgeError`；其它异常（编程错误）照常抛出。
        """

        try:
            return BridgeOutcome.success(self.send_request(request))
        except BridgeError as e:
            return BridgeOutcome.failure(e)

    def _require_running(self) -> None:
        """非 RUNNING 时抛 LifecycleError。"""

        if self._state is not BridgeState.RUNNING:
            raise LifecycleError(
                f"bridge is not running (state={self._state.value})",
                code="BRIDGE_NOT_STARTED",
                details={"state": self._state.value},
            )


class SerializedBridgeClient:
    """
    并发调用方的薄包装：用互斥锁串行化整个写/读往返。

    说明：
    - 只保证同一时刻一个请求在途，不做流水线（协议没有消息 id，无法可靠匹配乱序响应）。
    """

    def __init__(self, client: BridgeClient) -> None:
        """
        参数：
        - client：被包装的 bridge（生命周期仍由调用方管理）
        """

        self._client = client
        self._lock = threading.Lock()

    @property
    def client(self) -> BridgeClient:
        """被包装的 bridge。"""

        return self._client

    def send_request(self, request: Any) -> BridgeResult:
        """串行化的 `BridgeClient.send_request`。"""

        with self._lock:
            return self._client.send_request(request)

    def try_send_request(self, request: Any) -> BridgeOutcome:
        """串行化的 `BridgeClient.try_send_request`。"""

        with self._lock:
            return self._client.try_send_request(request)


_BRIDGE: Optional[BridgeClient] = None


def start_bridge(
    executable_path: Optional[str] = None,
    bridge_script_path: Optional[str] = None,
    *,
    config: Optional[BridgeConfig] = None,
    registry: Optional[ResultRegistry] = None,
    base_dir: Optional[Path] = None,
) -> BridgeClient:
    """
    创建并启动进程级单例 bridge。

    参数：
    - executable_path / bridge_script_path：覆盖配置中的 worker 路径（None 表示使用配置值）
    - config：基础配置；缺省为内置默认配置
    - registry / base_dir：见 `BridgeClient`

    异常：
    - LifecycleError：单例已启动（已有 worker 不受影响）
    - WorkerSpawnError：worker 无法启动（单例保持未启动）
    """

    global _BRIDGE
    if _BRIDGE is not None:
        raise LifecycleError("bridge is already started, it cannot be started again", code="BRIDGE_ALREADY_STARTED")

    cfg = config if config is not None else default_bridge_config()
    overrides: Dict[str, Any] = {}
    if executable_path is not None:
        overrides["executable_path"] = executable_path
    if bridge_script_path is not None:
        overrides["bridge_script_path"] = bridge_script_path
    if overrides:
        cfg = load_config_dicts([cfg.model_dump(), {"worker": overrides}])

    client = BridgeClient(cfg, registry=registry, base_dir=base_dir).start()
    _BRIDGE = client
    return client


def get_bridge() -> BridgeClient:
    """
    返回单例 bridge。

    异常：
    - LifecycleError：尚未启动
    """

    if _BRIDGE is None:
        raise LifecycleError("bridge has not been started", code="BRIDGE_NOT_STARTED")
    return _BRIDGE


def stop_bridge() -> None:
    """
    关闭单例 bridge 并清空单例状态（之后可以再次 `start_bridge`）。

    异常：
    - LifecycleError：尚未启动
    """

    global _BRIDGE
    if _BRIDGE is None:
        raise LifecycleError("bridge has not been started, it cannot be stopped", code="BRIDGE_NOT_STARTED")
    client = _BRIDGE
    _BRIDGE = None
    client.close()
