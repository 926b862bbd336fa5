"""
Worker 进程监管（WorkerSupervisor）。

职责：
- 以 `<executable> <script>` 启动长驻 worker，独占持有其 stdin/stdout 两条管道；
- 一行一条消息：写入并 flush 一行请求，读取一行响应；
- 失败策略：写/读 I/O 错误、end-of-stream、空行或超时，一律视为 worker 故障：
  先重启 worker，再抛 `TransportError`。触发故障的请求不会被自动重试，
  下一次调用使用新启动的 worker。

约束：
- 同一时刻最多一个 worker handle；handle 要么完全打开，要么完全关闭（两条流都已释放）；
- 不做任何内部加锁：调用方负责串行化（见 `tsbridge.client.SerializedBridgeClient`）；
- 读取使用 `select` + `os.read` 自行按行切分，面向 macOS/Linux（不考虑 Windows）。
"""

from __future__ import annotations

import logging
import os
import select
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import IO, NoReturn, Optional

from tsbridge.config.loader import WorkerConfig
from tsbridge.core.errors import LifecycleError, ProtocolError, TransportError, WorkerSpawnError
from tsbridge.runtime.paths import WorkerCommand, resolve_worker_command

logger = logging.getLogger(__name__)

_READ_CHUNK_BYTES = 64 * 1024
_TERMINATE_WAIT_SEC = 1.0
_MAX_PREVIEW_BYTES = 200


def _decode_line(raw: bytes) -> str:
    """
    严格按 UTF-8 解码一行响应（去掉行尾 `\\r`）。

    异常：
    - ProtocolError(INVALID_ENVELOPE)：不是合法 UTF-8。帧边界仍然完整，调用方不需要重启 worker
    """

    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise ProtocolError(
            f"response is not valid UTF-8: {e.reason} at byte {e.start}",
            code="INVALID_ENVELOPE",
            details={"line": repr(raw[:_MAX_PREVIEW_BYTES])},
        ) from e
    return text.rstrip("\r")


@dataclass
class WorkerHandle:
    """worker 进程与其两条独占管道。"""

    proc: subprocess.Popen[bytes]
    to_worker: IO[bytes]
    from_worker: IO[bytes]

    @property
    def pid(self) -> int:
        """worker 进程号。"""

        return int(self.proc.pid)


class WorkerSupervisor:
    """
    worker 生命周期与流读写。

    说明：
    - `start/close` 是显式生命周期；`restart` 只在故障路径或宿主显式调用时发生；
    - 关闭顺序：先关 stdin/stdout（worker 读到 EOF 应自行退出），等待 `shutdown_timeout_sec`，
      仍未退出则 terminate，最后 kill，保证不遗留进程。
    """

    def __init__(
        self,
        command: WorkerCommand,
        *,
        read_timeout_sec: Optional[float] = None,
        shutdown_timeout_sec: float = 2.0,
        stderr_log_path: Optional[str] = None,
    ) -> None:
        """
        创建 supervisor（不会启动进程）。

        参数：
        - command：worker 启动参数
        - read_timeout_sec：单次读取响应的最长等待秒数；None 表示无限等待
        - shutdown_timeout_sec：关闭时等待 worker 自行退出的秒数
        - stderr_log_path：worker stderr 追加写入的文件；None 表示继承宿主 stderr
        """

        if read_timeout_sec is not None and read_timeout_sec <= 0:
            raise ValueError("read_timeout_sec must be > 0")
        if shutdown_timeout_sec < 0:
            raise ValueError("shutdown_timeout_sec must be >= 0")

        self._command = command
        self._read_timeout_sec = read_timeout_sec
        self._shutdown_timeout_sec = float(shutdown_timeout_sec)
        self._stderr_log_path = stderr_log_path
        self._handle: Optional[WorkerHandle] = None
        self._buffer = bytearray()
        self._stopped = False
        self._restart_count = 0

    @classmethod
    def from_config(cls, worker: WorkerConfig, *, base_dir: Optional[Path] = None) -> "WorkerSupervisor":
        """
        由 `WorkerConfig` 创建 supervisor。

        参数：
        - worker：worker 配置
        - base_dir：相对脚本路径的解析基准（见 `resolve_worker_command`）
        """

        return cls(
            resolve_worker_command(worker, base_dir=base_dir),
            read_timeout_sec=worker.read_timeout_sec,
            shutdown_timeout_sec=worker.shutdown_timeout_sec,
            stderr_log_path=worker.stderr_log_path,
        )

    @property
    def command(self) -> WorkerCommand:
        """worker 启动参数。"""

        return self._command

    @property
    def is_open(self) -> bool:
        """handle 是否处于打开状态。"""

        return self._handle is not None

    @property
    def pid(self) -> Optional[int]:
        """当前 worker 进程号；未打开时为 None。"""

        return self._handle.pid if self._handle is not None else None

    @property
    def restart_count(self) -> int:
        """累计重启次数（含故障触发与显式调用）。"""

        return self._restart_count

    def start(self) -> None:
        """
        启动 worker 并打开两条管道。

        异常：
        - LifecycleError：handle 已打开
        - WorkerSpawnError：进程无法启动（致命；handle 保持关闭）
        """

        if self._handle is not None:
            raise LifecycleError("worker is already running", code="WORKER_ALREADY_RUNNING", details={"pid": self.pid})

        env = dict(os.environ)
        env.update(self._command.env)
        argv = self._command.argv
        try:
            if self._stderr_log_path:
                log_path = Path(self._stderr_log_path).expanduser()
                log_path.parent.mkdir(parents=True, exist_ok=True)
                with open(log_path, "ab") as err_f:
                    proc = self._spawn(argv, env=env, stderr=err_f)
            else:
                proc = self._spawn(argv, env=env, stderr=None)
        except (OSError, ValueError) as e:
            raise WorkerSpawnError(
                f"failed to spawn worker: {e}",
                details={"argv": list(argv), "cwd": self._command.cwd},
            ) from e

        assert proc.stdin is not None and proc.stdout is not None
        self._buffer.clear()
        self._handle = WorkerHandle(
            proc=proc,
            to_worker=proc.stdin,
            from_worker=proc.stdout,
        )
        self._stopped = False
        logger.info("worker started (pid=%s): %s", proc.pid, " ".join(argv))

    def _spawn(self, argv: list[str], *, env: dict[str, str], stderr: Optional[IO[bytes]]) -> subprocess.Popen[bytes]:
        """
        启动子进程（stdin/stdout 为无缓冲管道）。

        参数：
        - argv：`[executable, script]`
        - env：完整环境变量
        - stderr：stderr 目标（None 表示继承）
        """

        return subprocess.Popen(  # noqa: S603
            argv,
            cwd=self._command.cwd,
            env=env,
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=stderr,
            bufsize=0,
            close_fds=True,
        )

    def restart(self) -> None:
        """
        关闭当前 handle（best-effort：关闭失败只记日志）并以相同参数重新启动。

        异常：
        - WorkerSpawnError：新进程无法启动（handle 保持关闭；下次 exchange 会再次尝试启动）
        """

        old_pid = self.pid
        self._close_handle()
        self._restart_count += 1
        logger.info("restarting worker (old pid=%s, restart #%s)", old_pid, self._restart_count)
        self.start()

    def close(self) -> None:
        """关闭 worker（幂等）；之后 exchange 不会再自动拉起进程。"""

        self._stopped = True
        self._close_handle()

    def write_line(self, line: str) -> None:
        """
        写入一行（自动追加 `\\n`）并 flush。

        异常：
        - LifecycleError：handle 未打开
        - ProtocolError(REQUEST_NOT_SERIALIZABLE)：line 不能编码为 UTF-8（什么都不写，不重启）
        - TransportError(WORKER_IO_FAILED)：写失败；抛出前已重启 worker
        """

        handle = self._require_handle()
        try:
            data = (line + "\n").encode("utf-8")
        except UnicodeEncodeError as e:
            raise ProtocolError(
                f"request line is not encodable as UTF-8: {e.reason}",
                code="REQUEST_NOT_SERIALIZABLE",
            ) from e
        try:
            view = memoryview(data)
            while view:
                n = handle.to_worker.write(view)
                if n is None:
                    raise BlockingIOError("worker stdin is not writable")
                view = view[n:]
            handle.to_worker.flush()
        except (OSError, ValueError) as e:
            self._fail(code="WORKER_IO_FAILED", message=f"failed to write to worker: {e}", cause=e)

    def read_line(self) -> str:
        """
        读取一行（不含行尾）。

        返回：
        - 行内容；worker 关闭 stdout、读取失败或超时时返回 `""`（end-of-stream 标记）

        异常：
        - ProtocolError(INVALID_ENVELOPE)：行内容不是合法 UTF-8

        说明：
        - 本方法只做透传，不执行失败策略；失败策略由 `exchange` 负责。
        """

        try:
            raw = self._read_line_bytes()
        except OSError as e:
            logger.warning("failed to read from worker (pid=%s): %s", self.pid, e)
            return ""
        if raw is None:
            return ""
        return _decode_line(raw)

    def exchange(self, line: str) -> str:
        """
        一次请求/响应往返：写入一行，再读取一行。

        返回：
        - 非空响应行

        异常：
        - TransportError：写失败（WORKER_IO_FAILED）、end-of-stream（WORKER_EOF）、
          空响应行（WORKER_EMPTY_RESPONSE）、读超时（WORKER_TIMEOUT）；抛出前均已重启 worker
        - WorkerSpawnError：handle 因上次重启失败而关闭，且本次拉起仍失败
        - LifecycleError：supervisor 已被 close
        - ProtocolError(INVALID_ENVELOPE)：响应行不是合法 UTF-8（不重启，流仍同步）
        """

        self._ensure_open()
        self.write_line(line)
        try:
            raw = self._read_line_bytes()
        except TimeoutError as e:
            self._fail(
                code="WORKER_TIMEOUT",
                message=f"worker did not answer within {self._read_timeout_sec}s",
                cause=e,
            )
        except OSError as e:
            self._fail(code="WORKER_IO_FAILED", message=f"failed to read from worker: {e}", cause=e)

        if raw is None:
            self._fail(code="WORKER_EOF", message="worker closed its output stream")
        text = _decode_line(raw)
        if not text.strip():
            self._fail(code="WORKER_EMPTY_RESPONSE", message="worker returned an empty response line")
        return text

    def _ensure_open(self) -> None:
        """
        确保 handle 打开。

        说明：
        - 故障重启失败后 handle 处于关闭状态：下次调用先尝试重新拉起；
        - 显式 close 之后不再拉起。
        """

        if self._handle is not None:
            return
        if self._stopped:
            raise LifecycleError("worker supervisor is closed", code="WORKER_NOT_RUNNING")
        self.start()

    def _require_handle(self) -> WorkerHandle:
        """返回当前 handle；未打开时抛 LifecycleError。"""

        if self._handle is None:
            raise LifecycleError("worker is not running", code="WORKER_NOT_RUNNING")
        return self._handle

    def _read_line_bytes(self) -> Optional[bytes]:
        """
        从 worker stdout 读取一行（按 `\\n` 切分，保留缓冲区中的后续数据）。

        返回：
        - 行字节（不含 `\\n`）；end-of-stream 时返回 None（残留的不完整行被丢弃）

        异常：
        - TimeoutError：配置了 read_timeout_sec 且超时
        - OSError：读失败（含 handle 未打开）
        """

        handle = self._handle
        if handle is None:
            raise OSError("worker is not running")
        fd = handle.from_worker.fileno()
        deadline = None if self._read_timeout_sec is None else time.monotonic() + self._read_timeout_sec

        while True:
            idx = self._buffer.find(b"\n")
            if idx >= 0:
                line = bytes(self._buffer[:idx])
                del self._buffer[: idx + 1]
                return line

            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise TimeoutError("read timed out")
                rlist, _, _ = select.select([fd], [], [], remaining)
                if not rlist:
                    raise TimeoutError("read timed out")

            chunk = os.read(fd, _READ_CHUNK_BYTES)
            if not chunk:
                if self._buffer:
                    logger.warning("discarding %s bytes of incomplete worker output", len(self._buffer))
                    self._buffer.clear()
                return None
            self._buffer.extend(chunk)

    def _fail(self, *, code: str, message: str, cause: Optional[BaseException] = None) -> NoReturn:
        """
        故障路径：记录日志、重启 worker，然后抛 `TransportError`。

        说明：
        - 重启失败时抛 `WorkerSpawnError`（以原始 TransportError 为 cause）；
        - 本方法永不正常返回。
        """

        pid = self.pid
        logger.warning("worker failure (pid=%s, code=%s): %s", pid, code, message)
        error = TransportError(message, code=code, details={"pid": pid})
        try:
            self.restart()
        except WorkerSpawnError as spawn_error:
            raise spawn_error from error
        if cause is not None:
            raise error from cause
        raise error

    def _close_handle(self) -> None:
        """关闭当前 handle（best-effort）并回收进程；handle 立即视为关闭。"""

        handle = self._handle
        self._handle = None
        self._buffer.clear()
        if handle is None:
            return

        for name, stream in (("stdin", handle.to_worker), ("stdout", handle.from_worker)):
            try:
                stream.close()
            except OSError as e:
                logger.warning("failed to close worker %s (pid=%s): %s", name, handle.pid, e)
        self._reap(handle.proc)

    def _reap(self, proc: subprocess.Popen[bytes]) -> None:
        """
        等待进程退出；超时则依次 terminate / kill（best-effort，失败只记日志）。

        参数：
        - proc：worker 进程
        """

        try:
            proc.wait(timeout=self._shutdown_timeout_sec)
            return
        except subprocess.TimeoutExpired:
            pass

        for action in (proc.terminate, proc.kill):
            try:
                action()
                proc.wait(timeout=_TERMINATE_WAIT_SEC)
                return
            except subprocess.TimeoutExpired:
                continue
            except OSError as e:
                logger.warning("failed to stop worker (pid=%s): %s", proc.pid, e)
                return
        logger.warning("worker did not exit after kill (pid=%s)", proc.pid)
