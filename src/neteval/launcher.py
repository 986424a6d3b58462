from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Callable

from neteval.commands import CommandRunner, run_cmd, wait_until
from neteval.config import NetEvalConfig
from neteval.errors import ReadinessTimeout
from neteval.process import ManagedProcess, ProcessGroup, Spawner, SupervisedProcess

log = logging.getLogger("neteval.launcher")

READY_TOKEN = "DONE"


def controller_ready(log_path: Path) -> bool:
    try:
        text = log_path.read_text(encoding="utf-8", errors="replace")
    except FileNotFoundError:
        return False
    return any(READY_TOKEN in line for line in text.splitlines())


class TrafficLauncher:
    """Starts the routing controller and, once it is ready, the generator."""

    def __init__(
        self,
        cfg: NetEvalConfig,
        group: ProcessGroup,
        *,
        run: CommandRunner | None = None,
        spawn: Spawner = SupervisedProcess.start,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
        cancelled: Callable[[], bool] | None = None,
    ) -> None:
        self._cfg = cfg
        self._group = group
        self._run = run or run_cmd
        self._spawn = spawn
        self._sleep = sleep
        self._clock = clock
        self._cancelled = cancelled
        self._controller_ready = False

    @property
    def cwd(self) -> Path:
        return self._cfg.root_dir

    def launch_controller(
        self, command: str, log_path: Path, timeout_s: float | None = None
    ) -> ManagedProcess:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        proc = self._group.add(
            self._spawn(
                ["bash", "-c", command],
                name=self._cfg.controller_name,
                cwd=self.cwd,
                log_path=log_path,
            )
        )
        ok = wait_until(
            lambda: controller_ready(log_path),
            interval_s=self._cfg.poll_interval_s,
            timeout_s=timeout_s,
            sleep=self._sleep,
            clock=self._clock,
            cancelled=self._cancelled,
        )
        if not ok:
            alive = "running" if proc.alive() else "exited"
            raise ReadinessTimeout(
                f"controller ({alive}) never wrote {READY_TOKEN} to {log_path}"
            )
        self._controller_ready = True
        log.info("controller ready: %s", log_path)
        return proc

    def launch_generator(self, command: str) -> ManagedProcess:
        # Generated traffic is meaningless until forwarding state is installed.
        if not self._controller_ready:
            raise RuntimeError("generator launched before controller readiness")
        return self._group.add(
            self._spawn(["bash", "-c", command], name=self._cfg.generator_name, cwd=self.cwd)
        )

    def raise_mtu(self, count: int, stack: str, pkt_len: int) -> bool:
        if pkt_len <= self._cfg.mtu:
            return False
        for i in range(1, count + 1):
            self._run([*self._cfg.tools.argv("ifconfig"), f"veth.{i}{stack}", "mtu", str(pkt_len)])
        log.info("raised MTU of %d links to %d", count, pkt_len)
        return True

    def stop_all(self, update_rate: int) -> None:
        cfg = self._cfg
        names = [cfg.generator_name, cfg.writer_name]
        # With no updates the controller exits on its own after installing state.
        if update_rate > 0:
            names.insert(0, cfg.controller_name)
        for name in names:
            proc = self._group.get(name)
            if proc is not None:
                proc.terminate()
            self._run([*cfg.tools.argv("pkill"), "-x", name], check=False)
        self._group.reap_all()
