"""Two-phase start barrier for the container set.

Phase one counts readiness markers: every container touches its own marker
once it has configured its address and reached the gate loop. Phase two
flips the shared gate from 0 to 1, releasing all containers at once. Start
skew between containers is therefore bounded by one gate poll interval, and no
container can send before every peer is ready.
"""

from __future__ import annotations

import logging
import shutil
import time
from pathlib import Path
from typing import Callable

from neteval.commands import CommandRunner, run_cmd, wait_until
from neteval.config import NetEvalConfig
from neteval.errors import BarrierTimeout
from neteval.process import ProcessGroup, Spawner, SupervisedProcess
from neteval.provision import Container

log = logging.getLogger("neteval.barrier")


class Barrier:
    def __init__(
        self,
        cfg: NetEvalConfig,
        *,
        run: CommandRunner | None = None,
        spawn: Spawner = SupervisedProcess.start,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
        cancelled: Callable[[], bool] | None = None,
    ) -> None:
        self._cfg = cfg
        self._run = run or run_cmd
        self._spawn = spawn
        self._sleep = sleep
        self._clock = clock
        self._cancelled = cancelled

    def gate(self) -> int | None:
        try:
            return int(self._cfg.start_file.read_text(encoding="utf-8").strip())
        except (FileNotFoundError, ValueError):
            return None

    def set_gate(self, value: int) -> None:
        path = self._cfg.start_file
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_name(path.name + ".tmp")
        tmp.write_text(f"{int(value)}\n", encoding="utf-8")
        tmp.replace(path)

    def ready_count(self) -> int:
        running = self._cfg.running_dir
        if not running.is_dir():
            return 0
        return sum(1 for _ in running.iterdir())

    def clear_markers(self) -> None:
        shutil.rmtree(self._cfg.running_dir, ignore_errors=True)

    def reset(self) -> None:
        # Stale markers from an aborted run would open the gate early.
        self.clear_markers()
        self._cfg.running_dir.mkdir(parents=True, exist_ok=True)
        self.set_gate(0)

    def release(self) -> None:
        self.clear_markers()
        self.set_gate(1)
        log.info("start gate released")

    def wait_for_script(self, container: Container, timeout_s: float | None = None) -> Path:
        path = self._cfg.script_path(container.name)
        if not wait_until(
            path.exists,
            interval_s=self._cfg.poll_interval_s,
            timeout_s=timeout_s,
            sleep=self._sleep,
            clock=self._clock,
            cancelled=self._cancelled,
        ):
            raise BarrierTimeout(f"container script never appeared: {path}")
        return path

    def launch(self, container: Container) -> SupervisedProcess:
        script = self._cfg.container_tmp / f"{container.name}.sh"
        argv = [*self._cfg.tools.argv("execute"), "-n", container.name, "bash", str(script)]
        return self._spawn(argv, name=container.name)

    def wait_for_markers(self, count: int, timeout_s: float | None = None) -> None:
        ok = wait_until(
            lambda: self.ready_count() == count,
            interval_s=self._cfg.poll_interval_s,
            timeout_s=timeout_s,
            sleep=self._sleep,
            clock=self._clock,
            cancelled=self._cancelled,
        )
        if not ok:
            raise BarrierTimeout(
                f"only {self.ready_count()} of {count} containers reported ready"
            )

    def rendezvous(
        self,
        containers: tuple[Container, ...],
        group: ProcessGroup,
        timeout_s: float | None = None,
    ) -> None:
        self.reset()
        for container in sorted(containers, key=lambda c: c.index):
            self.wait_for_script(container, timeout_s=timeout_s)
            group.add(self.launch(container))
        self.wait_for_markers(len(containers), timeout_s=timeout_s)
        self.release()

    def neighbor_count(self) -> int:
        out = self._run([*self._cfg.tools.argv("xip"), "hid", "showneighs"], check=False)
        return out.count("lladdr")

    def wait_for_neighbors(self, count: int, timeout_s: float | None = None) -> None:
        """Block until link-layer discovery has found every container."""
        ok = wait_until(
            lambda: self.neighbor_count() == count,
            interval_s=self._cfg.poll_interval_s,
            timeout_s=timeout_s,
            sleep=self._sleep,
            clock=self._clock,
            cancelled=self._cancelled,
        )
        if not ok:
            raise BarrierTimeout(f"neighbor discovery did not find {count} containers")
        log.info("All containers have been recognized.")
