from __future__ import annotations

import contextlib
import enum
import fcntl
import logging
import os
import signal
import threading
import time
from typing import Callable, Iterator

from neteval.barrier import Barrier
from neteval.boot import BootHook
from neteval.catalog import ExperimentDescriptor, load_descriptor
from neteval.commands import CommandRunner, run_cmd
from neteval.config import NetEvalConfig
from neteval.errors import Cancelled, MissingRecord, PrivilegeError, RunnerBusy
from neteval.launcher import TrafficLauncher
from neteval.process import ProcessGroup, Spawner, SupervisedProcess
from neteval.provision import ContainerProvisioner
from neteval.scripts import ScriptGenerator
from neteval.status import StatusRecord, StatusTracker

log = logging.getLogger("neteval.runner")


class RunnerState(enum.Enum):
    INIT = "init"
    PROVISIONED = "provisioned"
    SYNCHRONIZED = "synchronized"
    RUNNING = "running"
    DRAINING = "draining"
    ADVANCING = "advancing"
    REPEAT = "repeat"
    TERMINAL = "terminal"
    RESTART = "restart"


class RunOutcome(enum.Enum):
    IDLE = "idle"
    REPEAT = "repeat"
    TERMINAL = "terminal"
    CANCELLED = "cancelled"


CANCELLABLE = frozenset(
    {
        RunnerState.INIT,
        RunnerState.PROVISIONED,
        RunnerState.SYNCHRONIZED,
        RunnerState.RUNNING,
        RunnerState.REPEAT,
    }
)


@contextlib.contextmanager
def runner_lock(cfg: NetEvalConfig) -> Iterator[None]:
    """Hold an exclusive lock so only one runner touches the status record."""
    cfg.lock_file.parent.mkdir(parents=True, exist_ok=True)
    with cfg.lock_file.open("a+", encoding="utf-8") as f:
        try:
            fcntl.flock(f.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError as exc:
            raise RunnerBusy(f"another net-eval runner holds {cfg.lock_file}") from exc
        try:
            f.seek(0)
            f.truncate()
            f.write(f"{os.getpid()}\n")
            f.flush()
            yield
        finally:
            fcntl.flock(f.fileno(), fcntl.LOCK_UN)


class ExperimentRunner:
    """Runs the experiment under the status cursor, then advances it.

    One call to :meth:`run_once` walks INIT → PROVISIONED → SYNCHRONIZED →
    RUNNING → DRAINING → ADVANCING and ends in REPEAT or TERMINAL. :meth:`run`
    adds the single-instance lock and decides how to continue after REPEAT:
    reboot the host (the boot hook re-invokes the runner) or loop in-process
    against the persisted cursor.
    """

    def __init__(
        self,
        cfg: NetEvalConfig,
        *,
        run: CommandRunner | None = None,
        spawn: Spawner = SupervisedProcess.start,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
        wait: Callable[[float], bool] | None = None,
        geteuid: Callable[[], int] | None = None,
        ready_timeout_s: float | None = None,
    ) -> None:
        self.cfg = cfg
        self._run = run or run_cmd
        self._spawn = spawn
        self._sleep = sleep
        self._clock = clock
        self._geteuid = geteuid or os.geteuid
        self._ready_timeout_s = ready_timeout_s
        self._cancel = threading.Event()
        self._wait = wait or self._cancel.wait

        self.boot_hook = BootHook(cfg, run=self._run)
        self.status = StatusTracker(cfg, boot_hook=self.boot_hook, run=self._run)
        self.provisioner = ContainerProvisioner(cfg, run=self._run)
        self.scripts = ScriptGenerator(cfg)
        self.barrier = Barrier(
            cfg,
            run=self._run,
            spawn=spawn,
            sleep=sleep,
            clock=clock,
            cancelled=self._cancel.is_set,
        )

        self.state = RunnerState.INIT
        self.transitions: list[RunnerState] = []

    def _enter(self, state: RunnerState) -> None:
        self.state = state
        self.transitions.append(state)
        log.debug("state: %s", state.value)

    def cancel(self) -> None:
        if self.state in CANCELLABLE:
            log.warning("cancellation requested in state %s", self.state.value)
            self._cancel.set()
        else:
            log.warning("cancellation ignored in state %s", self.state.value)

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def check_privilege(self) -> None:
        if self.cfg.require_root and self._geteuid() != 0:
            raise PrivilegeError("net-eval-run must be run as root.")

    def run(self) -> RunOutcome:
        self.check_privilege()
        previous = self._install_signal_handlers()
        try:
            with runner_lock(self.cfg):
                while True:
                    outcome = self.run_once()
                    if outcome is not RunOutcome.REPEAT:
                        return outcome
                    if self.cancelled:
                        log.warning("stop requested; not starting the next experiment")
                        return RunOutcome.CANCELLED
                    if self.cfg.reboot:
                        self.restart()
                        return outcome
                    log.info("continuing with the next experiment in-process")
        finally:
            for signum, handler in previous.items():
                if handler is not None:
                    signal.signal(signum, handler)

    def run_once(self) -> RunOutcome:
        self.transitions = []
        self._enter(RunnerState.INIT)
        self.check_privilege()
        try:
            record = self.status.load()
        except MissingRecord:
            log.info("no experiments pending")
            return RunOutcome.IDLE
        self.status.validate(record.current, record.last)
        descriptor = load_descriptor(self.cfg.catalog_file, record.current)
        descriptor.log_dir.mkdir(parents=True, exist_ok=True)
        log.info(
            "experiment %d of %d: %s", record.current, record.last, descriptor.name
        )

        group = ProcessGroup()
        launcher = TrafficLauncher(
            self.cfg,
            group,
            run=self._run,
            spawn=self._spawn,
            sleep=self._sleep,
            clock=self._clock,
            cancelled=self._cancel.is_set,
        )
        try:
            cancelled = self._execute(record, descriptor, group, launcher)
        except Cancelled:
            cancelled = True
        except Exception:
            log.exception("experiment %s aborted; tearing down", descriptor.name)
            self._teardown(descriptor, group, launcher)
            raise

        self._teardown(descriptor, group, launcher)
        if cancelled:
            log.warning("experiment %s cancelled; status not advanced", descriptor.name)
            return RunOutcome.CANCELLED

        # Advance only once every process and container of this run is gone.
        terminal = self.status.advance(
            record.current, record.last, record.duration_s, descriptor.name
        )
        if terminal:
            self._enter(RunnerState.TERMINAL)
            return RunOutcome.TERMINAL
        self._enter(RunnerState.REPEAT)
        return RunOutcome.REPEAT

    def _execute(
        self,
        record: StatusRecord,
        descriptor: ExperimentDescriptor,
        group: ProcessGroup,
        launcher: TrafficLauncher,
    ) -> bool:
        params = descriptor.params
        timeout_s = self._ready_timeout_s

        self._enter(RunnerState.PROVISIONED)
        containers = self.provisioner.create(params.num_port, params.stack, params.daddr)
        self.scripts.write(descriptor, containers)

        self._enter(RunnerState.SYNCHRONIZED)
        self.barrier.rendezvous(containers, group, timeout_s=timeout_s)
        launcher.raise_mtu(params.num_port, params.stack, params.pkt_len)
        if not params.is_ip:
            self.barrier.wait_for_neighbors(params.num_port, timeout_s=timeout_s)

        self._enter(RunnerState.RUNNING)
        launcher.launch_controller(
            descriptor.controller_command, descriptor.controller_log, timeout_s=timeout_s
        )
        launcher.launch_generator(descriptor.generator_command)
        log.info("Waiting %d seconds for experiment to run.", record.duration_s)
        return bool(self._wait(float(record.duration_s)))

    def _teardown(
        self,
        descriptor: ExperimentDescriptor,
        group: ProcessGroup,
        launcher: TrafficLauncher,
    ) -> None:
        params = descriptor.params
        self._enter(RunnerState.DRAINING)
        launcher.stop_all(params.update_rate)
        # Container gate loops outlive the drivers after an aborted rendezvous.
        alive = group.alive()
        if alive:
            log.info("terminating container processes: %s", ", ".join(alive))
        group.terminate_all()
        self._enter(RunnerState.ADVANCING)
        self.provisioner.destroy(params.num_port, params.stack)

    def restart(self) -> None:
        self._enter(RunnerState.RESTART)
        log.info("restarting host for the next experiment")
        self._run(self.cfg.tools.argv("reboot"))

    def _install_signal_handlers(self) -> dict[int, object]:
        if threading.current_thread() is not threading.main_thread():
            return {}

        def _handle_signal(signum, _frame) -> None:  # type: ignore[no-untyped-def]
            log.info("received signal %s", signum)
            self.cancel()

        previous = {}
        for signum in (signal.SIGINT, signal.SIGTERM):
            previous[signum] = signal.getsignal(signum)
            signal.signal(signum, _handle_signal)
        return previous
