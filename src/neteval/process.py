from __future__ import annotations

import logging
import os
import signal
import subprocess
import time
from pathlib import Path
from typing import Callable, Protocol

log = logging.getLogger("neteval.process")


class ManagedProcess(Protocol):
    name: str

    def alive(self) -> bool: ...

    def terminate(self, grace_s: float = 3.0) -> None: ...

    def reap(self) -> int | None: ...


class SupervisedProcess:
    """A detached child in its own session, so its whole group can be signalled."""

    def __init__(self, proc: subprocess.Popen, name: str, log_path: Path | None = None) -> None:
        self.proc = proc
        self.name = name
        self.log_path = log_path

    @classmethod
    def start(
        cls,
        argv: list[str],
        *,
        name: str,
        cwd: Path | None = None,
        log_path: Path | None = None,
    ) -> "SupervisedProcess":
        stdout = subprocess.DEVNULL
        if log_path is not None:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            stdout = log_path.open("w", encoding="utf-8")
        try:
            proc = subprocess.Popen(
                [str(token) for token in argv],
                cwd=str(cwd) if cwd is not None else None,
                stdin=subprocess.DEVNULL,
                stdout=stdout,
                stderr=subprocess.STDOUT,
                start_new_session=True,
            )
        finally:
            if log_path is not None:
                stdout.close()
        log.debug("started %s (pid %s): %s", name, proc.pid, " ".join(map(str, argv)))
        return cls(proc, name, log_path)

    @property
    def pid(self) -> int:
        return self.proc.pid

    def alive(self) -> bool:
        return self.proc.poll() is None

    def terminate(self, grace_s: float = 3.0) -> None:
        if self.proc.poll() is not None:
            return
        try:
            os.killpg(self.proc.pid, signal.SIGTERM)
        except ProcessLookupError:
            return
        deadline = time.monotonic() + grace_s
        while time.monotonic() < deadline:
            if self.proc.poll() is not None:
                return
            time.sleep(0.05)
        try:
            os.killpg(self.proc.pid, signal.SIGKILL)
        except ProcessLookupError:
            pass
        self.proc.wait()

    def reap(self) -> int | None:
        return self.proc.poll()


Spawner = Callable[..., ManagedProcess]


class ProcessGroup:
    """Every process started for one experiment."""

    def __init__(self) -> None:
        self._procs: list[ManagedProcess] = []

    def add(self, proc: ManagedProcess) -> ManagedProcess:
        self._procs.append(proc)
        return proc

    def __len__(self) -> int:
        return len(self._procs)

    def get(self, name: str) -> ManagedProcess | None:
        for proc in self._procs:
            if proc.name == name:
                return proc
        return None

    def alive(self) -> list[str]:
        return [proc.name for proc in self._procs if proc.alive()]

    def terminate_all(self, grace_s: float = 3.0) -> None:
        for proc in reversed(self._procs):
            proc.terminate(grace_s)

    def reap_all(self) -> dict[str, int | None]:
        """Collect exit statuses; non-zero exits are logged, never acted on."""
        statuses: dict[str, int | None] = {}
        for proc in self._procs:
            code = proc.reap()
            statuses[proc.name] = code
            if code not in (None, 0):
                log.warning("%s exited with status %s", proc.name, code)
        return statuses
