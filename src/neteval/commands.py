from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import Callable, Protocol

from neteval.errors import Cancelled, ExternalToolFailure

log = logging.getLogger("neteval.commands")


class CommandRunner(Protocol):
    def __call__(
        self,
        cmd: list[str],
        check: bool = True,
        capture_output: bool = True,
        cwd: Path | None = None,
    ) -> str: ...


def run_command(
    cmd: list[str],
    *,
    check: bool = True,
    capture_output: bool = True,
    env: dict[str, str] | None = None,
    cwd: Path | None = None,
) -> subprocess.CompletedProcess[str]:
    log.debug("exec: %s", " ".join(str(token) for token in cmd))
    try:
        proc = subprocess.run(
            [str(token) for token in cmd],
            check=False,
            text=True,
            stdout=subprocess.PIPE if capture_output else None,
            stderr=subprocess.STDOUT if capture_output else None,
            env=env,
            cwd=str(cwd) if cwd is not None else None,
        )
    except FileNotFoundError as exc:
        if not check:
            return subprocess.CompletedProcess(cmd, 127, stdout=str(exc))
        raise ExternalToolFailure(cmd, 127, str(exc)) from exc
    if check and proc.returncode != 0:
        raise ExternalToolFailure(cmd, proc.returncode, (proc.stdout or "").strip())
    return proc


def run_cmd(
    cmd: list[str],
    check: bool = True,
    capture_output: bool = True,
    cwd: Path | None = None,
) -> str:
    result = run_command(cmd, check=check, capture_output=capture_output, cwd=cwd)
    return (result.stdout or "").strip()


def wait_until(
    predicate: Callable[[], bool],
    *,
    interval_s: float,
    timeout_s: float | None = None,
    sleep: Callable[[float], None],
    clock: Callable[[], float],
    cancelled: Callable[[], bool] | None = None,
) -> bool:
    """Poll ``predicate`` every ``interval_s`` seconds.

    Returns False if ``timeout_s`` elapses first; with no timeout the wait is
    unbounded. Raises :class:`Cancelled` as soon as ``cancelled()`` is true.
    """
    deadline = None if timeout_s is None else clock() + max(0.0, float(timeout_s))
    while not predicate():
        if cancelled is not None and cancelled():
            raise Cancelled("wait interrupted by a stop request")
        if deadline is not None and clock() >= deadline:
            return False
        sleep(interval_s)
    return True
