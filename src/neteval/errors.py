from __future__ import annotations

import shlex


class NetEvalError(Exception):
    """Base class for scheduler errors."""


class PrivilegeError(NetEvalError):
    pass


class RangeError(NetEvalError):
    def __init__(self, current: int, last: int) -> None:
        super().__init__(
            f"check net-eval-status: current test ({current}) "
            f"must be between 1 and last test number ({last})."
        )
        self.current = current
        self.last = last


class MissingRecord(NetEvalError):
    """No status record on disk: nothing is pending."""


class MissingArtifact(NetEvalError):
    """An expected script, log or marker has not appeared (yet)."""


class BarrierTimeout(MissingArtifact):
    pass


class ReadinessTimeout(MissingArtifact):
    pass


class RunnerBusy(NetEvalError):
    pass


class ExternalToolFailure(NetEvalError, RuntimeError):
    def __init__(self, cmd: list[str], returncode: int, output: str = "") -> None:
        pretty_cmd = " ".join(shlex.quote(str(token)) for token in cmd)
        message = f"Command failed ({returncode}): {pretty_cmd}"
        if output:
            message += f"\n{output}"
        super().__init__(message)
        self.cmd = list(cmd)
        self.returncode = returncode
        self.output = output


class Cancelled(NetEvalError):
    """A stop signal arrived while the runner was waiting."""
