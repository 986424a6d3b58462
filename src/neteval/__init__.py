"""Reboot-persistent scheduler for IP/XIA forwarding experiments."""

from neteval.config import NetEvalConfig, load_neteval_config
from neteval.errors import (
    BarrierTimeout,
    ExternalToolFailure,
    MissingArtifact,
    MissingRecord,
    NetEvalError,
    PrivilegeError,
    RangeError,
    ReadinessTimeout,
    RunnerBusy,
)
from neteval.runner import ExperimentRunner, RunOutcome

__all__ = [
    "BarrierTimeout",
    "ExperimentRunner",
    "ExternalToolFailure",
    "MissingArtifact",
    "MissingRecord",
    "NetEvalConfig",
    "NetEvalError",
    "PrivilegeError",
    "RangeError",
    "ReadinessTimeout",
    "RunOutcome",
    "RunnerBusy",
    "load_neteval_config",
]
