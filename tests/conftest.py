from __future__ import annotations

from pathlib import Path

import pytest

from neteval.catalog import ExperimentDescriptor, ExperimentParams, write_catalog
from neteval.config import NetEvalConfig
from neteval.errors import ExternalToolFailure


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += max(float(seconds), 0.001)


class FakeRun:
    """Records argv lists instead of running them."""

    def __init__(self) -> None:
        self.calls: list[list[str]] = []
        self.outputs: dict[tuple[str, ...], str] = {}
        self.fail_on: tuple[str, ...] | None = None

    def __call__(self, cmd, check=True, capture_output=True, cwd=None):  # type: ignore[no-untyped-def]
        del capture_output, cwd
        cmd = [str(token) for token in cmd]
        self.calls.append(cmd)
        if self.fail_on is not None and tuple(cmd[: len(self.fail_on)]) == self.fail_on:
            if check:
                raise ExternalToolFailure(cmd, 1, "boom")
            return ""
        for prefix, out in self.outputs.items():
            if tuple(cmd[: len(prefix)]) == prefix:
                return out
        return ""

    def commands(self, first: str) -> list[list[str]]:
        return [cmd for cmd in self.calls if cmd and cmd[0] == first]

    def joined(self) -> list[str]:
        return [" ".join(cmd) for cmd in self.calls]


class FakeProcess:
    def __init__(self, name: str) -> None:
        self.name = name
        self.running = True
        self.terminated = False

    def alive(self) -> bool:
        return self.running

    def terminate(self, grace_s: float = 3.0) -> None:
        del grace_s
        self.terminated = True
        self.running = False

    def reap(self) -> int | None:
        return None if self.running else 0


class FakeSpawn:
    """Stands in for the containers and drivers: markers and logs appear on start."""

    def __init__(self, cfg: NetEvalConfig, *, controller_done: bool = True, ready: int | None = None):
        self.cfg = cfg
        self.controller_done = controller_done
        self.ready = ready
        self.started: list[tuple[str, list[str]]] = []
        self.procs: dict[str, FakeProcess] = {}

    @property
    def names(self) -> list[str]:
        return [name for name, _ in self.started]

    def __call__(self, argv, *, name, cwd=None, log_path=None):  # type: ignore[no-untyped-def]
        del cwd
        self.started.append((name, list(argv)))
        if argv[0] == "lxc-execute":
            index = int("".join(ch for ch in name if ch.isdigit()))
            if self.ready is None or index <= self.ready:
                (self.cfg.running_dir / str(index)).touch()
        if name == self.cfg.controller_name and log_path is not None:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            log_path.write_text(
                "installing routes\n" + ("DONE\n" if self.controller_done else ""),
                encoding="utf-8",
            )
        proc = FakeProcess(name)
        self.procs[name] = proc
        return proc


@pytest.fixture
def cfg(tmp_path: Path) -> NetEvalConfig:
    exp_dir = tmp_path / "net-eval" / "exp"
    exp_dir.mkdir(parents=True)
    return NetEvalConfig(
        exp_dir=exp_dir,
        lxc_root=tmp_path / "lxc",
        boot_script=tmp_path / "init.d" / "net-eval",
        kmsg_path=tmp_path / "kmsg",
    )


@pytest.fixture
def fake_run() -> FakeRun:
    run = FakeRun()
    run.outputs[("dmesg",)] = "[ 12.0] xia: forwarded 1000 packets"
    return run


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


def make_descriptor(
    index: int,
    tmp_path: Path,
    *,
    stack: str = "ip",
    daddr: str = "ip",
    update_rate: int = 0,
    pkt_len: int = 256,
    num_port: int = 2,
) -> ExperimentDescriptor:
    name = f"exp-num-port/{stack}/{num_port}/run{index}"
    return ExperimentDescriptor(
        index=index,
        generator_command=f"/net-eval/pc --stack={stack} --daemon --file={name}",
        controller_command=f"/net-eval/rk --run={index} --stack={stack} --upd-rate={update_rate}",
        params=ExperimentParams(
            stack=stack,
            daddr=daddr,
            update_rate=update_rate,
            pkt_len=pkt_len,
            zipf=1.0,
            num_port=num_port,
            trial=index,
        ),
        name=name,
        log_dir=tmp_path / "logs" / name,
    )


def write_matrix(cfg: NetEvalConfig, tmp_path: Path, count: int, **kwargs) -> list[ExperimentDescriptor]:  # type: ignore[no-untyped-def]
    descriptors = [make_descriptor(i, tmp_path, **kwargs) for i in range(1, count + 1)]
    write_catalog(cfg.catalog_file, descriptors)
    return descriptors
