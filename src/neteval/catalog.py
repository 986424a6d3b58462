"""Experiment catalog: fixed six-line blocks written once by the setup phase.

::

    #<N>#
    <generator command>
    <controller command>
    <stack> <daddr> <update rate> <packet length> <zipf> <port count> <trial>
    <experiment name>
    <log directory>
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from neteval.errors import MissingArtifact

STACKS = ("ip", "xia")
BLOCK_LINES = 6


@dataclass(frozen=True)
class ExperimentParams:
    stack: str
    daddr: str
    update_rate: int
    pkt_len: int
    zipf: float
    num_port: int
    trial: int

    @property
    def is_ip(self) -> bool:
        return self.stack == "ip"

    @classmethod
    def parse(cls, line: str) -> "ExperimentParams":
        fields = line.split()
        if len(fields) != 7:
            raise ValueError(f"expected 7 experiment parameters, got {len(fields)}: {line!r}")
        stack = fields[0]
        if stack not in STACKS:
            raise ValueError(f"unknown stack kind: {stack!r}")
        params = cls(
            stack=stack,
            daddr=fields[1],
            update_rate=int(fields[2]),
            pkt_len=int(fields[3]),
            zipf=float(fields[4]),
            num_port=int(fields[5]),
            trial=int(fields[6]),
        )
        if params.num_port < 1:
            raise ValueError(f"port count must be positive: {params.num_port}")
        return params

    def format(self) -> str:
        return " ".join(
            str(value)
            for value in (
                self.stack,
                self.daddr,
                self.update_rate,
                self.pkt_len,
                self.zipf,
                self.num_port,
                self.trial,
            )
        )


@dataclass(frozen=True)
class ExperimentDescriptor:
    index: int
    generator_command: str
    controller_command: str
    params: ExperimentParams
    name: str
    log_dir: Path

    @property
    def controller_log(self) -> Path:
        return self.log_dir / "rklog"

    def format(self) -> str:
        return "\n".join(
            [
                f"#{self.index}#",
                self.generator_command,
                self.controller_command,
                self.params.format(),
                self.name,
                str(self.log_dir),
            ]
        )


def marker(index: int) -> str:
    return f"#{int(index)}#"


def parse_block(index: int, lines: list[str]) -> ExperimentDescriptor:
    if len(lines) < BLOCK_LINES:
        raise ValueError(f"experiment {marker(index)} is truncated ({len(lines)} lines)")
    if lines[0].strip() != marker(index):
        raise ValueError(f"expected {marker(index)}, got {lines[0]!r}")
    return ExperimentDescriptor(
        index=index,
        generator_command=lines[1].strip(),
        controller_command=lines[2].strip(),
        params=ExperimentParams.parse(lines[3]),
        name=lines[4].strip(),
        log_dir=Path(lines[5].strip()),
    )


def load_descriptor(path: Path, index: int) -> ExperimentDescriptor:
    if not path.is_file():
        raise MissingArtifact(f"experiment catalog not found: {path}")
    lines = path.read_text(encoding="utf-8").splitlines()
    wanted = marker(index)
    for pos, line in enumerate(lines):
        if line.strip() == wanted:
            return parse_block(index, lines[pos : pos + BLOCK_LINES])
    raise ValueError(f"experiment {wanted} not found in {path}")


def load_catalog(path: Path) -> list[ExperimentDescriptor]:
    lines = path.read_text(encoding="utf-8").splitlines()
    lines = [line for line in lines if line.strip()]
    out: list[ExperimentDescriptor] = []
    for pos in range(0, len(lines), BLOCK_LINES):
        out.append(parse_block(len(out) + 1, lines[pos : pos + BLOCK_LINES]))
    return out


def write_catalog(path: Path, descriptors: list[ExperimentDescriptor]) -> None:
    for expected, descriptor in enumerate(descriptors, start=1):
        if descriptor.index != expected:
            raise ValueError(
                f"sequence numbers must be contiguous from 1: got {descriptor.index}, "
                f"expected {expected}"
            )
    path.parent.mkdir(parents=True, exist_ok=True)
    text = "\n".join(descriptor.format() for descriptor in descriptors)
    path.write_text(text + "\n" if text else "", encoding="utf-8")
