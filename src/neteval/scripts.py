from __future__ import annotations

import logging
import shlex
from pathlib import Path, PurePosixPath

from neteval.catalog import ExperimentDescriptor
from neteval.config import NetEvalConfig
from neteval.provision import Container

log = logging.getLogger("neteval.scripts")


class ScriptGenerator:
    """Writes the startup procedure each container runs under lxc-execute."""

    def __init__(self, cfg: NetEvalConfig) -> None:
        self._cfg = cfg

    def writer_log(self, descriptor: ExperimentDescriptor, container: Container) -> PurePosixPath:
        return self._cfg.container_logs / descriptor.name / f"pw{container.index}log"

    def writer_command(self, descriptor: ExperimentDescriptor, container: Container) -> str:
        params = descriptor.params
        argv = [
            "sudo",
            str(self._cfg.writer_bin),
            f"--stack={params.stack}",
            f"--daddr-type={params.daddr}",
            f"--pkt-len={params.pkt_len}",
            "--ifname=eth0",
            f"--dmac={container.mac}",
            f"--zipf={params.zipf}",
            f"--nnodes={params.num_port + 1}",
            f"--run={params.trial}",
            f"--node-id={container.index}",
        ]
        log_path = shlex.quote(str(self.writer_log(descriptor, container)))
        return " ".join(shlex.quote(token) for token in argv) + f" > {log_path}"

    def render(self, descriptor: ExperimentDescriptor, container: Container) -> str:
        cfg = self._cfg
        if container.stack == "xia":
            configure = f"sudo {cfg.tools.xip} hid add xia{container.index}"
        else:
            configure = f"sudo {cfg.tools.ifconfig} eth0 {container.address} up"
        start = shlex.quote(str(cfg.container_start))
        marker = shlex.quote(str(cfg.container_running / container.marker))
        lines = [
            configure,
            f"touch {marker}",
            f"NUM=`cat {start} 2>/dev/null`",
            'while [ "$NUM" != "1" ]; do',
            f"  sleep {cfg.gate_poll_interval_s:g}",
            f"  NUM=`cat {start} 2>/dev/null`",
            "done",
            f"cd {shlex.quote(str(cfg.container_root))}",
            self.writer_command(descriptor, container),
        ]
        return "\n".join(lines) + "\n"

    def write(
        self, descriptor: ExperimentDescriptor, containers: tuple[Container, ...]
    ) -> list[Path]:
        paths: list[Path] = []
        for container in containers:
            path = self._cfg.script_path(container.name)
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp = path.with_name(path.name + ".tmp")
            tmp.write_text(self.render(descriptor, container), encoding="utf-8")
            # Rename so that a poller never sees a half-written script.
            tmp.replace(path)
            paths.append(path)
        log.debug("wrote %d container scripts", len(paths))
        return paths
