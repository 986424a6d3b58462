from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from neteval.commands import CommandRunner, run_cmd
from neteval.config import NetEvalConfig
from neteval.errors import ExternalToolFailure

log = logging.getLogger("neteval.provision")

XIA_PRINCIPAL_MODULES = ("xia_ppal_ad", "xia_ppal_hid")
IP_SYSCTLS = (
    "net.ipv4.conf.default.rp_filter=0",
    "net.ipv4.conf.all.rp_filter=0",
    "net.ipv4.ip_forward=1",
)


@dataclass(frozen=True)
class Container:
    index: int
    stack: str
    name: str
    address: str
    bridge: str
    bridge_address: str
    veth: str
    mac: str
    marker: str


def container_set(cfg: NetEvalConfig, count: int, stack: str) -> tuple[Container, ...]:
    """Describe the N containers of one stack kind; index runs from 1 to N.

    Containers take 192.168.0.2 .. N+1 and their host-side bridges take
    N+2 .. 2N+1 in the same /24.
    """
    prefix = cfg.subnet_prefix
    out = []
    for i in range(1, count + 1):
        out.append(
            Container(
                index=i,
                stack=stack,
                name=f"{stack}{i}",
                address=f"{prefix}.{i + 1}/24",
                bridge=f"{stack}{i}br",
                bridge_address=f"{prefix}.{i + 1 + count}/24",
                veth=f"veth.{i}{stack}",
                mac=f"00:00:00:00:00:{i:02x}",
                marker=str(i),
            )
        )
    return tuple(out)


class ContainerProvisioner:
    def __init__(self, cfg: NetEvalConfig, run: CommandRunner | None = None) -> None:
        self._cfg = cfg
        self._run = run or run_cmd

    def create(self, count: int, stack: str, daddr: str = "") -> tuple[Container, ...]:
        """Create ``count`` containers for ``stack``.

        Either every container is created and configured, or whatever was set
        up is torn down again and the failure is re-raised.
        """
        containers = container_set(self._cfg, count, stack)
        log.info("Setting up %d containers.", count)
        try:
            self._create(containers, stack, daddr)
        except ExternalToolFailure as exc:
            log.error("provisioning %s containers failed, rolling back: %s", stack, exc)
            self.destroy(count, stack)
            raise
        return containers

    def _create(self, containers: tuple[Container, ...], stack: str, daddr: str) -> None:
        cfg = self._cfg
        tools = cfg.tools
        create_cmd = [*tools.argv("create"), f"--count={len(containers)}"]
        if stack == "ip":
            create_cmd.append("--ip")
        self._run(create_cmd, cwd=cfg.exp_dir)

        # The whole tree (binaries, logs, tmp) is shared read-write.
        for container in containers:
            mount_point = cfg.mount_point(container.name)
            mount_point.mkdir(parents=True, exist_ok=True)
            self._run([*tools.argv("mount"), "--rbind", str(cfg.root_dir), str(mount_point)])

        if stack == "ip":
            for setting in IP_SYSCTLS:
                self._run([*tools.argv("sysctl"), "-w", setting])
            for container in containers:
                self._run(
                    [*tools.argv("ifconfig"), container.bridge, container.bridge_address, "up"]
                )
            return

        for module in XIA_PRINCIPAL_MODULES:
            self._run([*tools.argv("modprobe"), module])
        self._run([*tools.argv("xip"), "hid", "add", cfg.local_hid])
        if daddr == "via":
            self._run([*tools.argv("xip"), "ad", "addlocal", cfg.local_ad])

    def destroy(self, count: int, stack: str) -> None:
        """Tear the container set down; safe to call on a set that is already gone."""
        cfg = self._cfg
        tools = cfg.tools
        cfg.start_file.unlink(missing_ok=True)
        for container in container_set(cfg, count, stack):
            cfg.script_path(container.name).unlink(missing_ok=True)
            if stack == "ip":
                self._run(
                    [*tools.argv("ifconfig"), container.bridge, container.bridge_address, "down"],
                    check=False,
                )
            mount_point = cfg.mount_point(container.name)
            if _is_mount(mount_point):
                self._run([*tools.argv("umount"), str(mount_point)], check=False)
        self._run(
            [*tools.argv("destroy"), stack, "1", str(count)],
            check=False,
            cwd=cfg.exp_dir,
        )
        log.info("Destroyed %d %s containers.", count, stack)


def _is_mount(path: Path) -> bool:
    try:
        return path.is_mount()
    except OSError:
        return False
