from __future__ import annotations

import os
import shlex
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Any

import yaml

# This AD is hard-coded in the traffic writer (net-eval/sndpkt.c).
DEFAULT_LOCAL_AD = "000102030405060708090A0B0C0D0E0F00000001"
CONFIG_ENV_VAR = "NETEVAL_CONFIG"


@dataclass(frozen=True)
class ToolsConfig:
    create: str = "ruby xlxc-create.rb"
    destroy: str = "ruby xlxc-destroy.rb"
    execute: str = "lxc-execute"
    xip: str = "xip"
    ifconfig: str = "ifconfig"
    sysctl: str = "sysctl"
    modprobe: str = "modprobe"
    mount: str = "mount"
    umount: str = "umount"
    pkill: str = "pkill"
    dmesg: str = "dmesg"
    update_rc: str = "update-rc.d"
    update_grub: str = "update-grub"
    reboot: str = "shutdown -r now"

    def argv(self, name: str) -> list[str]:
        return shlex.split(str(getattr(self, name)))


@dataclass(frozen=True)
class NetEvalConfig:
    exp_dir: Path
    lxc_root: Path = Path("/var/lib/lxc")
    container_root: PurePosixPath = PurePosixPath("/net-eval")
    boot_name: str = "net-eval"
    boot_script: Path = Path("/etc/init.d/net-eval")
    kmsg_path: Path = Path("/dev/kmsg")
    mtu: int = 1500
    local_hid: str = "xia0"
    local_ad: str = DEFAULT_LOCAL_AD
    subnet_prefix: str = "192.168.0"
    poll_interval_s: float = 1.0
    gate_poll_interval_s: float = 0.01
    reboot: bool = True
    require_root: bool = True
    controller_name: str = "rk"
    generator_name: str = "pc"
    writer_name: str = "pw"
    tools: ToolsConfig = field(default_factory=ToolsConfig)

    # Host side.
    @property
    def root_dir(self) -> Path:
        return self.exp_dir.parent

    @property
    def tmp_dir(self) -> Path:
        return self.exp_dir / "tmp"

    @property
    def status_file(self) -> Path:
        return self.tmp_dir / "net-eval-status"

    @property
    def catalog_file(self) -> Path:
        return self.tmp_dir / "net-eval-tests"

    @property
    def start_file(self) -> Path:
        return self.tmp_dir / "start"

    @property
    def running_dir(self) -> Path:
        return self.tmp_dir / "running"

    @property
    def results_log(self) -> Path:
        return self.tmp_dir / "net-eval-log"

    @property
    def lock_file(self) -> Path:
        return self.tmp_dir / "net-eval.lock"

    @property
    def boot_template(self) -> Path:
        return self.exp_dir / "boot"

    def script_path(self, container_name: str) -> Path:
        return self.tmp_dir / f"{container_name}.sh"

    def mount_point(self, container_name: str) -> Path:
        return self.lxc_root / container_name / "rootfs" / self.container_root.name

    # Container side; the host root dir is bind-mounted at container_root.
    @property
    def container_exp(self) -> PurePosixPath:
        return self.container_root / self.exp_dir.name

    @property
    def container_tmp(self) -> PurePosixPath:
        return self.container_exp / "tmp"

    @property
    def container_start(self) -> PurePosixPath:
        return self.container_tmp / "start"

    @property
    def container_running(self) -> PurePosixPath:
        return self.container_tmp / "running"

    @property
    def container_logs(self) -> PurePosixPath:
        return self.container_root / "logs"

    @property
    def writer_bin(self) -> PurePosixPath:
        return self.container_root / self.writer_name


def load_neteval_config(path: str | Path | None = None) -> NetEvalConfig:
    """Load the scheduler config from YAML.

    With no explicit path, ``$NETEVAL_CONFIG`` is consulted; when neither is
    set every key takes its default and ``exp_dir`` is the current directory.
    """
    if path is None:
        path = os.environ.get(CONFIG_ENV_VAR) or None
    raw: dict[str, Any] = {}
    base_dir = Path.cwd()
    if path is not None:
        cfg_path = Path(path).expanduser().resolve()
        with cfg_path.open("r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
        if not isinstance(raw, dict):
            raise ValueError(f"Expected mapping YAML: {cfg_path}")
        base_dir = cfg_path.parent

    paths = dict(raw.get("paths", {}))
    timers = dict(raw.get("timers", {}))
    xia = dict(raw.get("xia", {}))
    processes = dict(raw.get("processes", {}))
    tools_raw = dict(raw.get("tools", {}))

    defaults = ToolsConfig()
    unknown = sorted(set(tools_raw) - set(defaults.__dataclass_fields__))
    if unknown:
        raise ValueError(f"Unknown tools in config: {', '.join(unknown)}")
    tools = ToolsConfig(**{str(k): str(v) for k, v in tools_raw.items()})

    exp_dir = _resolve(paths.get("exp_dir", "."), base_dir)
    return NetEvalConfig(
        exp_dir=exp_dir,
        lxc_root=Path(str(paths.get("lxc_root", "/var/lib/lxc"))),
        container_root=PurePosixPath(str(paths.get("container_root", "/net-eval"))),
        boot_name=str(raw.get("boot_name", "net-eval")),
        boot_script=Path(str(paths.get("boot_script", "/etc/init.d/net-eval"))),
        kmsg_path=Path(str(paths.get("kmsg", "/dev/kmsg"))),
        mtu=int(raw.get("mtu", 1500)),
        local_hid=str(xia.get("local_hid", "xia0")),
        local_ad=str(xia.get("local_ad", DEFAULT_LOCAL_AD)),
        subnet_prefix=str(raw.get("subnet_prefix", "192.168.0")),
        poll_interval_s=float(timers.get("poll_interval_s", 1.0)),
        gate_poll_interval_s=float(timers.get("gate_poll_interval_s", 0.01)),
        reboot=bool(raw.get("reboot", True)),
        require_root=bool(raw.get("require_root", True)),
        controller_name=str(processes.get("controller", "rk")),
        generator_name=str(processes.get("generator", "pc")),
        writer_name=str(processes.get("writer", "pw")),
        tools=tools,
    )


def _resolve(value: Any, base_dir: Path) -> Path:
    path = Path(str(value)).expanduser()
    if path.is_absolute():
        return path.resolve()
    return (base_dir / path).resolve()
