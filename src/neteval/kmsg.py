from __future__ import annotations

import logging
import os
from pathlib import Path

from neteval.commands import CommandRunner, run_cmd
from neteval.config import NetEvalConfig

# Diagnostics have to outlive the session that the reboot tears down, so they
# are mirrored into the kernel ring buffer.


class KmsgHandler(logging.Handler):
    def __init__(self, path: str | Path = "/dev/kmsg", tag: str = "net-eval") -> None:
        super().__init__()
        self._path = Path(path)
        self._tag = tag

    def emit(self, record: logging.LogRecord) -> None:
        try:
            line = f"{self._tag}: {self.format(record)}\n"
            with self._path.open("a", encoding="utf-8") as f:
                f.write(line)
        except Exception:  # noqa: BLE001
            self.handleError(record)


def install_kmsg_handler(
    cfg: NetEvalConfig,
    *,
    logger: logging.Logger | None = None,
    level: int = logging.INFO,
) -> KmsgHandler | None:
    path = cfg.kmsg_path
    if not path.exists() or not os.access(path, os.W_OK):
        logging.getLogger("neteval.kmsg").debug("kernel log unavailable: %s", path)
        return None
    handler = KmsgHandler(path)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(message)s"))
    (logger or logging.getLogger("neteval")).addHandler(handler)
    return handler


def snapshot_kernel_log(cfg: NetEvalConfig, run: CommandRunner | None = None) -> str:
    """Read and clear the kernel ring buffer."""
    run = run or run_cmd
    return run([*cfg.tools.argv("dmesg"), "--read-clear"], check=False)
