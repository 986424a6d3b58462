from __future__ import annotations

import logging
import shutil

from neteval.commands import CommandRunner, run_cmd
from neteval.config import NetEvalConfig

log = logging.getLogger("neteval.boot")


class BootHook:
    """SysV init script that re-invokes the runner on every boot."""

    def __init__(self, cfg: NetEvalConfig, run: CommandRunner | None = None) -> None:
        self._cfg = cfg
        self._run = run or run_cmd

    def install(self, runner_command: str = "net-eval-run") -> None:
        cfg = self._cfg
        cfg.boot_script.parent.mkdir(parents=True, exist_ok=True)
        if cfg.boot_template.is_file():
            shutil.copyfile(cfg.boot_template, cfg.boot_script)
        else:
            cfg.boot_script.write_text("#!/bin/sh\n", encoding="utf-8")
        with cfg.boot_script.open("a", encoding="utf-8") as f:
            f.write(f"cd {cfg.exp_dir} && {runner_command}\n")
        cfg.boot_script.chmod(0o755)
        self._run([*cfg.tools.argv("update_rc"), cfg.boot_name, "start", "99", "2", "."])
        self._run(cfg.tools.argv("update_grub"), check=False)
        log.info("boot hook installed: %s", cfg.boot_script)

    def remove(self) -> None:
        cfg = self._cfg
        self._run([*cfg.tools.argv("update_rc"), "-f", cfg.boot_name, "remove"], check=False)
        cfg.boot_script.unlink(missing_ok=True)
        self._run(cfg.tools.argv("update_grub"), check=False)
        log.info("boot hook removed: %s", cfg.boot_script)
