from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from neteval.boot import BootHook
from neteval.commands import CommandRunner, run_cmd
from neteval.config import NetEvalConfig
from neteval.errors import MissingRecord, RangeError
from neteval.kmsg import snapshot_kernel_log

log = logging.getLogger("neteval.status")

RESULTS_DELIMITER = "==================="


@dataclass(frozen=True)
class StatusRecord:
    current: int
    last: int
    work_dir: Path
    duration_s: int

    def format(self) -> str:
        return f"{self.current}\n{self.last}\n{self.work_dir}\n{self.duration_s}\n"

    @classmethod
    def parse(cls, text: str) -> "StatusRecord":
        lines = [line.strip() for line in text.splitlines()]
        if len(lines) < 4:
            raise ValueError(f"status record needs 4 lines, got {len(lines)}")
        return cls(
            current=int(lines[0]),
            last=int(lines[1]),
            work_dir=Path(lines[2]),
            duration_s=int(lines[3]),
        )


def validate(current: int, last: int) -> None:
    if current < 1 or current > last:
        raise RangeError(current, last)


class StatusTracker:
    """Persisted cursor over the experiment catalog.

    The record is the only long-lived mutable state of a run. It is rewritten
    atomically so that a crash or power cut leaves either the old or the new
    cursor on disk, never a partial one.
    """

    def __init__(
        self,
        cfg: NetEvalConfig,
        *,
        boot_hook: BootHook | None = None,
        run: CommandRunner | None = None,
    ) -> None:
        self._cfg = cfg
        self._run = run or run_cmd
        self._boot_hook = boot_hook or BootHook(cfg, run=self._run)

    @property
    def path(self) -> Path:
        return self._cfg.status_file

    def load(self) -> StatusRecord:
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError as exc:
            raise MissingRecord(f"no status record at {self.path}") from exc
        if not text.strip():
            raise MissingRecord(f"empty status record at {self.path}")
        return StatusRecord.parse(text)

    validate = staticmethod(validate)

    def create(self, last: int, duration_s: int, work_dir: Path | None = None) -> StatusRecord:
        record = StatusRecord(
            current=1,
            last=int(last),
            work_dir=work_dir or self._cfg.exp_dir,
            duration_s=int(duration_s),
        )
        validate(record.current, record.last)
        self._write(record)
        return record

    def advance(self, current: int, last: int, duration_s: int, name: str) -> bool:
        """Move the cursor past ``current``; return True when the matrix is done."""
        record = StatusRecord(
            current=current + 1,
            last=last,
            work_dir=self._work_dir(),
            duration_s=duration_s,
        )
        # A record past its last test is never persisted: it would fail every later boot.
        terminal = record.current > record.last
        if terminal:
            self.path.unlink(missing_ok=True)
            self._cfg.catalog_file.unlink(missing_ok=True)
            self._boot_hook.remove()
            log.info("experiment matrix complete after %s", name)
        else:
            self._write(record)
            log.info("next experiment: %s of %s", record.current, record.last)

        self._append_results(name)
        return terminal

    def _work_dir(self) -> Path:
        try:
            return self.load().work_dir
        except (MissingRecord, ValueError):
            return self._cfg.exp_dir

    def _write(self, record: StatusRecord) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_name(self.path.name + ".tmp")
        with tmp.open("w", encoding="utf-8") as f:
            f.write(record.format())
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, self.path)

    def _append_results(self, name: str) -> None:
        snapshot = snapshot_kernel_log(self._cfg, run=self._run)
        results = self._cfg.results_log
        results.parent.mkdir(parents=True, exist_ok=True)
        with results.open("a", encoding="utf-8") as f:
            f.write(f"{RESULTS_DELIMITER}\n{name}\n")
            if snapshot:
                f.write(snapshot.rstrip("\n") + "\n")
