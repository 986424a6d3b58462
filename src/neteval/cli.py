from __future__ import annotations

import argparse
import dataclasses
import logging
import os
import shlex
from pathlib import Path

from neteval.boot import BootHook
from neteval.config import CONFIG_ENV_VAR, load_neteval_config
from neteval.errors import PrivilegeError, RangeError, RunnerBusy
from neteval.kmsg import install_kmsg_handler
from neteval.runner import ExperimentRunner

log = logging.getLogger("neteval.cli")


def _add_common_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config",
        default=None,
        help="YAML config path (default: $NETEVAL_CONFIG, else built-in defaults).",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity.",
    )


def parse_run_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="net-eval-run",
        description=(
            "Run the next IP/XIA forwarding experiment listed in net-eval-status, "
            "then restart the host (or continue in-process) until the catalog is done."
        ),
    )
    _add_common_args(parser)
    parser.add_argument(
        "--no-reboot",
        action="store_true",
        help="Continue with the next experiment in-process instead of restarting the host.",
    )
    return parser.parse_args(argv)


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def main(argv: list[str] | None = None) -> int:
    args = parse_run_args(argv)
    _setup_logging(args.log_level)
    cfg = load_neteval_config(args.config)
    if args.no_reboot:
        cfg = dataclasses.replace(cfg, reboot=False)
    install_kmsg_handler(cfg)

    runner = ExperimentRunner(cfg)
    try:
        outcome = runner.run()
    except (PrivilegeError, RangeError, RunnerBusy) as exc:
        log.error("%s", exc)
        return 1
    log.info("runner finished: %s", outcome.value)
    return 0


def boot_main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="net-eval-boot",
        description="Install or remove the boot hook that re-invokes net-eval-run.",
    )
    _add_common_args(parser)
    parser.add_argument("action", choices=["enable", "disable"])
    parser.add_argument(
        "--runner-command",
        default="net-eval-run",
        help="Command appended to the boot script (default: net-eval-run).",
    )
    args = parser.parse_args(argv)
    _setup_logging(args.log_level)
    cfg = load_neteval_config(args.config)

    hook = BootHook(cfg)
    if args.action == "enable":
        hook.install(boot_runner_command(args.runner_command, args.config))
    else:
        hook.remove()
    return 0


def boot_runner_command(runner_command: str, config: str | None) -> str:
    """Pin the config in the boot line; ``$NETEVAL_CONFIG`` is gone after a reboot."""
    config = config or os.environ.get(CONFIG_ENV_VAR)
    if not config:
        return runner_command
    return f"{runner_command} --config {shlex.quote(str(Path(config).resolve()))}"


if __name__ == "__main__":
    raise SystemExit(main())
