from __future__ import annotations

from pathlib import Path, PurePosixPath

import pytest

from neteval.config import DEFAULT_LOCAL_AD, NetEvalConfig, load_neteval_config


def test_load_neteval_config_parses_yaml(tmp_path: Path) -> None:
    cfg_path = tmp_path / "conf" / "net-eval.yaml"
    cfg_path.parent.mkdir()
    cfg_path.write_text(
        """
paths:
  exp_dir: ../net-eval/exp
  lxc_root: /srv/lxc
timers:
  poll_interval_s: 0.5
reboot: false
mtu: 9000
xia:
  local_hid: router0
tools:
  create: /opt/xlxc/xlxc-create
  reboot: systemctl reboot
""".strip(),
        encoding="utf-8",
    )
    cfg = load_neteval_config(cfg_path)

    assert cfg.exp_dir == (tmp_path / "net-eval" / "exp").resolve()
    assert cfg.lxc_root == Path("/srv/lxc")
    assert cfg.poll_interval_s == 0.5
    assert cfg.reboot is False
    assert cfg.mtu == 9000
    assert cfg.local_hid == "router0"
    assert cfg.local_ad == DEFAULT_LOCAL_AD
    assert cfg.tools.argv("create") == ["/opt/xlxc/xlxc-create"]
    assert cfg.tools.argv("reboot") == ["systemctl", "reboot"]
    assert cfg.tools.argv("destroy") == ["ruby", "xlxc-destroy.rb"]


def test_load_neteval_config_rejects_unknown_tool(tmp_path: Path) -> None:
    cfg_path = tmp_path / "net-eval.yaml"
    cfg_path.write_text("tools:\n  teleport: beam\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_neteval_config(cfg_path)


def test_defaults_follow_environment(tmp_path: Path, monkeypatch) -> None:  # type: ignore[no-untyped-def]
    monkeypatch.delenv("NETEVAL_CONFIG", raising=False)
    monkeypatch.chdir(tmp_path)
    cfg = load_neteval_config()
    assert cfg.exp_dir == tmp_path.resolve()
    assert cfg.reboot is True

    env_cfg = tmp_path / "env.yaml"
    env_cfg.write_text("paths:\n  exp_dir: /srv/net-eval/exp\n", encoding="utf-8")
    monkeypatch.setenv("NETEVAL_CONFIG", str(env_cfg))
    assert load_neteval_config().exp_dir == Path("/srv/net-eval/exp")


def test_derived_paths() -> None:
    cfg = NetEvalConfig(exp_dir=Path("/srv/net-eval/exp"))
    assert cfg.root_dir == Path("/srv/net-eval")
    assert cfg.status_file == Path("/srv/net-eval/exp/tmp/net-eval-status")
    assert cfg.catalog_file == Path("/srv/net-eval/exp/tmp/net-eval-tests")
    assert cfg.mount_point("xia2") == Path("/var/lib/lxc/xia2/rootfs/net-eval")
    assert cfg.container_start == PurePosixPath("/net-eval/exp/tmp/start")
    assert cfg.writer_bin == PurePosixPath("/net-eval/pw")
