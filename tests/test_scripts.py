from __future__ import annotations

from pathlib import Path

from conftest import make_descriptor
from neteval.provision import container_set
from neteval.scripts import ScriptGenerator


def test_ip_script_configures_waits_and_runs_writer(cfg, tmp_path: Path) -> None:  # type: ignore[no-untyped-def]
    desc = make_descriptor(3, tmp_path, stack="ip", daddr="ip", pkt_len=1024, num_port=2)
    containers = container_set(cfg, 2, "ip")
    text = ScriptGenerator(cfg).render(desc, containers[1])
    lines = text.splitlines()

    assert lines[0] == "sudo ifconfig eth0 192.168.0.3/24 up"
    assert lines[1] == "touch /net-eval/exp/tmp/running/2"
    assert "cat /net-eval/exp/tmp/start" in lines[2]
    assert lines[3] == 'while [ "$NUM" != "1" ]; do'
    assert lines[-2] == "cd /net-eval"
    assert lines[-1] == (
        "sudo /net-eval/pw --stack=ip --daddr-type=ip --pkt-len=1024 --ifname=eth0 "
        "--dmac=00:00:00:00:00:02 --zipf=1.0 --nnodes=3 --run=3 --node-id=2 "
        f"> /net-eval/logs/{desc.name}/pw2log"
    )


def test_marker_comes_before_gate_loop(cfg, tmp_path: Path) -> None:  # type: ignore[no-untyped-def]
    desc = make_descriptor(1, tmp_path, stack="xia", daddr="fb0", num_port=1)
    text = ScriptGenerator(cfg).render(desc, container_set(cfg, 1, "xia")[0])
    assert text.startswith("sudo xip hid add xia1\n")
    assert text.index("touch ") < text.index("while ")
    assert text.index("done\n") < text.index("/net-eval/pw")


def test_write_creates_one_script_per_container(cfg, tmp_path: Path) -> None:  # type: ignore[no-untyped-def]
    desc = make_descriptor(1, tmp_path, num_port=3)
    paths = ScriptGenerator(cfg).write(desc, container_set(cfg, 3, "ip"))
    assert paths == [cfg.tmp_dir / "ip1.sh", cfg.tmp_dir / "ip2.sh", cfg.tmp_dir / "ip3.sh"]
    assert all(path.is_file() for path in paths)
    assert "--node-id=3" in paths[2].read_text(encoding="utf-8")
    assert not list(cfg.tmp_dir.glob("*.tmp"))
