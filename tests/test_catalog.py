from __future__ import annotations

from pathlib import Path

import pytest

from conftest import make_descriptor
from neteval.catalog import ExperimentParams, load_catalog, load_descriptor, write_catalog
from neteval.errors import MissingArtifact

CATALOG = """\
#1#
/net-eval/pc --stack=ip --daemon --add-rules --parents --file=exp-zipf/ip/0.0/run1 veth.1ip
/net-eval/rk --run=1 --stack=ip --upd-rate=0 ip1br 192.168.0.2
ip ip 0 256 0.0 1 1
exp-zipf/ip/0.0/run1
/net-eval/logs/exp-zipf/ip/0.0/run1
#2#
/net-eval/pc --stack=xia --daemon --add-rules --parents --file=exp-daddr/xia/via/512/run1 veth.1xia
/net-eval/rk --run=1 --stack=xia --upd-rate=100 xia1br 4d3f
xia via 100 512 1.0 1 1
exp-daddr/xia/via/512/run1
/net-eval/logs/exp-daddr/xia/via/512/run1
"""


def test_load_descriptor_by_index(tmp_path: Path) -> None:
    path = tmp_path / "net-eval-tests"
    path.write_text(CATALOG, encoding="utf-8")

    desc = load_descriptor(path, 2)
    assert desc.index == 2
    assert desc.generator_command.startswith("/net-eval/pc --stack=xia")
    assert desc.controller_command.endswith("xia1br 4d3f")
    assert desc.params == ExperimentParams(
        stack="xia", daddr="via", update_rate=100, pkt_len=512, zipf=1.0, num_port=1, trial=1
    )
    assert desc.name == "exp-daddr/xia/via/512/run1"
    assert desc.log_dir == Path("/net-eval/logs/exp-daddr/xia/via/512/run1")
    assert desc.controller_log == desc.log_dir / "rklog"


def test_load_descriptor_missing_index_raises(tmp_path: Path) -> None:
    path = tmp_path / "net-eval-tests"
    path.write_text(CATALOG, encoding="utf-8")
    with pytest.raises(ValueError):
        load_descriptor(path, 3)


def test_load_descriptor_missing_catalog(tmp_path: Path) -> None:
    with pytest.raises(MissingArtifact):
        load_descriptor(tmp_path / "absent", 1)


@pytest.mark.parametrize(
    "line",
    [
        "ip ip 0 256 1.0 4",
        "ipv6 ip 0 256 1.0 4 1",
        "ip ip 0 256 1.0 0 1",
        "ip ip zero 256 1.0 4 1",
    ],
)
def test_params_reject_bad_lines(line: str) -> None:
    with pytest.raises(ValueError):
        ExperimentParams.parse(line)


def test_write_catalog_requires_contiguous_indices(tmp_path: Path) -> None:
    descs = [make_descriptor(1, tmp_path), make_descriptor(3, tmp_path)]
    with pytest.raises(ValueError):
        write_catalog(tmp_path / "tests", descs)


def test_written_catalog_loads_back(tmp_path: Path) -> None:
    descs = [make_descriptor(i, tmp_path, stack="xia", daddr="fb0") for i in (1, 2, 3)]
    path = tmp_path / "tmp" / "net-eval-tests"
    write_catalog(path, descs)
    assert load_catalog(path) == descs
    assert load_descriptor(path, 3) == descs[2]
