import io

import pytest

from nodecollect.helper import PathConfig, ValueType
from nodecollect.meminfo_numa import (
    MeminfoNumaCollector,
    get_mem_info_numa,
    parse_mem_info_numa,
    parse_mem_info_numa_stat,
)

NODE0_MEMINFO = """\
Node 0 MemTotal:       65988488 kB
Node 0 MemFree:        20380552 kB
Node 0 MemUsed:        45607936 kB
Node 0 Active:         24062868 kB
Node 0 Inactive:       18000172 kB
Node 0 Active(anon):     691324 kB
Node 0 Inactive(anon):   266556 kB

Node 0 HugePages_Total:     0
Node 0 AnonHugePages:    147456 kB
"""

NODE0_NUMASTAT = """\
numa_hit 193460335812
numa_miss 12624528
numa_foreign 59858623300
interleave_hit 57146
local_node 193454780853
other_node 18179487
"""

NODE1_MEMINFO = """\
Node 1 MemTotal:       67108864 kB
Node 1 Inactive(anon):   285088 kB
"""

NODE1_NUMASTAT = """\
numa_hit 326720946761
numa_miss 59858626709
"""


def test_parse_meminfo_numa_values():
    metrics = parse_mem_info_numa(io.StringIO(NODE0_MEMINFO))
    assert len(metrics) == 9
    assert metrics[5].metric_name == "Active_anon"
    assert metrics[5].value == 707915776.0
    assert metrics[5].numa_node == "0"
    assert metrics[5].metric_type is ValueType.GAUGE
    assert metrics[8].metric_name == "AnonHugePages"
    assert metrics[8].value == 150994944.0


def test_parse_meminfo_numa_without_unit():
    metrics = parse_mem_info_numa(io.StringIO(NODE0_MEMINFO))
    huge = [m for m in metrics if m.metric_name == "HugePages_Total"]
    assert huge[0].value == 0.0


def test_parse_meminfo_numa_second_node():
    metrics = parse_mem_info_numa(io.StringIO(NODE1_MEMINFO))
    assert metrics[1].metric_name == "Inactive_anon"
    assert metrics[1].value == 291930112.0
    assert metrics[1].numa_node == "1"


@pytest.mark.parametrize(
    "line",
    ["Node 0 MemTotal: 12 MB", "Node 0 MemTotal: abc kB", "Node 0 MemTotal:", "Node 0 X: 1 kB extra"],
)
def test_parse_meminfo_numa_errors(line):
    with pytest.raises(ValueError):
        parse_mem_info_numa(io.StringIO(line + "\n"))


def test_parse_numastat():
    stats = parse_mem_info_numa_stat(io.StringIO(NODE0_NUMASTAT), "0")
    assert stats[0].metric_name == "numa_hit_total"
    assert stats[0].value == 193460335812.0
    assert stats[0].metric_type is ValueType.COUNTER
    assert stats[4].value == 193454780853.0
    assert all(s.numa_node == "0" for s in stats)


def test_parse_numastat_second_node():
    stats = parse_mem_info_numa_stat(io.StringIO(NODE1_NUMASTAT), "1")
    assert stats[1].value == 59858626709.0
    assert stats[1].numa_node == "1"


@pytest.mark.parametrize("content", ["numa_hit 1 2\n", "numa_hit\n", "numa_hit x\n"])
def test_parse_numastat_errors(content):
    with pytest.raises(ValueError):
        parse_mem_info_numa_stat(io.StringIO(content), "0")


def _make_tree(tmp_path):
    base = tmp_path / "devices" / "system" / "node"
    for name, meminfo, numastat in (
        ("node1", NODE1_MEMINFO, NODE1_NUMASTAT),
        ("node0", NODE0_MEMINFO, NODE0_NUMASTAT),
    ):
        directory = base / name
        directory.mkdir(parents=True)
        (directory / "meminfo").write_text(meminfo)
        (directory / "numastat").write_text(numastat)
    return PathConfig(sys_path=str(tmp_path))


def test_get_mem_info_numa_reads_all_nodes_in_order(tmp_path):
    metrics = get_mem_info_numa(_make_tree(tmp_path))
    assert len(metrics) == 9 + 6 + 2 + 2
    assert metrics[0].numa_node == "0"
    assert metrics[9].metric_name == "numa_hit_total"
    assert metrics[-1].numa_node == "1"
    assert metrics[-1].metric_name == "numa_miss_total"


def test_collector_update(tmp_path):
    collector = MeminfoNumaCollector(_make_tree(tmp_path))
    metrics = collector.update()
    first = metrics[0]
    assert first.name == "node_memory_numa_MemTotal"
    assert first.labels == {"node": "0"}
    assert first.desc.help == "Memory information field MemTotal."
    assert "numa_hit_total" in collector.metric_descs


def test_collector_update_invalid(tmp_path):
    node = tmp_path / "devices" / "system" / "node" / "node0"
    node.mkdir(parents=True)
    (node / "meminfo").write_text("Node 0 MemTotal: 1 GB\n")
    (node / "numastat").write_text("")
    collector = MeminfoNumaCollector(PathConfig(sys_path=str(tmp_path)))
    with pytest.raises(ValueError, match="couldn't get NUMA meminfo"):
        collector.update()