import pytest

from nodecollect.helper import NoDataError, PathConfig, ValueType
from nodecollect.ipvs import (
    FULL_IPVS_BACKEND_LABELS,
    IPVSCollector,
    IPVSSource,
    parse_ipvs_labels,
)

STATS = """   Total Incoming Outgoing         Incoming         Outgoing
   Conns  Packets  Packets            Bytes            Bytes
       1        2        0               FF        0

 Conns/s   Pkts/s   Pkts/s          Bytes/s          Bytes/s
       4        1        0                1        0
"""

IP_VS = """IP Virtual Server version 1.2.1 (size=4096)
Prot LocalAddress:Port Scheduler Flags
  -> RemoteAddress:Port Forward Weight ActiveConn InActConn
TCP  C0A80016:0CEA wlc
  -> C0A85216:0CEA      Tunnel  100    248        2
  -> C0A85318:0CEA      Tunnel  100    248        2
FWM  10001000 wlc
  -> C0A8321A:0CEA      Route   0      0          0
"""

BASE_NAMES = [
    ("node_ipvs_connections_total", "The total number of connections made."),
    ("node_ipvs_incoming_packets_total", "The total number of incoming packets."),
    ("node_ipvs_outgoing_packets_total", "The total number of outgoing packets."),
    ("node_ipvs_incoming_bytes_total", "The total amount of incoming data."),
    ("node_ipvs_outgoing_bytes_total", "The total amount of outgoing data."),
]
BACKEND_NAMES = [
    ("node_ipvs_backend_connections_active", "The current active connections by local and remote address."),
    ("node_ipvs_backend_connections_inactive", "The current inactive connections by local and remote address."),
    ("node_ipvs_backend_weight", "The current backend weight by local and remote address."),
]


@pytest.fixture
def proc(tmp_path):
    net = tmp_path / "proc" / "net"
    net.mkdir(parents=True)
    (net / "ip_vs_stats").write_text(STATS)
    (net / "ip_vs").write_text(IP_VS)
    return PathConfig(proc_path=str(tmp_path / "proc"))


def _collector(paths, labels=None):
    if labels is None:
        return IPVSCollector(paths)
    return IPVSCollector(paths, backend_labels=labels)


@pytest.mark.parametrize(
    "labels, expected_labels",
    [
        (None, list(FULL_IPVS_BACKEND_LABELS)),
        ("", []),
        ("local_port", ["local_port"]),
        ("local_address,local_port", ["local_address", "local_port"]),
    ],
)
def test_descriptor_order(proc, labels, expected_labels):
    metrics = _collector(proc, labels).update()
    got = [(m.desc.fq_name, m.desc.help, list(m.desc.variable_labels)) for m in metrics[:8]]
    expected = [(n, h, []) for n, h in BASE_NAMES] + [(n, h, expected_labels) for n, h in BACKEND_NAMES]
    assert got == expected


@pytest.mark.parametrize(
    "labels, message",
    [
        ("invalid_label", 'unknown IPVS backend labels: "invalid_label"'),
        ("invalid_label,bad_label", 'unknown IPVS backend labels: "bad_label, invalid_label"'),
    ],
)
def test_invalid_labels(proc, labels, message):
    with pytest.raises(ValueError) as info:
        _collector(proc, labels)
    assert message in str(info.value)


def test_parse_labels_canonical_order():
    assert parse_ipvs_labels("proto,local_address,,local_port") == ["local_address", "local_port", "proto"]


def test_totals_parsed_as_hex(proc):
    metrics = IPVSCollector(proc).update()
    values = {m.name: m.value for m in metrics[:5]}
    assert values["node_ipvs_connections_total"] == 1
    assert values["node_ipvs_incoming_packets_total"] == 2
    assert values["node_ipvs_incoming_bytes_total"] == 255
    assert all(m.value_type is ValueType.COUNTER for m in metrics[:5])


def test_full_labels_backends(proc):
    metrics = IPVSCollector(proc).update()
    active = [m for m in metrics if m.name == "node_ipvs_backend_connections_active"]
    assert len(active) == 3
    assert active[0].labels == {
        "local_address": "192.168.0.22",
        "local_port": "3306",
        "remote_address": "192.168.82.22",
        "remote_port": "3306",
        "proto": "TCP",
        "local_mark": "",
    }
    assert active[0].value == 248
    assert active[2].labels["local_address"] == ""
    assert active[2].labels["local_port"] == "0"
    assert active[2].labels["proto"] == "FWM"
    assert active[2].labels["local_mark"] == "10001000"


def test_backends_summed_by_labels(proc):
    metrics = IPVSCollector(proc, backend_labels="local_port").update()
    by_key = {(m.name, m.label_values): m.value for m in metrics[5:]}
    assert by_key[("node_ipvs_backend_connections_active", ("3306",))] == 496
    assert by_key[("node_ipvs_backend_connections_inactive", ("3306",))] == 4
    assert by_key[("node_ipvs_backend_weight", ("3306",))] == 200
    assert by_key[("node_ipvs_backend_weight", ("0",))] == 0
    assert len(metrics) == 5 + 2 * 3


def test_ipv6_backend(tmp_path):
    net = tmp_path / "net"
    net.mkdir()
    (net / "ip_vs").write_text(
        "IP Virtual Server version 1.2.1 (size=4096)\n"
        "Prot LocalAddress:Port Scheduler Flags\n"
        "  -> RemoteAddress:Port Forward Weight ActiveConn InActConn\n"
        "UDP  [2620:0000:0000:0000:0000:0000:0000:0001]:0050 sh\n"
        "  -> [2620:0000:0000:0000:0000:0000:0000:0002]:0050      Route   1      0          0\n"
    )
    backends = IPVSSource(PathConfig(proc_path=str(tmp_path))).backends()
    assert len(backends) == 1
    assert backends[0].local_address == "2620::1"
    assert backends[0].remote_address == "2620::2"
    assert backends[0].local_port == 80
    assert backends[0].proto == "UDP"
    assert backends[0].weight == 1


def test_missing_stats_is_no_data(tmp_path):
    with pytest.raises(NoDataError):
        IPVSCollector(PathConfig(proc_path=str(tmp_path))).update()


def test_missing_backend_table_raises(tmp_path):
    net = tmp_path / "net"
    net.mkdir()
    (net / "ip_vs_stats").write_text(STATS)
    with pytest.raises(OSError, match="could not get backend status"):
        IPVSCollector(PathConfig(proc_path=str(tmp_path))).update()


def test_corrupt_stats_raises(tmp_path):
    net = tmp_path / "net"
    net.mkdir()
    (net / "ip_vs_stats").write_text("short\n")
    with pytest.raises(ValueError, match="could not get IPVS stats"):
        IPVSCollector(PathConfig(proc_path=str(tmp_path))).update()