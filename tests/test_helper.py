import pytest

from nodecollect.helper import (
    Desc,
    Metric,
    PathConfig,
    TypedDesc,
    ValueType,
    build_fq_name,
    bytes_to_string,
    read_uint_from_file,
    sanitize_metric_name,
)


@pytest.mark.parametrize(
    "data, expected",
    [
        (bytes([0]), ""),
        (b"", ""),
        (bytes([65, 66, 67]), "ABC"),
        (bytes([65, 66, 67, 0, 65, 0, 65]), "ABC"),
        (bytes([0, 65, 66, 67, 0]), ""),
    ],
)
def test_bytes_to_string(data, expected):
    assert bytes_to_string(data) == expected


@pytest.mark.parametrize(
    "name, expected",
    [
        ("", ""),
        ("rx_errors", "rx_errors"),
        ("Queue[0] AllocFails", "Queue_0_AllocFails"),
        ("Tx LPI entry count", "Tx_LPI_entry_count"),
        ("port.VF_admin_queue_requests", "port_VF_admin_queue_requests"),
        ("[3]: tx_bytes", "_3_tx_bytes"),
        ("     err", "_err"),
    ],
)
def test_sanitize_metric_name(name, expected):
    assert sanitize_metric_name(name) == expected


def test_build_fq_name():
    assert build_fq_name("node", "filefd", "allocated") == "node_filefd_allocated"
    assert build_fq_name("node", "", "load1") == "node_load1"
    assert build_fq_name("node", "memory", "") == ""


def test_read_uint_from_file(tmp_path):
    path = tmp_path / "value"
    path.write_text("42\n")
    assert read_uint_from_file(path) == 42


@pytest.mark.parametrize("content", ["-1", "abc", "", "1.5", str(1 << 64)])
def test_read_uint_from_file_rejects_bad_content(tmp_path, content):
    path = tmp_path / "value"
    path.write_text(content)
    with pytest.raises(ValueError):
        read_uint_from_file(path)


def test_read_uint_from_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        read_uint_from_file(tmp_path / "missing")


def test_typed_desc_new_metric():
    desc = TypedDesc(Desc("node_x", "help", ("device",)), ValueType.GAUGE)
    metric = desc.new_metric(3, "eth0")
    assert metric.value == 3.0
    assert metric.value_type is ValueType.GAUGE
    assert metric.labels == {"device": "eth0"}
    assert metric.name == "node_x"


def test_metric_label_count_mismatch():
    desc = Desc("node_x", "help", ("device",))
    with pytest.raises(ValueError):
        Metric(desc, ValueType.GAUGE, 1.0, ())


def test_const_labels_merged():
    desc = Desc("node_md_state", "help", ("device",), {"state": "active"})
    metric = Metric(desc, ValueType.GAUGE, 1, ("md0",))
    assert metric.labels == {"state": "active", "device": "md0"}


def test_path_config_joins():
    paths = PathConfig(proc_path="/proc", sys_path="/sys", rootfs_path="/host")
    assert paths.proc_file_path("loadavg") == "/proc/loadavg"
    assert paths.sys_file_path("kernel/mm/ksm") == "/sys/kernel/mm/ksm"
    assert paths.rootfs_file_path("/media/volume1") == "/host/media/volume1"


def test_rootfs_strip_prefix():
    paths = PathConfig(rootfs_path="/host")
    assert paths.rootfs_strip_prefix("/host/media/volume1") == "/media/volume1"
    assert paths.rootfs_strip_prefix("/host") == "/"
    assert paths.rootfs_strip_prefix("/dev/shm") == "/dev/shm"
    assert PathConfig().rootfs_strip_prefix("/host/x") == "/host/x"