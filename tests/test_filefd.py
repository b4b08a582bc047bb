import pytest

from nodecollect.filefd import FileFDStatCollector, parse_file_fd_stats
from nodecollect.helper import PathConfig, ValueType


@pytest.fixture
def proc_dir(tmp_path):
    fs = tmp_path / "proc" / "sys" / "fs"
    fs.mkdir(parents=True)
    (fs / "file-nr").write_text("1024\t0\t1631329\n")
    return tmp_path / "proc"


def test_parse_file_fd_stats(proc_dir):
    stats = parse_file_fd_stats(str(proc_dir / "sys" / "fs" / "file-nr"))
    assert stats["allocated"] == "1024"
    assert stats["maximum"] == "1631329"


def test_parse_file_fd_stats_too_few_fields(tmp_path):
    path = tmp_path / "file-nr"
    path.write_text("1024\t0\n")
    with pytest.raises(ValueError):
        parse_file_fd_stats(str(path))


def test_collector_update(proc_dir):
    collector = FileFDStatCollector(PathConfig(proc_path=str(proc_dir)))
    metrics = {m.name: m for m in collector.update()}
    assert metrics["node_filefd_allocated"].value == 1024.0
    assert metrics["node_filefd_maximum"].value == 1631329.0
    assert metrics["node_filefd_maximum"].value_type is ValueType.GAUGE


def test_collector_invalid_value(tmp_path):
    fs = tmp_path / "sys" / "fs"
    fs.mkdir(parents=True)
    (fs / "file-nr").write_text("abc\t0\t10\n")
    collector = FileFDStatCollector(PathConfig(proc_path=str(tmp_path)))
    with pytest.raises(ValueError, match="invalid value"):
        collector.update()


def test_collector_missing_file(tmp_path):
    collector = FileFDStatCollector(PathConfig(proc_path=str(tmp_path)))
    with pytest.raises(FileNotFoundError):
        collector.update()