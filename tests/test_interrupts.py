import io

import pytest

from nodecollect.helper import PathConfig, ValueType
from nodecollect.interrupts import InterruptsCollector, get_interrupts, parse_interrupts

INTERRUPTS = """\
           CPU0       CPU1       CPU2       CPU3
  0:         18          0          0          0   IO-APIC-edge      timer
  1:      17960        105         28         28   IO-APIC-edge      i8042
  8:          1          0          0          0   IO-APIC-edge      rtc0
NMI:         15       5031       6211       4968   Non-maskable interrupts
LOC:    2370770    2558012    2406216    2422548   Local timer interrupts
ERR:          0
MIS:          0
"""


def test_parse_interrupts_values():
    interrupts = parse_interrupts(io.StringIO(INTERRUPTS))
    assert interrupts["NMI"].values[1] == "5031"
    assert interrupts["NMI"].values[3] == "4968"


def test_parse_interrupts_named_row_info():
    interrupts = parse_interrupts(io.StringIO(INTERRUPTS))
    assert interrupts["NMI"].info == "Non-maskable interrupts"
    assert interrupts["NMI"].devices == ""


def test_parse_interrupts_numbered_row():
    interrupts = parse_interrupts(io.StringIO(INTERRUPTS))
    assert interrupts["0"].info == "IO-APIC-edge"
    assert interrupts["0"].devices == "timer"
    assert interrupts["1"].values == ["17960", "105", "28", "28"]


def test_parse_interrupts_skips_short_rows():
    interrupts = parse_interrupts(io.StringIO(INTERRUPTS))
    assert set(interrupts) == {"0", "1", "8", "NMI", "LOC"}


def test_parse_interrupts_empty():
    with pytest.raises(ValueError, match="interrupts empty"):
        parse_interrupts(io.StringIO(""))


def test_get_interrupts_reads_proc(tmp_path):
    (tmp_path / "interrupts").write_text(INTERRUPTS)
    interrupts = get_interrupts(PathConfig(proc_path=str(tmp_path)))
    assert interrupts["LOC"].values[0] == "2370770"


def test_collector_update(tmp_path):
    (tmp_path / "interrupts").write_text(INTERRUPTS)
    metrics = InterruptsCollector(PathConfig(proc_path=str(tmp_path))).update()
    assert len(metrics) == 5 * 4
    nmi = [m for m in metrics if m.labels["type"] == "NMI" and m.labels["cpu"] == "2"]
    assert nmi[0].value == 6211.0
    assert nmi[0].name == "node_interrupts_total"
    assert nmi[0].value_type is ValueType.COUNTER
    timer = [m for m in metrics if m.labels["type"] == "0" and m.labels["cpu"] == "0"]
    assert timer[0].labels == {"cpu": "0", "type": "0", "info": "IO-APIC-edge", "devices": "timer"}


def test_collector_update_invalid_value(tmp_path):
    (tmp_path / "interrupts").write_text("  CPU0\nNMI:  abc  Non-maskable\n")
    with pytest.raises(ValueError, match="invalid value abc"):
        InterruptsCollector(PathConfig(proc_path=str(tmp_path))).update()