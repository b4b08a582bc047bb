"""Fibre Channel host statistics from /sys/class/fc_host."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields

from .helper import NAMESPACE, Desc, Metric, NoDataError, PathConfig, ValueType, build_fq_name

SUBSYSTEM = "fibrechannel"

MAX_UINT64 = (1 << 64) - 1

DESCRIPTIONS = {
    "dumped_frames_total": "Number of dumped frames",
    "loss_of_signal_total": "Number of times signal has been lost",
    "loss_of_sync_total": "Number of failures on either bit or transmission word boundaries",
    "rx_frames_total": "Number of frames received",
    "error_frames_total": "Number of errors in frames",
    "invalid_tx_words_total": "Number of invalid words transmitted by host port",
    "seconds_since_last_reset_total": "Number of seconds since last host port reset",
    "tx_words_total": "Number of words transmitted by host port",
    "invalid_crc_total": "Invalid Cyclic Redundancy Check count",
    "nos_total": "Number Not_Operational Primitive Sequence received by host port",
    "fcp_packet_aborts_total": "Number of aborted packets",
    "rx_words_total": "Number of words received by host port",
    "tx_frames_total": "Number of frames transmitted by host port",
    "link_failure_total": "Number of times the host port link has failed",
    "name": "Name of Fibre Channel HBA",
    "speed": "Current operating speed",
    "port_state": "Current port state",
    "port_type": "Port type, what the port is connected to",
    "symbolic_name": "Symoblic Name",
    "node_name": "Node Name as hexadecimal string",
    "port_id": "Port ID as string",
    "port_name": "Port Name as hexadecimal string",
    "fabric_name": "Fabric Name; 0 if PTP",
    "dev_loss_tmo": "Device Loss Timeout in seconds",
    "supported_classes": "The FC classes supported",
    "supported_speeds": "The FC speeds supported",
}

# Metric name and counter attribute, in the order they are exposed.
FIBRECHANNEL_COUNTERS = (
    ("dumped_frames_total", "dumped_frames"),
    ("error_frames_total", "error_frames"),
    ("invalid_crc_total", "invalid_crc_count"),
    ("rx_frames_total", "rx_frames"),
    ("rx_words_total", "rx_words"),
    ("tx_frames_total", "tx_frames"),
    ("tx_words_total", "tx_words"),
    ("seconds_since_last_reset_total", "seconds_since_last_reset"),
    ("invalid_tx_words_total", "invalid_tx_word_count"),
    ("link_failure_total", "link_failure_count"),
    ("loss_of_sync_total", "loss_of_sync_count"),
    ("loss_of_signal_total", "loss_of_signal_count"),
    ("nos_total", "nos_count"),
    ("fcp_packet_aborts_total", "fcp_packet_aborts"),
)

INFO_LABEL_NAMES = (
    "fc_host",
    "speed",
    "port_state",
    "port_type",
    "port_id",
    "port_name",
    "fabric_name",
    "symbolic_name",
    "supported_classes",
    "supported_speeds",
    "dev_loss_tmo",
)


@dataclass
class FibreChannelCounters:
    """Counters from a host's statistics directory; file names match the fields."""

    dumped_frames: int = 0
    error_frames: int = 0
    invalid_crc_count: int = 0
    rx_frames: int = 0
    rx_words: int = 0
    tx_frames: int = 0
    tx_words: int = 0
    seconds_since_last_reset: int = 0
    invalid_tx_word_count: int = 0
    link_failure_count: int = 0
    loss_of_sync_count: int = 0
    loss_of_signal_count: int = 0
    nos_count: int = 0
    fcp_packet_aborts: int = 0


@dataclass
class FibreChannelHost:
    """Attributes of one fc_host; file names match the fields except name."""

    name: str
    speed: str = ""
    port_state: str = ""
    port_type: str = ""
    symbolic_name: str = ""
    node_name: str = ""
    port_id: str = ""
    port_name: str = ""
    fabric_name: str = ""
    dev_loss_tmo: str = ""
    supported_classes: str = ""
    supported_speeds: str = ""
    counters: FibreChannelCounters = field(default_factory=FibreChannelCounters)


_HOST_ATTRIBUTES = tuple(f.name for f in fields(FibreChannelHost) if f.name not in ("name", "counters"))
_COUNTER_ATTRIBUTES = tuple(f.name for f in fields(FibreChannelCounters))


def _read_text(path: str) -> str | None:
    try:
        with open(path, encoding="utf-8") as handle:
            return handle.read().strip()
    except FileNotFoundError:
        return None


def _parse_counter(text: str, path: str) -> int:
    try:
        value = int(text[2:], 16) if text.lower().startswith("0x") else int(text, 10)
    except ValueError as exc:
        raise ValueError(f"invalid counter {text!r} in {path}") from exc
    if not 0 <= value <= MAX_UINT64:
        raise ValueError(f"counter {text!r} in {path} out of range")
    return value


def _read_host(directory: str, name: str) -> FibreChannelHost:
    host = FibreChannelHost(name=name)
    for attribute in _HOST_ATTRIBUTES:
        text = _read_text(os.path.join(directory, attribute))
        if text is not None:
            setattr(host, attribute, text)
    statistics = os.path.join(directory, "statistics")
    for attribute in _COUNTER_ATTRIBUTES:
        path = os.path.join(statistics, attribute)
        text = _read_text(path)
        if text is not None:
            setattr(host.counters, attribute, _parse_counter(text, path))
    return host


def _read_fc_hosts(paths: PathConfig) -> list[FibreChannelHost]:
    class_dir = paths.sys_file_path("class/fc_host")
    return [_read_host(os.path.join(class_dir, name), name) for name in sorted(os.listdir(class_dir))]


class FibreChannelCollector:
    """Exposes Fibre Channel host information and counters."""

    def __init__(self, paths: PathConfig | None = None, logger: logging.Logger | None = None):
        self.paths = paths or PathConfig()
        self.logger = logger or logging.getLogger(__name__)
        self.metric_descs = {
            name: Desc(build_fq_name(NAMESPACE, SUBSYSTEM, name), description, ("fc_host",))
            for name, description in DESCRIPTIONS.items()
        }
        self.info_desc = Desc(
            build_fq_name(NAMESPACE, SUBSYSTEM, "info"),
            "Non-numeric data from /sys/class/fc_host/<host>, value is always 1.",
            INFO_LABEL_NAMES,
        )

    def update(self) -> list[Metric]:
        try:
            hosts = _read_fc_hosts(self.paths)
        except FileNotFoundError as exc:
            self.logger.debug("fibrechannel statistics not found, skipping")
            raise NoDataError(str(exc)) from exc
        except OSError as exc:
            raise OSError(f"error obtaining FibreChannel class info: {exc}") from exc

        metrics = []
        for host in hosts:
            metrics.append(
                Metric(
                    self.info_desc,
                    ValueType.GAUGE,
                    1.0,
                    (
                        host.name,
                        host.speed,
                        host.port_state,
                        host.port_type,
                        host.port_id,
                        host.port_name,
                        host.fabric_name,
                        host.symbolic_name,
                        host.supported_classes,
                        host.supported_speeds,
                        host.dev_loss_tmo,
                    ),
                )
            )
            for metric_name, attribute in FIBRECHANNEL_COUNTERS:
                value = getattr(host.counters, attribute)
                # The firmware reports unimplemented counters as all ones.
                if value == MAX_UINT64:
                    continue
                metrics.append(
                    Metric(self.metric_descs[metric_name], ValueType.COUNTER, value, (host.name,))
                )
        return metrics