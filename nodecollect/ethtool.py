"""Network device statistics and link settings via the ethtool interface."""

from __future__ import annotations

import array
import errno
import logging
import os
import re
import socket
import struct
from dataclasses import dataclass
from typing import Protocol

from .helper import (
    NAMESPACE,
    Desc,
    Metric,
    NoDataError,
    PathConfig,
    ValueType,
    build_fq_name,
    bytes_to_string,
    sanitize_metric_name,
)

SUBSYSTEM = "ethtool"

_RECEIVED_RE = re.compile(r"(^|_)rx(_|$)")
_TRANSMIT_RE = re.compile(r"(^|_)tx(_|$)")

# Bit offsets from ethtool_link_mode_bit_indices in the kernel's ethtool.h.
LINK_MODE_AUTONEG_BIT = 6
LINK_MODE_PAUSE_BIT = 13
LINK_MODE_ASYM_PAUSE_BIT = 14

_PORT_TYPES = (
    ("TP", 7),
    ("AUI", 8),
    ("MII", 9),
    ("FIBRE", 10),
    ("BNC", 11),
    ("Backplane", 16),
)

# (bit, speed in Mbps, duplex, phy)
_SPEEDS = (
    (0, 10, "half", "T"),
    (1, 10, "full", "T"),
    (2, 100, "half", "T"),
    (3, 100, "full", "T"),
    (4, 1000, "half", "T"),
    (5, 1000, "full", "T"),
    (12, 10000, "full", "T"),
    (17, 1000, "full", "KX"),
    (18, 10000, "full", "KX4"),
    (19, 10000, "full", "KR"),
    (20, 10000, "full", "R_FEC"),
    (21, 20000, "full", "MLD2"),
    (22, 20000, "full", "KR2"),
    (23, 40000, "full", "KR4"),
    (24, 40000, "full", "CR4"),
    (25, 40000, "full", "SR4"),
    (26, 40000, "full", "LR4"),
    (27, 56000, "full", "KR4"),
    (28, 56000, "full", "CR4"),
    (29, 56000, "full", "SR4"),
    (30, 56000, "full", "LR4"),
    (31, 25000, "full", "CR"),
    (47, 2500, "full", "T"),
)

# Speeds are reported in bytes per second to match the netclass metrics.
_MBPS = 1000000.0 / 8.0
_LINK_MODE_MASK = 0xFFFFFFFF

_SIOCETHTOOL = 0x8946
_IFNAMSIZ = 16
_IFREQ_SIZE = 40
_ETHTOOL_GSET = 0x01
_ETHTOOL_GDRVINFO = 0x03
_ETHTOOL_GSTRINGS = 0x1B
_ETHTOOL_GSTATS = 0x1D
_ETH_SS_STATS = 1
_ETH_GSTRING_LEN = 32

_DRVINFO_FORMAT = "=I32s32s32s32s32s12sIIIII"
_CMD_FORMAT = "=IIIHBBBBBBIIHBBI2I"


@dataclass(frozen=True)
class DriverInfo:
    """Driver and firmware details of a network device."""

    driver: str = ""
    version: str = ""
    fw_version: str = ""
    bus_info: str = ""
    erom_version: str = ""


@dataclass(frozen=True)
class LinkInfo:
    """Supported and advertised link modes as bit masks, and autoneg state."""

    supported: int = 0
    advertising: int = 0
    autoneg: int = 0


class EthtoolError(OSError):
    """A failed ethtool request; errno tells why."""


class _Backend(Protocol):
    def driver_info(self, interface: str) -> DriverInfo: ...

    def stats(self, interface: str) -> dict[str, int]: ...

    def link_info(self, interface: str) -> LinkInfo: ...


class EthtoolBackend:
    """Queries the kernel with SIOCETHTOOL requests."""

    def _request(self, interface: str, payload: bytes) -> bytes:
        name = interface.encode()
        if not name or len(name) >= _IFNAMSIZ:
            raise EthtoolError(errno.EINVAL, f"invalid interface name {interface!r}")
        import fcntl

        data = array.array("B", payload)
        address, _ = data.buffer_info()
        ifreq = struct.pack(f"{_IFNAMSIZ}sP", name, address).ljust(_IFREQ_SIZE, b"\0")
        try:
            with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
                fcntl.ioctl(sock.fileno(), _SIOCETHTOOL, ifreq)
        except OSError as exc:
            raise EthtoolError(exc.errno, exc.strerror) from exc
        return data.tobytes()

    def _raw_driver_info(self, interface: str) -> tuple:
        size = struct.calcsize(_DRVINFO_FORMAT)
        payload = struct.pack("=I", _ETHTOOL_GDRVINFO).ljust(size, b"\0")
        return struct.unpack(_DRVINFO_FORMAT, self._request(interface, payload))

    def driver_info(self, interface: str) -> DriverInfo:
        fields = self._raw_driver_info(interface)
        return DriverInfo(
            driver=bytes_to_string(fields[1]),
            version=bytes_to_string(fields[2]),
            fw_version=bytes_to_string(fields[3]),
            bus_info=bytes_to_string(fields[4]),
            erom_version=bytes_to_string(fields[5]),
        )

    def stats(self, interface: str) -> dict[str, int]:
        count = self._raw_driver_info(interface)[8]
        if count == 0:
            return {}

        header = struct.pack("=III", _ETHTOOL_GSTRINGS, _ETH_SS_STATS, count)
        raw = self._request(interface, header + bytes(count * _ETH_GSTRING_LEN))
        strings = raw[12:]
        names = [
            bytes_to_string(strings[start : start + _ETH_GSTRING_LEN])
            for start in range(0, count * _ETH_GSTRING_LEN, _ETH_GSTRING_LEN)
        ]

        header = struct.pack("=II", _ETHTOOL_GSTATS, count)
        raw = self._request(interface, header + bytes(count * 8))
        values = struct.unpack(f"={count}Q", raw[8 : 8 + count * 8])
        return dict(zip(names, values))

    def link_info(self, interface: str) -> LinkInfo:
        size = struct.calcsize(_CMD_FORMAT)
        payload = struct.pack("=I", _ETHTOOL_GSET).ljust(size, b"\0")
        fields = struct.unpack(_CMD_FORMAT, self._request(interface, payload))
        return LinkInfo(supported=fields[1], advertising=fields[2], autoneg=fields[8])


class DeviceFilter:
    """Decides which network devices to skip by exclude or include pattern."""

    def __init__(self, exclude: str = "", include: str = ""):
        self.exclude = re.compile(exclude) if exclude else None
        self.include = re.compile(include) if include else None

    def ignored(self, name: str) -> bool:
        if self.exclude is not None and self.exclude.search(name):
            return True
        if self.include is not None and not self.include.search(name):
            return True
        return False


def build_ethtool_fq_name(metric: str) -> str:
    """The fully-qualified metric name for an ethtool statistic."""
    name = sanitize_metric_name(metric).lower().lstrip("_")
    name = _RECEIVED_RE.sub(r"\g<1>received\g<2>", name)
    name = _TRANSMIT_RE.sub(r"\g<1>transmitted\g<2>", name)
    return build_fq_name(NAMESPACE, SUBSYSTEM, name)


def _desc(subsystem: str, name: str, help_text: str, labels: tuple[str, ...] = ("device",)) -> Desc:
    return Desc(build_fq_name(NAMESPACE, subsystem, name), help_text, labels)


def _initial_entries() -> dict[str, Desc]:
    speed_labels = ("device", "duplex", "mode")
    return {
        "rx_bytes": _desc(SUBSYSTEM, "received_bytes_total", "Network interface bytes received"),
        "rx_dropped": _desc(SUBSYSTEM, "received_dropped_total", "Number of received frames dropped"),
        "rx_errors": _desc(SUBSYSTEM, "received_errors_total", "Number of received frames with errors"),
        "rx_packets": _desc(SUBSYSTEM, "received_packets_total", "Network interface packets received"),
        "tx_bytes": _desc(SUBSYSTEM, "transmitted_bytes_total", "Network interface bytes sent"),
        "tx_errors": _desc(SUBSYSTEM, "transmitted_errors_total", "Number of sent frames with errors"),
        "tx_packets": _desc(SUBSYSTEM, "transmitted_packets_total", "Network interface packets sent"),
        "supported_port": _desc(
            "network",
            "supported_port_info",
            "Type of ports or PHYs supported by network device",
            ("device", "type"),
        ),
        "supported_speed": _desc(
            "network",
            "supported_speed_bytes",
            "Combination of speeds and features supported by network device",
            speed_labels,
        ),
        "supported_autonegotiate": _desc(
            "network", "autonegotiate_supported", "If this port device supports autonegotiate"
        ),
        "supported_pause": _desc("network", "pause_supported", "If this port device supports pause frames"),
        "supported_asymmetricpause": _desc(
            "network", "asymmetricpause_supported", "If this port device supports asymmetric pause frames"
        ),
        "advertised_speed": _desc(
            "network",
            "advertised_speed_bytes",
            "Combination of speeds and features offered by network device",
            speed_labels,
        ),
        "advertised_autonegotiate": _desc(
            "network", "autonegotiate_advertised", "If this port device offers autonegotiate"
        ),
        "advertised_pause": _desc("network", "pause_advertised", "If this port device offers pause capability"),
        "advertised_asymmetricpause": _desc(
            "network",
            "asymmetricpause_advertised",
            "If this port device offers asymmetric pause capability",
        ),
        "autonegotiate": _desc("network", "autonegotiate", "If this port is using autonegotiate"),
    }


def _has_bit(link_modes: int, bit: int) -> bool:
    return bool((link_modes & _LINK_MODE_MASK) & (1 << bit))


class EthtoolCollector:
    """Exposes ethtool statistics, driver details and link modes."""

    def __init__(
        self,
        paths: PathConfig | None = None,
        logger: logging.Logger | None = None,
        backend: _Backend | None = None,
        device_include: str = "",
        device_exclude: str = "",
        metrics_include: str = ".*",
    ):
        self.paths = paths or PathConfig()
        self.logger = logger or logging.getLogger(__name__)
        self.backend = backend if backend is not None else EthtoolBackend()
        self.device_filter = DeviceFilter(device_exclude, device_include)
        self.metrics_pattern = re.compile(metrics_include)
        self.entries = _initial_entries()
        self.info_desc = Desc(
            build_fq_name(NAMESPACE, SUBSYSTEM, "info"),
            "A metric with a constant '1' value labeled by bus_info, device, driver, "
            "expansion_rom_version, firmware_version, version.",
            ("bus_info", "device", "driver", "expansion_rom_version", "firmware_version", "version"),
        )

    def _net_class(self) -> list[str]:
        directory = self.paths.sys_file_path("class/net")
        try:
            devices = sorted(os.listdir(directory))
        except (FileNotFoundError, PermissionError) as exc:
            self.logger.debug("Could not read netclass file: %s", exc)
            raise NoDataError(str(exc)) from exc
        except OSError as exc:
            raise OSError(f"could not get net class info: {exc}") from exc
        if not devices:
            raise ValueError("no network devices found")
        return devices

    def _log_failure(self, what: str, device: str, exc: Exception) -> None:
        code = getattr(exc, "errno", None)
        if code is None:
            self.logger.error("ethtool %s error device=%s err=%s", what, device, exc)
        elif code == errno.EOPNOTSUPP:
            self.logger.debug("ethtool %s error device=%s err=%s errno=%d", what, device, exc, code)
        elif code != 0:
            self.logger.error("ethtool %s error device=%s err=%s errno=%d", what, device, exc, code)

    def _port_capabilities(self, prefix: str, device: str, link_modes: int) -> list[Metric]:
        return [
            Metric(
                self.entries[f"{prefix}_{name}"],
                ValueType.GAUGE,
                1.0 if _has_bit(link_modes, bit) else 0.0,
                (device,),
            )
            for name, bit in (
                ("autonegotiate", LINK_MODE_AUTONEG_BIT),
                ("pause", LINK_MODE_PAUSE_BIT),
                ("asymmetricpause", LINK_MODE_ASYM_PAUSE_BIT),
            )
        ]

    def _port_info(self, device: str, link_modes: int) -> list[Metric]:
        return [
            Metric(self.entries["supported_port"], ValueType.GAUGE, 1.0, (device, name))
            for name, bit in _PORT_TYPES
            if _has_bit(link_modes, bit)
        ]

    def _speeds(self, prefix: str, device: str, link_modes: int) -> list[Metric]:
        desc = self.entries[f"{prefix}_speed"]
        return [
            Metric(desc, ValueType.GAUGE, speed * _MBPS, (device, duplex, f"{speed}base{phy}"))
            for bit, speed, duplex, phy in _SPEEDS
            if _has_bit(link_modes, bit)
        ]

    def update(self) -> list[Metric]:
        metrics: list[Metric] = []
        for device in self._net_class():
            if self.device_filter.ignored(device):
                continue

            try:
                link = self.backend.link_info(device)
            except (OSError, ValueError) as exc:
                self._log_failure("link info", device, exc)
            else:
                metrics.extend(self._speeds("supported", device, link.supported))
                metrics.extend(self._port_info(device, link.supported))
                metrics.extend(self._port_capabilities("supported", device, link.supported))
                metrics.extend(self._speeds("advertised", device, link.advertising))
                metrics.extend(self._port_capabilities("advertised", device, link.advertising))
                metrics.append(
                    Metric(self.entries["autonegotiate"], ValueType.GAUGE, float(link.autoneg), (device,))
                )

            try:
                info = self.backend.driver_info(device)
            except (OSError, ValueError) as exc:
                self._log_failure("driver info", device, exc)
            else:
                metrics.append(
                    Metric(
                        self.info_desc,
                        ValueType.GAUGE,
                        1.0,
                        (info.bus_info, device, info.driver, info.erom_version, info.fw_version, info.version),
                    )
                )

            try:
                stats = self.backend.stats(device)
            except (OSError, ValueError) as exc:
                self._log_failure("stats", device, exc)
                stats = {}
            if not stats:
                continue

            for name in sorted(stats):
                if not self.metrics_pattern.search(name):
                    continue
                desc = self.entries.get(name)
                if desc is None:
                    desc = Desc(build_ethtool_fq_name(name), f"Network interface {name}", ("device",))
                    self.entries[name] = desc
                metrics.append(Metric(desc, ValueType.UNTYPED, float(stats[name]), (device,)))
        return metrics