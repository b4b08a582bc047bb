"""IP Virtual Server statistics from /proc/net/ip_vs and /proc/net/ip_vs_stats."""

from __future__ import annotations

import ipaddress
import logging
from dataclasses import dataclass

from .helper import (
    NAMESPACE,
    Desc,
    Metric,
    NoDataError,
    PathConfig,
    TypedDesc,
    ValueType,
    build_fq_name,
)

SUBSYSTEM = "ipvs"

LABEL_LOCAL_ADDRESS = "local_address"
LABEL_LOCAL_PORT = "local_port"
LABEL_REMOTE_ADDRESS = "remote_address"
LABEL_REMOTE_PORT = "remote_port"
LABEL_PROTO = "proto"
LABEL_LOCAL_MARK = "local_mark"

FULL_IPVS_BACKEND_LABELS = (
    LABEL_LOCAL_ADDRESS,
    LABEL_LOCAL_PORT,
    LABEL_REMOTE_ADDRESS,
    LABEL_REMOTE_PORT,
    LABEL_PROTO,
    LABEL_LOCAL_MARK,
)
DEFAULT_BACKEND_LABELS = ",".join(FULL_IPVS_BACKEND_LABELS)


@dataclass(frozen=True)
class IPVSStats:
    """Totals since the IPVS module was loaded."""

    connections: int
    incoming_packets: int
    outgoing_packets: int
    incoming_bytes: int
    outgoing_bytes: int


@dataclass(frozen=True)
class IPVSBackend:
    """One real server behind a virtual service."""

    local_address: str
    local_port: int
    local_mark: str
    remote_address: str
    remote_port: int
    proto: str
    active_conn: int
    inact_conn: int
    weight: int


def _parse_ip_port(text: str) -> tuple[str, int]:
    if len(text) == 13:
        address = str(ipaddress.IPv4Address(int(text[:8], 16)))
        port = int(text[9:13], 16)
    elif len(text) == 46:
        address = str(ipaddress.IPv6Address(text[1:40]))
        port = int(text[42:46], 16)
    else:
        raise ValueError(f"unexpected IP:Port: {text}")
    return address, port


def _parse_stats(content: str) -> IPVSStats:
    lines = content.splitlines()
    if len(lines) < 3:
        raise ValueError("ip_vs_stats corrupt: too short")
    fields = lines[2].split()
    if len(fields) != 5:
        raise ValueError("ip_vs_stats corrupt: unexpected number of fields")
    values = [int(field, 16) for field in fields]
    return IPVSStats(*values)


def _parse_backends(content: str) -> list[IPVSBackend]:
    backends = []
    local_address = ""
    local_port = 0
    local_mark = ""
    proto = ""
    for line in content.splitlines()[3:]:
        fields = line.split()
        if not fields:
            continue
        kind = fields[0]
        if kind in ("TCP", "UDP"):
            if len(fields) < 2:
                raise ValueError(f"ip_vs corrupt: {line!r}")
            local_address, local_port = _parse_ip_port(fields[1])
            local_mark = ""
            proto = kind
        elif kind == "FWM":
            if len(fields) < 2:
                raise ValueError(f"ip_vs corrupt: {line!r}")
            local_address, local_port = "", 0
            local_mark = fields[1]
            proto = kind
        elif kind == "->":
            if len(fields) < 6:
                raise ValueError(f"ip_vs corrupt: {line!r}")
            remote_address, remote_port = _parse_ip_port(fields[1])
            backends.append(
                IPVSBackend(
                    local_address=local_address,
                    local_port=local_port,
                    local_mark=local_mark,
                    remote_address=remote_address,
                    remote_port=remote_port,
                    proto=proto,
                    weight=int(fields[3]),
                    active_conn=int(fields[4]),
                    inact_conn=int(fields[5]),
                )
            )
    return backends


class IPVSSource:
    """Reads IPVS tables below the configured proc path."""

    def __init__(self, paths: PathConfig | None = None):
        self.paths = paths or PathConfig()

    def stats(self) -> IPVSStats:
        with open(self.paths.proc_file_path("net/ip_vs_stats"), encoding="utf-8") as handle:
            return _parse_stats(handle.read())

    def backends(self) -> list[IPVSBackend]:
        with open(self.paths.proc_file_path("net/ip_vs"), encoding="utf-8") as handle:
            return _parse_backends(handle.read())


def parse_ipvs_labels(label_string: str) -> list[str]:
    """Validate a comma separated label list and return it in canonical order."""
    label_set = {label for label in label_string.split(",") if label}
    results = [label for label in FULL_IPVS_BACKEND_LABELS if label in label_set]
    unknown = sorted(label_set - set(FULL_IPVS_BACKEND_LABELS))
    if unknown:
        raise ValueError(f'unknown IPVS backend labels: "{", ".join(unknown)}"')
    return results


def _label_value(label: str, backend: IPVSBackend) -> str:
    if label == LABEL_LOCAL_ADDRESS:
        return backend.local_address
    if label == LABEL_LOCAL_PORT:
        return str(backend.local_port)
    if label == LABEL_REMOTE_ADDRESS:
        return backend.remote_address
    if label == LABEL_REMOTE_PORT:
        return str(backend.remote_port)
    if label == LABEL_PROTO:
        return backend.proto
    if label == LABEL_LOCAL_MARK:
        return backend.local_mark
    return ""


@dataclass
class _BackendSum:
    active_conn: int = 0
    inact_conn: int = 0
    weight: int = 0


class IPVSCollector:
    """Exposes IPVS totals and per-backend connection figures."""

    def __init__(
        self,
        paths: PathConfig | None = None,
        logger: logging.Logger | None = None,
        backend_labels: str = DEFAULT_BACKEND_LABELS,
        source: IPVSSource | None = None,
    ):
        self.backend_labels = parse_ipvs_labels(backend_labels)
        self.logger = logger or logging.getLogger(__name__)
        self.source = source or IPVSSource(paths)

        def typed(name: str, help_text: str, labels: tuple[str, ...], value_type: ValueType) -> TypedDesc:
            return TypedDesc(Desc(build_fq_name(NAMESPACE, SUBSYSTEM, name), help_text, labels), value_type)

        backend = tuple(self.backend_labels)
        self.connections = typed("connections_total", "The total number of connections made.", (), ValueType.COUNTER)
        self.incoming_packets = typed(
            "incoming_packets_total", "The total number of incoming packets.", (), ValueType.COUNTER
        )
        self.outgoing_packets = typed(
            "outgoing_packets_total", "The total number of outgoing packets.", (), ValueType.COUNTER
        )
        self.incoming_bytes = typed("incoming_bytes_total", "The total amount of incoming data.", (), ValueType.COUNTER)
        self.outgoing_bytes = typed("outgoing_bytes_total", "The total amount of outgoing data.", (), ValueType.COUNTER)
        self.backend_connections_active = typed(
            "backend_connections_active",
            "The current active connections by local and remote address.",
            backend,
            ValueType.GAUGE,
        )
        self.backend_connections_inact = typed(
            "backend_connections_inactive",
            "The current inactive connections by local and remote address.",
            backend,
            ValueType.GAUGE,
        )
        self.backend_weight = typed(
            "backend_weight",
            "The current backend weight by local and remote address.",
            backend,
            ValueType.GAUGE,
        )

    def update(self) -> list[Metric]:
        try:
            stats = self.source.stats()
        except FileNotFoundError as exc:
            self.logger.debug("ipvs collector metrics are not available for this system")
            raise NoDataError(str(exc)) from exc
        except ValueError as exc:
            raise ValueError(f"could not get IPVS stats: {exc}") from exc

        metrics = [
            self.connections.new_metric(stats.connections),
            self.incoming_packets.new_metric(stats.incoming_packets),
            self.outgoing_packets.new_metric(stats.outgoing_packets),
            self.incoming_bytes.new_metric(stats.incoming_bytes),
            self.outgoing_bytes.new_metric(stats.outgoing_bytes),
        ]

        try:
            backends = self.source.backends()
        except OSError as exc:
            raise OSError(f"could not get backend status: {exc}") from exc
        except ValueError as exc:
            raise ValueError(f"could not get backend status: {exc}") from exc

        sums: dict[str, _BackendSum] = {}
        label_values: dict[str, tuple[str, ...]] = {}
        for backend in backends:
            values = tuple(_label_value(label, backend) for label in self.backend_labels)
            key = "-".join(values)
            total = sums.setdefault(key, _BackendSum())
            total.active_conn += backend.active_conn
            total.inact_conn += backend.inact_conn
            total.weight += backend.weight
            label_values[key] = values

        for key, total in sums.items():
            values = label_values[key]
            metrics.append(self.backend_connections_active.new_metric(total.active_conn, *values))
            metrics.append(self.backend_connections_inact.new_metric(total.inact_conn, *values))
            metrics.append(self.backend_weight.new_metric(total.weight, *values))
        return metrics