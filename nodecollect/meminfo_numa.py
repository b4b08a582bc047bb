"""Per-NUMA-node memory statistics from /sys/devices/system/node."""

from __future__ import annotations

import glob
import logging
import os
import re
from dataclasses import dataclass
from typing import Iterable

from .helper import NAMESPACE, Desc, Metric, PathConfig, ValueType, build_fq_name

SUBSYSTEM = "memory_numa"

_NODE_RE = re.compile(r".*devices/system/node/node([0-9]*)")
_PARENS_RE = re.compile(r"\((.*)\)")


@dataclass(frozen=True)
class MeminfoMetric:
    """One value read for a NUMA node."""

    metric_name: str
    metric_type: ValueType
    numa_node: str
    value: float


def parse_mem_info_numa(stream: Iterable[str]) -> list[MeminfoMetric]:
    """Parse a node's meminfo file; kB values are converted to bytes."""
    metrics = []
    for raw_line in stream:
        line = raw_line.strip()
        if not line:
            continue
        parts = line.split()
        if len(parts) < 4:
            raise ValueError(f"invalid line in meminfo: {line}")
        try:
            value = float(parts[3])
        except ValueError as exc:
            raise ValueError(f"invalid value in meminfo: {exc}") from exc
        if len(parts) == 5 and parts[4] == "kB":
            value *= 1024
        elif len(parts) != 4:
            raise ValueError(f"invalid line in meminfo: {line}")
        name = _PARENS_RE.sub(r"_\1", parts[2].rstrip(":"))
        metrics.append(MeminfoMetric(name, ValueType.GAUGE, parts[1], value))
    return metrics


def parse_mem_info_numa_stat(stream: Iterable[str], node_number: str) -> list[MeminfoMetric]:
    """Parse a node's numastat file into counters."""
    metrics = []
    for raw_line in stream:
        line = raw_line.strip()
        if not line:
            continue
        parts = line.split()
        if len(parts) != 2:
            raise ValueError(f"line scan did not return 2 fields: {line}")
        try:
            value = float(parts[1])
        except ValueError as exc:
            raise ValueError(f"invalid value in numastat: {exc}") from exc
        metrics.append(
            MeminfoMetric(parts[0] + "_total", ValueType.COUNTER, node_number, value)
        )
    return metrics


def get_mem_info_numa(paths: PathConfig) -> list[MeminfoMetric]:
    """Read meminfo and numastat of every NUMA node below the sys path."""
    metrics: list[MeminfoMetric] = []
    nodes = sorted(glob.glob(paths.sys_file_path("devices/system/node/node[0-9]*")))
    for node in nodes:
        with open(os.path.join(node, "meminfo"), encoding="utf-8") as handle:
            metrics.extend(parse_mem_info_numa(handle))
        with open(os.path.join(node, "numastat"), encoding="utf-8") as handle:
            match = _NODE_RE.search(node)
            if match is None:
                raise ValueError(f"device node string didn't match regexp: {node}")
            metrics.extend(parse_mem_info_numa_stat(handle, match.group(1)))
    return metrics


class MeminfoNumaCollector:
    """Exposes memory statistics per NUMA node."""

    def __init__(self, paths: PathConfig | None = None, logger: logging.Logger | None = None):
        self.paths = paths or PathConfig()
        self.logger = logger or logging.getLogger(__name__)
        self.metric_descs: dict[str, Desc] = {}

    def update(self) -> list[Metric]:
        try:
            values = get_mem_info_numa(self.paths)
        except ValueError as exc:
            raise ValueError(f"couldn't get NUMA meminfo: {exc}") from exc
        metrics = []
        for entry in values:
            desc = self.metric_descs.get(entry.metric_name)
            if desc is None:
                desc = Desc(
                    build_fq_name(NAMESPACE, SUBSYSTEM, entry.metric_name),
                    f"Memory information field {entry.metric_name}.",
                    ("node",),
                )
                self.metric_descs[entry.metric_name] = desc
            metrics.append(Metric(desc, entry.metric_type, entry.value, (entry.numa_node,)))
        return metrics