"""Load average statistics from /proc/loadavg."""

from __future__ import annotations

import logging

from .helper import NAMESPACE, Desc, Metric, PathConfig, TypedDesc, ValueType


def parse_load(data: str) -> list[float]:
    """Return the 1, 5 and 15 minute load averages from loadavg content."""
    parts = data.split()
    if len(parts) < 3:
        raise ValueError("unexpected content in loadavg")
    loads = []
    for part in parts[:3]:
        try:
            loads.append(float(part))
        except ValueError as exc:
            raise ValueError(f"could not parse load '{part}': {exc}") from exc
    return loads


def get_load(paths: PathConfig) -> list[float]:
    """Read and parse the loadavg file below the configured proc path."""
    with open(paths.proc_file_path("loadavg"), encoding="utf-8") as handle:
        return parse_load(handle.read())


class LoadavgCollector:
    """Exposes the system load averages."""

    def __init__(self, paths: PathConfig | None = None, logger: logging.Logger | None = None):
        self.paths = paths or PathConfig()
        self.logger = logger or logging.getLogger(__name__)
        self.descs = [
            TypedDesc(Desc(f"{NAMESPACE}_load1", "1m load average."), ValueType.GAUGE),
            TypedDesc(Desc(f"{NAMESPACE}_load5", "5m load average."), ValueType.GAUGE),
            TypedDesc(Desc(f"{NAMESPACE}_load15", "15m load average."), ValueType.GAUGE),
        ]

    def update(self) -> list[Metric]:
        try:
            loads = get_load(self.paths)
        except ValueError as exc:
            raise ValueError(f"couldn't get load: {exc}") from exc
        metrics = []
        for index, (desc, load) in enumerate(zip(self.descs, loads)):
            self.logger.debug("return load index=%d load=%s", index, load)
            metrics.append(desc.new_metric(load))
        return metrics