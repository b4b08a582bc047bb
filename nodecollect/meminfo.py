"""Memory statistics from /proc/meminfo."""

from __future__ import annotations

import logging
import re
from typing import Iterable

from .helper import NAMESPACE, Desc, Metric, PathConfig, ValueType, build_fq_name

SUBSYSTEM = "memory"

_PARENS_RE = re.compile(r"\((.*)\)")


def parse_mem_info(stream: Iterable[str]) -> dict[str, float]:
    """Parse meminfo lines; values with a unit are converted to bytes."""
    mem_info: dict[str, float] = {}
    for line in stream:
        line = line.rstrip("\n")
        parts = line.split()
        if not parts:
            continue
        if len(parts) < 2:
            raise ValueError(f"invalid line in meminfo: {line}")
        try:
            value = float(parts[1])
        except ValueError as exc:
            raise ValueError(f"invalid value in meminfo: {exc}") from exc
        key = _PARENS_RE.sub(r"_\1", parts[0][:-1])
        if len(parts) == 3:
            value *= 1024
            key += "_bytes"
        elif len(parts) != 2:
            raise ValueError(f"invalid line in meminfo: {line}")
        mem_info[key] = value
    return mem_info


class MeminfoCollector:
    """Exposes memory statistics."""

    def __init__(self, paths: PathConfig | None = None, logger: logging.Logger | None = None):
        self.paths = paths or PathConfig()
        self.logger = logger or logging.getLogger(__name__)

    def get_mem_info(self) -> dict[str, float]:
        with open(self.paths.proc_file_path("meminfo"), encoding="utf-8") as handle:
            return parse_mem_info(handle)

    def update(self) -> list[Metric]:
        try:
            mem_info = self.get_mem_info()
        except ValueError as exc:
            raise ValueError(f"couldn't get meminfo: {exc}") from exc
        self.logger.debug("Set node_mem memInfo=%s", mem_info)
        metrics = []
        for key, value in mem_info.items():
            value_type = ValueType.COUNTER if key.endswith("_total") else ValueType.GAUGE
            desc = Desc(
                build_fq_name(NAMESPACE, SUBSYSTEM, key),
                f"Memory information field {key}.",
            )
            metrics.append(Metric(desc, value_type, value))
        return metrics