"""Kernel same-page merging statistics from /sys/kernel/mm/ksm."""

from __future__ import annotations

import logging
import posixpath

from .helper import (
    NAMESPACE,
    Desc,
    Metric,
    PathConfig,
    ValueType,
    build_fq_name,
    read_uint_from_file,
)

SUBSYSTEM = "ksmd"

KSMD_FILES = (
    "full_scans",
    "merge_across_nodes",
    "pages_shared",
    "pages_sharing",
    "pages_to_scan",
    "pages_unshared",
    "pages_volatile",
    "run",
    "sleep_millisecs",
)


def canonical_metric_name(filename: str) -> str:
    """Map a ksm file name to the metric name it is exposed under."""
    if filename == "full_scans":
        return filename + "_total"
    if filename == "sleep_millisecs":
        return "sleep_seconds"
    return filename


class KsmdCollector:
    """Exposes ksmd statistics."""

    def __init__(self, paths: PathConfig | None = None, logger: logging.Logger | None = None):
        self.paths = paths or PathConfig()
        self.logger = logger or logging.getLogger(__name__)
        self.descs = {
            name: Desc(
                build_fq_name(NAMESPACE, SUBSYSTEM, canonical_metric_name(name)),
                f"ksmd '{name}' file.",
            )
            for name in KSMD_FILES
        }

    def update(self) -> list[Metric]:
        metrics = []
        for name in KSMD_FILES:
            raw = read_uint_from_file(
                self.paths.sys_file_path(posixpath.join("kernel/mm/ksm", name))
            )
            value = float(raw)
            value_type = ValueType.GAUGE
            if name == "full_scans":
                value_type = ValueType.COUNTER
            elif name == "sleep_millisecs":
                value /= 1000
            metrics.append(Metric(self.descs[name], value_type, value))
        return metrics