"""File descriptor statistics from /proc/sys/fs/file-nr."""

from __future__ import annotations

import logging

from .helper import NAMESPACE, Desc, Metric, PathConfig, ValueType, build_fq_name

SUBSYSTEM = "filefd"


def parse_file_fd_stats(filename: str) -> dict[str, str]:
    """Return the allocated and maximum counts from a file-nr file."""
    with open(filename, encoding="utf-8") as handle:
        content = handle.read()
    parts = content.strip().split("\t")
    if len(parts) < 3:
        raise ValueError(f"unexpected number of file stats in {filename!r}")
    # The middle value is always zero on modern kernels.
    return {"allocated": parts[0], "maximum": parts[2]}


class FileFDStatCollector:
    """Exposes file descriptor allocation statistics."""

    def __init__(self, paths: PathConfig | None = None, logger: logging.Logger | None = None):
        self.paths = paths or PathConfig()
        self.logger = logger or logging.getLogger(__name__)

    def update(self) -> list[Metric]:
        filename = self.paths.proc_file_path("sys/fs/file-nr")
        try:
            stats = parse_file_fd_stats(filename)
        except ValueError as exc:
            raise ValueError(f"couldn't get file-nr: {exc}") from exc
        metrics = []
        for name, raw in stats.items():
            try:
                value = float(raw)
            except ValueError as exc:
                raise ValueError(f"invalid value {raw} in file-nr: {exc}") from exc
            desc = Desc(
                build_fq_name(NAMESPACE, SUBSYSTEM, name),
                f"File descriptor statistics: {name}.",
            )
            metrics.append(Metric(desc, ValueType.GAUGE, value))
        return metrics