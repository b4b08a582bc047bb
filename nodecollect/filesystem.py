"""Filesystem fullness statistics for mounted filesystems."""

from __future__ import annotations

import logging
import os
import re
import threading
from dataclasses import dataclass
from typing import Callable, Iterable

from .helper import NAMESPACE, Desc, Metric, PathConfig, ValueType, build_fq_name

SUBSYSTEM = "filesystem"

DEF_MOUNT_POINTS_EXCLUDED = "^/(dev|proc|run/credentials/.+|sys|var/lib/docker/.+)($|/)"
DEF_FS_TYPES_EXCLUDED = (
    "^(autofs|binfmt_misc|bpf|cgroup2?|configfs|debugfs|devpts|devtmpfs|fusectl|"
    "hugetlbfs|iso9660|mqueue|nsfs|overlay|proc|procfs|pstore|rpc_pipefs|securityfs|"
    "selinuxfs|squashfs|sysfs|tracefs)$"
)
DEFAULT_MOUNT_TIMEOUT = 5.0

FILESYSTEM_LABEL_NAMES = ("device", "mountpoint", "fstype")

_log = logging.getLogger(__name__)


@dataclass(frozen=True)
class FilesystemLabels:
    """Identifies a mounted filesystem."""

    device: str
    mount_point: str
    fs_type: str
    options: str = ""


@dataclass(frozen=True)
class FilesystemStats:
    """Space and inode figures of one mounted filesystem."""

    labels: FilesystemLabels
    size: float = 0.0
    free: float = 0.0
    avail: float = 0.0
    files: float = 0.0
    files_free: float = 0.0
    ro: float = 0.0
    device_error: float = 0.0


def parse_filesystem_labels(stream: Iterable[str], paths: PathConfig) -> list[FilesystemLabels]:
    """Parse mounts lines (device, mount point, type, options, ...)."""
    filesystems = []
    for raw_line in stream:
        line = raw_line.rstrip("\n")
        parts = line.split()
        if len(parts) < 4:
            raise ValueError(f"malformed mount point information: {line!r}")
        # Escapes for space and tab as described in fstab(5).
        mount_point = parts[1].replace("\\040", " ").replace("\\011", "\t")
        filesystems.append(
            FilesystemLabels(
                device=parts[0],
                mount_point=paths.rootfs_strip_prefix(mount_point),
                fs_type=parts[2],
                options=parts[3],
            )
        )
    return filesystems


def mount_point_details(paths: PathConfig) -> list[FilesystemLabels]:
    """Read the mount table of init, falling back to the system mount table."""
    try:
        handle = open(paths.proc_file_path("1/mounts"), encoding="utf-8")
    except FileNotFoundError as exc:
        _log.debug("Reading root mounts failed, falling back to system mounts: %s", exc)
        handle = open(paths.proc_file_path("mounts"), encoding="utf-8")
    with handle:
        return parse_filesystem_labels(handle, paths)


class FilesystemCollector:
    """Exposes size, free space and inode counts of mounted filesystems."""

    def __init__(
        self,
        paths: PathConfig | None = None,
        logger: logging.Logger | None = None,
        mount_points_exclude: str | None = None,
        fs_types_exclude: str | None = None,
        old_mount_points_excluded: str = "",
        old_fs_types_excluded: str = "",
        mount_timeout: float = DEFAULT_MOUNT_TIMEOUT,
        statfs: Callable[[str], os.statvfs_result] = os.statvfs,
    ):
        self.paths = paths or PathConfig()
        self.logger = logger or _log

        if old_mount_points_excluded:
            if mount_points_exclude is not None:
                raise ValueError(
                    "--collector.filesystem.ignored-mount-points and "
                    "--collector.filesystem.mount-points-exclude are mutually exclusive"
                )
            self.logger.warning(
                "--collector.filesystem.ignored-mount-points is DEPRECATED and will be "
                "removed in 2.0.0, use --collector.filesystem.mount-points-exclude"
            )
            mount_points_exclude = old_mount_points_excluded

        if old_fs_types_excluded:
            if fs_types_exclude is not None:
                raise ValueError(
                    "--collector.filesystem.ignored-fs-types and "
                    "--collector.filesystem.fs-types-exclude are mutually exclusive"
                )
            self.logger.warning(
                "--collector.filesystem.ignored-fs-types is DEPRECATED and will be "
                "removed in 2.0.0, use --collector.filesystem.fs-types-exclude"
            )
            fs_types_exclude = old_fs_types_excluded

        if mount_points_exclude is None:
            mount_points_exclude = DEF_MOUNT_POINTS_EXCLUDED
        if fs_types_exclude is None:
            fs_types_exclude = DEF_FS_TYPES_EXCLUDED

        self.logger.info("Parsed flag --collector.filesystem.mount-points-exclude flag=%s", mount_points_exclude)
        self.excluded_mount_points = re.compile(mount_points_exclude)
        self.logger.info("Parsed flag --collector.filesystem.fs-types-exclude flag=%s", fs_types_exclude)
        self.excluded_fs_types = re.compile(fs_types_exclude)

        self.mount_timeout = mount_timeout
        self._statfs = statfs
        self._stuck_mounts: set[str] = set()
        self._stuck_lock = threading.Lock()

        def desc(name: str, help_text: str) -> Desc:
            return Desc(build_fq_name(NAMESPACE, SUBSYSTEM, name), help_text, FILESYSTEM_LABEL_NAMES)

        self.size_desc = desc("size_bytes", "Filesystem size in bytes.")
        self.free_desc = desc("free_bytes", "Filesystem free space in bytes.")
        self.avail_desc = desc("avail_bytes", "Filesystem space available to non-root users in bytes.")
        self.files_desc = desc("files", "Filesystem total file nodes.")
        self.files_free_desc = desc("files_free", "Filesystem total free file nodes.")
        self.ro_desc = desc("readonly", "Filesystem read-only status.")
        self.device_error_desc = desc(
            "device_error",
            "Whether an error occurred while getting statistics for the given device.",
        )

    def _mark_stuck(self, mount_point: str, success: threading.Event) -> None:
        with self._stuck_lock:
            if success.is_set():
                return
            self.logger.debug(
                "Mount point timed out, it is being labeled as stuck and will not be monitored: %s",
                mount_point,
            )
            self._stuck_mounts.add(mount_point)

    def get_stats(self) -> list[FilesystemStats]:
        stats = []
        for labels in mount_point_details(self.paths):
            if self.excluded_mount_points.search(labels.mount_point):
                self.logger.debug("Ignoring mount point %s", labels.mount_point)
                continue
            if self.excluded_fs_types.search(labels.fs_type):
                self.logger.debug("Ignoring fs type %s", labels.fs_type)
                continue

            with self._stuck_lock:
                stuck = labels.mount_point in self._stuck_mounts
            if stuck:
                self.logger.debug("Mount point is in an unresponsive state: %s", labels.mount_point)
                stats.append(FilesystemStats(labels=labels, device_error=1.0))
                continue

            success = threading.Event()
            watcher = threading.Timer(self.mount_timeout, self._mark_stuck, (labels.mount_point, success))
            watcher.daemon = True
            watcher.start()

            target = self.paths.rootfs_file_path(labels.mount_point)
            error: OSError | None = None
            result = None
            try:
                result = self._statfs(target)
            except OSError as exc:
                error = exc
            finally:
                with self._stuck_lock:
                    success.set()
                    watcher.cancel()
                    if labels.mount_point in self._stuck_mounts:
                        self.logger.debug(
                            "Mount point has recovered, monitoring will resume: %s",
                            labels.mount_point,
                        )
                        self._stuck_mounts.discard(labels.mount_point)

            if error is not None or result is None:
                self.logger.debug("Error on statfs() system call rootfs=%s err=%s", target, error)
                stats.append(FilesystemStats(labels=labels, device_error=1.0))
                continue

            ro = 1.0 if "ro" in labels.options.split(",") else 0.0
            block_size = float(result.f_bsize)
            stats.append(
                FilesystemStats(
                    labels=labels,
                    size=float(result.f_blocks) * block_size,
                    free=float(result.f_bfree) * block_size,
                    avail=float(result.f_bavail) * block_size,
                    files=float(result.f_files),
                    files_free=float(result.f_ffree),
                    ro=ro,
                )
            )
        return stats

    def update(self) -> list[Metric]:
        metrics = []
        seen: set[FilesystemLabels] = set()
        for entry in self.get_stats():
            if entry.labels in seen:
                continue
            seen.add(entry.labels)
            label_values = (entry.labels.device, entry.labels.mount_point, entry.labels.fs_type)
            metrics.append(Metric(self.device_error_desc, ValueType.GAUGE, entry.device_error, label_values))
            if entry.device_error > 0:
                continue
            for desc, value in (
                (self.size_desc, entry.size),
                (self.free_desc, entry.free),
                (self.avail_desc, entry.avail),
                (self.files_desc, entry.files),
                (self.files_free_desc, entry.files_free),
                (self.ro_desc, entry.ro),
            ):
                metrics.append(Metric(desc, ValueType.GAUGE, value, label_values))
        return metrics