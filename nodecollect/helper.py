"""Shared metric types, path handling and small parsing helpers."""

from __future__ import annotations

import enum
import os
import posixpath
import re
from dataclasses import dataclass, field
from typing import Mapping

NAMESPACE = "node"

_MAX_UINT64 = (1 << 64) - 1
_METRIC_NAME_RE = re.compile(r"_*[^0-9A-Za-z_]+_*")
_UINT_RE = re.compile(r"[0-9]+")


class NoDataError(Exception):
    """Raised by a collector when the data it reads is not available."""


class ValueType(enum.Enum):
    """The kind of value a metric carries."""

    COUNTER = "counter"
    GAUGE = "gauge"
    UNTYPED = "untyped"


@dataclass(frozen=True)
class Desc:
    """Describes a metric: its name, help text and label names."""

    fq_name: str
    help: str
    variable_labels: tuple[str, ...] = ()
    const_labels: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "variable_labels", tuple(self.variable_labels or ()))
        object.__setattr__(self, "const_labels", dict(self.const_labels or {}))


@dataclass(frozen=True)
class Metric:
    """A single sample with its description and label values."""

    desc: Desc
    value_type: ValueType
    value: float
    label_values: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        values = tuple(self.label_values)
        if len(values) != len(self.desc.variable_labels):
            raise ValueError(
                f"inconsistent label cardinality for {self.desc.fq_name}: "
                f"expected {len(self.desc.variable_labels)} label values "
                f"but got {len(values)}"
            )
        object.__setattr__(self, "label_values", values)
        object.__setattr__(self, "value", float(self.value))

    @property
    def name(self) -> str:
        return self.desc.fq_name

    @property
    def labels(self) -> dict[str, str]:
        """All labels of the sample, constant ones included."""
        merged = dict(self.desc.const_labels)
        merged.update(zip(self.desc.variable_labels, self.label_values))
        return merged


@dataclass(frozen=True)
class TypedDesc:
    """A description bound to the value type of the metrics it produces."""

    desc: Desc
    value_type: ValueType

    def new_metric(self, value: float, *args: str) -> Metric:
        return Metric(self.desc, self.value_type, value, args)


def _join_under(base: str, name: str) -> str:
    return posixpath.normpath(posixpath.join(base, name.lstrip("/"))) if name else base


@dataclass(frozen=True)
class PathConfig:
    """Locations of the proc, sys and root filesystems."""

    proc_path: str = "/proc"
    sys_path: str = "/sys"
    rootfs_path: str = "/"

    def proc_file_path(self, name: str) -> str:
        return _join_under(self.proc_path, name)

    def sys_file_path(self, name: str) -> str:
        return _join_under(self.sys_path, name)

    def rootfs_file_path(self, name: str) -> str:
        return _join_under(self.rootfs_path, name)

    def rootfs_strip_prefix(self, path: str) -> str:
        """Remove the rootfs prefix from a path seen inside the host."""
        if self.rootfs_path == "/":
            return path
        stripped = path[len(self.rootfs_path):] if path.startswith(self.rootfs_path) else path
        return stripped or "/"


def build_fq_name(namespace: str, subsystem: str, name: str) -> str:
    """Join the non-empty parts with underscores; empty if name is empty."""
    if not name:
        return ""
    return "_".join(part for part in (namespace, subsystem, name) if part)


def read_uint_from_file(path: str | os.PathLike[str]) -> int:
    """Read a file holding one unsigned 64-bit decimal integer."""
    with open(path, encoding="utf-8") as handle:
        text = handle.read().strip()
    if not _UINT_RE.fullmatch(text):
        raise ValueError(f"invalid unsigned integer {text!r} in {os.fspath(path)}")
    value = int(text)
    if value > _MAX_UINT64:
        raise ValueError(f"value {text!r} in {os.fspath(path)} out of range")
    return value


def bytes_to_string(data: bytes) -> str:
    """Decode bytes up to the first NUL, or all of them if there is none."""
    end = data.find(b"\x00")
    if end >= 0:
        data = data[:end]
    return data.decode("utf-8", errors="replace")


def sanitize_metric_name(metric_name: str) -> str:
    """Replace runs of characters invalid in metric names with one underscore."""
    return _METRIC_NAME_RE.sub("_", metric_name)