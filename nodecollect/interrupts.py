"""Interrupt counts from /proc/interrupts."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Iterable, Iterator

from .helper import NAMESPACE, Desc, Metric, PathConfig, TypedDesc, ValueType

INTERRUPT_LABEL_NAMES = ("cpu", "type", "info", "devices")

_INT_RE = re.compile(r"[+-]?[0-9]+")


@dataclass
class Interrupt:
    """One row of the interrupts table: per-CPU counts and details."""

    info: str = ""
    devices: str = ""
    values: list[str] = field(default_factory=list)


def parse_interrupts(stream: Iterable[str]) -> dict[str, Interrupt]:
    """Parse the interrupts table, keyed by interrupt name."""
    lines: Iterator[str] = iter(stream)
    header = next(lines, None)
    if header is None:
        raise ValueError("interrupts empty")
    cpu_num = len(header.split())

    interrupts: dict[str, Interrupt] = {}
    for line in lines:
        parts = line.split()
        # Rows such as ERR and MIS have fewer columns and are ignored.
        if len(parts) < cpu_num + 2:
            continue
        name = parts[0][:-1]
        entry = Interrupt(values=parts[1 : cpu_num + 1])
        if _INT_RE.fullmatch(name):
            entry.info = parts[cpu_num + 1]
            entry.devices = " ".join(parts[cpu_num + 2 :])
        else:
            entry.info = " ".join(parts[cpu_num + 1 :])
        interrupts[name] = entry
    return interrupts


def get_interrupts(paths: PathConfig) -> dict[str, Interrupt]:
    """Read and parse the interrupts file below the configured proc path."""
    with open(paths.proc_file_path("interrupts"), encoding="utf-8") as handle:
        return parse_interrupts(handle)


class InterruptsCollector:
    """Exposes per-CPU interrupt counters."""

    def __init__(self, paths: PathConfig | None = None, logger: logging.Logger | None = None):
        self.paths = paths or PathConfig()
        self.logger = logger or logging.getLogger(__name__)
        self.desc = TypedDesc(
            Desc(f"{NAMESPACE}_interrupts_total", "Interrupt details.", INTERRUPT_LABEL_NAMES),
            ValueType.COUNTER,
        )

    def update(self) -> list[Metric]:
        try:
            interrupts = get_interrupts(self.paths)
        except ValueError as exc:
            raise ValueError(f"couldn't get interrupts: {exc}") from exc
        metrics = []
        for name, entry in interrupts.items():
            for cpu_no, raw in enumerate(entry.values):
                try:
                    value = float(raw)
                except ValueError as exc:
                    raise ValueError(f"invalid value {raw} in interrupts: {exc}") from exc
                metrics.append(
                    self.desc.new_metric(value, str(cpu_no), name, entry.info, entry.devices)
                )
        return metrics