"""Collectors that read Linux kernel and hardware statistics and return them as typed metrics."""

__version__ = "0.1.0"
__all__ = [
    "helper",
    "filefd",
    "loadavg",
    "meminfo",
    "ksmd",
    "meminfo_numa",
    "interrupts",
    "logind",
    "filesystem",
    "ipvs",
    "fibrechannel",
    "hwmon",
    "ethtool",
]