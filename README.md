# nodecollect

Collectors that read machine statistics from the Linux `/proc` and `/sys`
filesystems (and, for a few of them, from runtime state files or kernel
requests) and return them as typed metrics.

Every collector has an `update()` method that returns a `list[Metric]`.
A `Metric` (from `nodecollect.helper`) holds a `Desc` (fully-qualified name,
help text, label names, constant labels), a `ValueType` (`COUNTER`, `GAUGE`
or `UNTYPED`), a float value and the label values. `Metric.name` gives the
metric name and `Metric.labels` a dict of all labels. Label counts are
checked: a `Metric` whose label values do not match its `Desc` raises
`ValueError`.

Some collectors raise `NoDataError` when the data they read does not exist
on the machine; parse failures raise `ValueError` and read failures `OSError`.

## Installation

```
pip install .
```

For running the tests:

```
pip install ".[test]"
pytest
```

The package has no dependencies outside the standard library.

## Paths

`PathConfig(proc_path="/proc", sys_path="/sys", rootfs_path="/")` tells the
collectors where the proc, sys and root filesystems are. Point it at other
directories to read a host's data from inside a container, or to run the
collectors against fixture trees:

```python
from nodecollect.helper import PathConfig
from nodecollect.loadavg import LoadavgCollector

paths = PathConfig(proc_path="/host/proc", sys_path="/host/sys", rootfs_path="/host")
for metric in LoadavgCollector(paths).update():
    print(metric.name, metric.value)
```

## Collectors

| Module | Collector | Reads | Raises `NoDataError` |
| --- | --- | --- | --- |
| `nodecollect.filefd` | `FileFDStatCollector` | `/proc/sys/fs/file-nr` | no |
| `nodecollect.loadavg` | `LoadavgCollector` | `/proc/loadavg` | no |
| `nodecollect.meminfo` | `MeminfoCollector` | `/proc/meminfo` | no |
| `nodecollect.meminfo_numa` | `MeminfoNumaCollector` | `/sys/devices/system/node/node*/{meminfo,numastat}` | no |
| `nodecollect.ksmd` | `KsmdCollector` | `/sys/kernel/mm/ksm/*` | no |
| `nodecollect.interrupts` | `InterruptsCollector` | `/proc/interrupts` | no |
| `nodecollect.filesystem` | `FilesystemCollector` | `/proc/1/mounts` (or `/proc/mounts`) and `statvfs` | no |
| `nodecollect.ipvs` | `IPVSCollector` | `/proc/net/ip_vs_stats`, `/proc/net/ip_vs` via `IPVSSource` | when the files are missing |
| `nodecollect.fibrechannel` | `FibreChannelCollector` | `/sys/class/fc_host/*` | when the class directory is missing |
| `nodecollect.hwmon` | `HwMonCollector` | `/sys/class/hwmon/*` | when the class directory is missing |
| `nodecollect.ethtool` | `EthtoolCollector` | `/sys/class/net` and an `EthtoolBackend` | when `/sys/class/net` is missing or unreadable |
| `nodecollect.logind` | `LogindCollector` | logind state files under `/run/systemd` via `LogindSource` | no |

All collectors take `paths` and `logger` keyword arguments where they read
files, and a standard `logging.Logger` is used when none is given.

### Options

- `FilesystemCollector(mount_points_exclude=..., fs_types_exclude=...)`:
  regular expressions of mount points and filesystem types to skip; the
  defaults are `DEF_MOUNT_POINTS_EXCLUDED` and `DEF_FS_TYPES_EXCLUDED`. The
  older `old_mount_points_excluded` / `old_fs_types_excluded` arguments are
  still accepted with a deprecation warning, but may not be combined with the
  new ones (`ValueError`). `mount_timeout` (default 5 seconds) marks a mount
  that does not answer `statvfs` in time as stuck; stuck mounts are reported
  with `node_filesystem_device_error` 1 until they answer again. `statfs`
  replaces `os.statvfs`.
- `IPVSCollector(backend_labels="local_address,local_port,...")`: the labels
  per-backend metrics are grouped by; unknown labels raise `ValueError`
  (see `parse_ipvs_labels`). A custom `source` may be passed.
- `EthtoolCollector(device_include=..., device_exclude=..., metrics_include=".*")`:
  regular expressions selecting devices and statistics. `backend` may be any
  object with `driver_info`, `stats` and `link_info` methods; the default
  `EthtoolBackend` sends `SIOCETHTOOL` requests to the kernel and raises
  `EthtoolError` (an `OSError`) on failure.
- `LogindCollector(source=...)`: `LogindSource(runtime_dir="/run/systemd")`
  lists seats and sessions from logind's state files. Any object with
  `list_seats`, `list_sessions` and `get_session` can stand in for it.

## Parsers

The parsing functions can be used on their own:

```python
import io
from nodecollect.loadavg import parse_load
from nodecollect.meminfo import parse_mem_info
from nodecollect.interrupts import parse_interrupts
from nodecollect.helper import sanitize_metric_name, bytes_to_string
from nodecollect.ethtool import build_ethtool_fq_name

parse_load("0.21 0.37 0.39 1/719 19737")      # [0.21, 0.37, 0.39]
parse_mem_info(io.StringIO("MemTotal: 3742148 kB\n"))
# {'MemTotal_bytes': 3831959552.0}
sanitize_metric_name("Queue[0] AllocFails")   # 'Queue_0_AllocFails'
bytes_to_string(b"ABC\x00A")                   # 'ABC'
build_ethtool_fq_name("rx_errors")            # 'node_ethtool_received_errors'
```

Others: `parse_file_fd_stats`, `parse_mem_info_numa`,
`parse_mem_info_numa_stat`, `parse_filesystem_labels`, `mount_point_details`,
`explode_sensor_filename`, `clean_metric_name`, `collect_sensor_data`,
`canonical_metric_name`, `known_string_or_other` and `read_uint_from_file`.

Metric names follow the `node_<subsystem>_<name>` scheme built by
`build_fq_name`.

## What this package does not do

It only gathers metrics and returns them as Python objects. There is no
command to run, no HTTP server or `/metrics` endpoint, no text exposition
format output and no registry of collectors; code that wants to publish the
metrics has to call the collectors' `update()` methods and format or serve
the results itself. Only Linux sources are read.