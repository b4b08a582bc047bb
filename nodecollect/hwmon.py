"""Hardware monitor readings from /sys/class/hwmon, similar to lm-sensors."""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass

from .helper import NAMESPACE, Desc, Metric, NoDataError, PathConfig, ValueType

_INVALID_METRIC_CHARS = re.compile(r"[^a-z0-9:_]")
_FILENAME_FORMAT = re.compile(r"^(?P<type>[^0-9]+)(?P<id>[0-9]*)?(_(?P<property>.+))?$")
_FLOAT_RE = re.compile(
    r"[+-]?(?:(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?|inf(?:inity)?|nan)",
    re.IGNORECASE,
)

HWMON_LABEL_NAMES = ("chip", "sensor")
HWMON_CHIP_NAME_LABEL_NAMES = ("chip", "chip_name")
HWMON_SENSOR_TYPES = (
    "vrm", "beep_enable", "update_interval", "in", "cpu", "fan",
    "pwm", "temp", "curr", "power", "energy", "humidity",
    "intrusion",
)

_PREFIX = f"{NAMESPACE}_hwmon"


@dataclass(frozen=True)
class SensorFilename:
    """A sensor file name split into <type><num>_<property>."""

    sensor_type: str
    sensor_num: int = 0
    sensor_property: str = ""


def clean_metric_name(name: str) -> str:
    """Lower-case a name, replace invalid characters and trim underscores."""
    return _INVALID_METRIC_CHARS.sub("_", name.lower()).strip("_")


def explode_sensor_filename(filename: str) -> SensorFilename | None:
    """Split a sensor file name, or return None if it does not fit the pattern."""
    match = _FILENAME_FORMAT.match(filename)
    if match is None:
        return None
    sensor_id = match.group("id") or ""
    return SensorFilename(
        sensor_type=match.group("type") or "",
        sensor_num=int(sensor_id) if sensor_id else 0,
        sensor_property=match.group("property") or "",
    )


def _parse_float(text: str) -> float:
    if not _FLOAT_RE.fullmatch(text):
        raise ValueError(f"invalid number {text!r}")
    return float(text)


def _sys_read_file(path: str) -> bytes:
    # Some broken drivers return EAGAIN; a single raw read never retries.
    with open(path, "rb", buffering=0) as handle:
        return handle.read(128) or b""


def _add_value_file(data: dict[str, dict[str, str]], sensor: str, prop: str, path: str) -> None:
    try:
        raw = _sys_read_file(path)
    except OSError:
        return
    value = raw.decode("utf-8", errors="replace").strip("\n")
    data.setdefault(sensor, {})[prop] = value


def collect_sensor_data(directory: str, data: dict[str, dict[str, str]]) -> None:
    """Read every known sensor file in a directory into data[sensor][property]."""
    for filename in sorted(os.listdir(directory)):
        parsed = explode_sensor_filename(filename)
        if parsed is None or parsed.sensor_type not in HWMON_SENSOR_TYPES:
            continue
        _add_value_file(
            data,
            f"{parsed.sensor_type}{parsed.sensor_num}",
            parsed.sensor_property,
            os.path.join(directory, filename),
        )


def _read_name_file(directory: str) -> str:
    with open(os.path.join(directory, "name"), encoding="utf-8", errors="replace") as handle:
        return handle.read()


class HwMonCollector:
    """Exposes hardware monitor sensor readings."""

    def __init__(self, paths: PathConfig | None = None, logger: logging.Logger | None = None):
        self.paths = paths or PathConfig()
        self.logger = logger or logging.getLogger(__name__)

    def hwmon_name(self, directory: str) -> str:
        """A stable name for a hwmon directory, preferring the device path."""
        device = os.path.join(directory, "device")
        if os.path.exists(device):
            device_path = os.path.realpath(device)
            dev_name = clean_metric_name(os.path.basename(device_path))
            dev_type = clean_metric_name(os.path.basename(os.path.dirname(device_path)))
            if dev_type and dev_name:
                return f"{dev_type}_{dev_name}"
            if dev_name:
                return dev_name

        try:
            raw_name = _read_name_file(directory)
        except OSError:
            raw_name = ""
        if raw_name:
            clean_name = clean_metric_name(raw_name)
            if clean_name:
                return clean_name

        if not os.path.exists(directory):
            raise FileNotFoundError(f"no such directory: {directory}")
        clean_name = clean_metric_name(os.path.basename(os.path.realpath(directory)))
        if clean_name:
            return clean_name
        raise ValueError(f"Could not derive a monitoring name for {directory}")

    def hwmon_human_readable_chip_name(self, directory: str) -> str:
        """The chip name from the name file; duplicates are allowed."""
        raw_name = _read_name_file(directory)
        if raw_name:
            clean_name = clean_metric_name(raw_name)
            if clean_name:
                return clean_name
        raise ValueError(f"Could not derive a human-readable chip type for {directory}")

    def update_hwmon(self, directory: str) -> list[Metric]:
        """Metrics for all sensors of one hwmon directory."""
        chip = self.hwmon_name(directory)

        data: dict[str, dict[str, str]] = {}
        collect_sensor_data(directory, data)
        device = os.path.join(directory, "device")
        if os.path.exists(device):
            collect_sensor_data(device, data)

        metrics: list[Metric] = []
        try:
            chip_name = self.hwmon_human_readable_chip_name(directory)
        except (OSError, ValueError):
            pass
        else:
            desc = Desc(
                f"{_PREFIX}_chip_names",
                "Annotation metric for human-readable chip names",
                HWMON_CHIP_NAME_LABEL_NAMES,
            )
            metrics.append(Metric(desc, ValueType.GAUGE, 1.0, (chip, chip_name)))

        for sensor, sensor_data in data.items():
            metrics.extend(self._sensor_metrics(chip, sensor, sensor_data))
        return metrics

    def _sensor_metrics(self, chip: str, sensor: str, sensor_data: dict[str, str]) -> list[Metric]:
        parsed = explode_sensor_filename(sensor)
        sensor_type = parsed.sensor_type if parsed else ""
        labels = (chip, sensor)
        metrics: list[Metric] = []

        def gauge(name: str, help_text: str, value: float) -> None:
            metrics.append(Metric(Desc(name, help_text, HWMON_LABEL_NAMES), ValueType.GAUGE, value, labels))

        if "label" in sensor_data:
            label = clean_metric_name(sensor_data["label"])
            if label:
                desc = Desc(
                    f"{_PREFIX}_sensor_label",
                    "Label for given chip and sensor",
                    ("chip", "sensor", "label"),
                )
                metrics.append(Metric(desc, ValueType.GAUGE, 1.0, (chip, sensor, label)))

        if sensor_type == "beep_enable":
            value = 1.0 if sensor_data.get("") == "1" else 0.0
            gauge(f"{_PREFIX}_beep_enabled", "Hardware beep enabled", value)
            return metrics
        if sensor_type == "vrm":
            try:
                value = _parse_float(sensor_data.get("", ""))
            except ValueError:
                return metrics
            gauge(f"{_PREFIX}_voltage_regulator_version", "Hardware voltage regulator", value)
            return metrics
        if sensor_type == "update_interval":
            try:
                value = _parse_float(sensor_data.get("", ""))
            except ValueError:
                return metrics
            gauge(f"{_PREFIX}_update_interval_seconds", "Hardware monitor update interval", value * 0.001)
            return metrics

        prefix = f"{_PREFIX}_{sensor_type}"
        for element, raw in sensor_data.items():
            if element == "label":
                continue
            name = prefix
            if element == "input":
                # input is the value itself unless a bare value file exists too
                if "" in sensor_data:
                    name += "_input"
            elif element:
                name += "_" + clean_metric_name(element)
            try:
                value = _parse_float(raw)
            except ValueError:
                continue

            if element in ("fault", "alarm"):
                gauge(name, f"Hardware sensor {element} status ({sensor_type})", value)
            elif element == "beep":
                gauge(name + "_enabled", "Hardware monitor sensor has beeping enabled", value)
            elif sensor_type in ("in", "cpu"):
                gauge(name + "_volts", f"Hardware monitor for voltage ({element})", value * 0.001)
            elif sensor_type == "temp" and element != "type":
                shown = element or "input"
                gauge(name + "_celsius", f"Hardware monitor for temperature ({shown})", value * 0.001)
            elif sensor_type == "curr":
                gauge(name + "_amps", f"Hardware monitor for current ({element})", value * 0.001)
            elif sensor_type == "energy":
                metrics.append(
                    Metric(
                        Desc(
                            name + "_joule_total",
                            f"Hardware monitor for joules used so far ({element})",
                            HWMON_LABEL_NAMES,
                        ),
                        ValueType.COUNTER,
                        value / 1000000.0,
                        labels,
                    )
                )
            elif sensor_type == "power" and element == "accuracy":
                gauge(name, "Hardware monitor power meter accuracy, as a ratio", value / 1000000.0)
            elif sensor_type == "power" and element in (
                "average_interval",
                "average_interval_min",
                "average_interval_max",
            ):
                gauge(
                    name + "_seconds",
                    f"Hardware monitor power usage update interval ({element})",
                    value * 0.001,
                )
            elif sensor_type == "power":
                gauge(name + "_watt", f"Hardware monitor for power usage in watts ({element})", value / 1000000.0)
            elif sensor_type == "humidity":
                gauge(
                    name,
                    "Hardware monitor for humidity, as a ratio (multiply with 100.0 "
                    f"to get the humidity as a percentage) ({element})",
                    value / 1000000.0,
                )
            elif sensor_type == "fan" and element in ("input", "min", "max", "target"):
                gauge(name + "_rpm", f"Hardware monitor for fan revolutions per minute ({element})", value)
            else:
                gauge(name, f"Hardware monitor {sensor_type} element {element}", value)
        return metrics

    def update(self) -> list[Metric]:
        hwmon_path = os.path.join(self.paths.sys_file_path("class"), "hwmon")
        try:
            entries = sorted(os.listdir(hwmon_path))
        except FileNotFoundError as exc:
            self.logger.debug("hwmon collector metrics are not available for this system")
            raise NoDataError(str(exc)) from exc

        metrics: list[Metric] = []
        last_error: Exception | None = None
        for entry in entries:
            path = os.path.join(hwmon_path, entry)
            if not os.path.isdir(path):
                continue
            try:
                metrics.extend(self.update_hwmon(path))
            except (OSError, ValueError) as exc:
                self.logger.error("failed to read hwmon directory %s: %s", path, exc)
                last_error = exc
        if last_error is not None:
            raise last_error
        return metrics