"""Session counts from the systemd login manager's runtime state."""

from __future__ import annotations

import logging
import os
from collections import Counter
from dataclasses import dataclass
from typing import Iterable

from .helper import NAMESPACE, Desc, Metric, ValueType, build_fq_name

SUBSYSTEM = "logind"

# "other" is the fallback for values logind may add in the future.
ATTR_REMOTE_VALUES = ("true", "false")
ATTR_TYPE_VALUES = ("other", "unspecified", "tty", "x11", "wayland", "mir", "web")
ATTR_CLASS_VALUES = ("other", "user", "greeter", "lock-screen", "background")

SESSIONS_DESC = Desc(
    build_fq_name(NAMESPACE, SUBSYSTEM, "sessions"),
    "Number of sessions registered in logind.",
    ("seat", "remote", "type", "class"),
)


@dataclass(frozen=True)
class LogindSession:
    """The attributes a session is counted by."""

    seat: str
    remote: str
    session_type: str
    session_class: str


@dataclass(frozen=True)
class LogindSessionEntry:
    """A session as listed by the login manager."""

    session_id: str
    user_id: int
    user_name: str
    seat_id: str
    session_object_path: str


def known_string_or_other(value: str, known: Iterable[str]) -> str:
    """Return value if it is among the known values, else "other"."""
    return value if value in known else "other"


def _read_state_file(path: str) -> dict[str, str]:
    values = {}
    with open(path, encoding="utf-8") as handle:
        for line in handle:
            line = line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, _, value = line.partition("=")
            values[key] = value
    return values


def _state_files(directory: str) -> list[str]:
    try:
        names = os.listdir(directory)
    except FileNotFoundError:
        return []
    return sorted(
        name
        for name in names
        if "." not in name and os.path.isfile(os.path.join(directory, name))
    )


class LogindSource:
    """Reads seats and sessions from logind's state files."""

    def __init__(self, runtime_dir: str = "/run/systemd"):
        self.runtime_dir = runtime_dir

    def list_seats(self) -> list[str]:
        """Seat names, always followed by the empty seat used by remote sessions."""
        return [*_state_files(os.path.join(self.runtime_dir, "seats")), ""]

    def list_sessions(self) -> list[LogindSessionEntry]:
        directory = os.path.join(self.runtime_dir, "sessions")
        entries = []
        for name in _state_files(directory):
            path = os.path.join(directory, name)
            state = _read_state_file(path)
            uid = state.get("UID", "0")
            entries.append(
                LogindSessionEntry(
                    session_id=name,
                    user_id=int(uid) if uid.isdigit() else 0,
                    user_name=state.get("USER", ""),
                    seat_id=state.get("SEAT", ""),
                    session_object_path=path,
                )
            )
        return entries

    def get_session(self, entry: LogindSessionEntry) -> LogindSession | None:
        """The session's attributes, or None if they cannot be read."""
        try:
            state = _read_state_file(entry.session_object_path)
        except OSError:
            return None
        if not {"REMOTE", "TYPE", "CLASS"} <= state.keys():
            return None
        remote = "true" if state["REMOTE"] in ("1", "yes", "true") else "false"
        return LogindSession(
            seat=entry.seat_id,
            remote=remote,
            session_type=known_string_or_other(state["TYPE"], ATTR_TYPE_VALUES),
            session_class=known_string_or_other(state["CLASS"], ATTR_CLASS_VALUES),
        )


def collect_metrics(source) -> list[Metric]:
    """Count sessions for every combination of seat, remote, type and class."""
    try:
        seats = source.list_seats()
    except OSError as exc:
        raise OSError(f"unable to get seats: {exc}") from exc
    try:
        entries = source.list_sessions()
    except OSError as exc:
        raise OSError(f"unable to get sessions: {exc}") from exc

    sessions: Counter[LogindSession] = Counter()
    for entry in entries:
        session = source.get_session(entry)
        if session is not None:
            sessions[session] += 1

    return [
        Metric(
            SESSIONS_DESC,
            ValueType.GAUGE,
            sessions[LogindSession(seat, remote, session_type, session_class)],
            (seat, remote, session_type, session_class),
        )
        for remote in ATTR_REMOTE_VALUES
        for session_type in ATTR_TYPE_VALUES
        for session_class in ATTR_CLASS_VALUES
        for seat in seats
    ]


class LogindCollector:
    """Exposes logind session counts."""

    def __init__(self, source: LogindSource | None = None, logger: logging.Logger | None = None):
        self.source = source or LogindSource()
        self.logger = logger or logging.getLogger(__name__)

    def update(self) -> list[Metric]:
        return collect_metrics(self.source)