from __future__ import annotations

import sys
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional, TextIO


@dataclass(frozen=True)
class ResponseRecord:
    remote_ip: str
    method: str
    path: str
    status: int
    user_agent: str = ""


def _timestamp(now: float) -> str:
    return time.strftime("%Y.%m.%d %H:%M:%S", time.localtime(now))


def client_ip(address: str) -> str:
    """Strip a trailing ``:port`` from an IPv4 peer address."""
    if address.count(":") == 1:
        return address.split(":", 1)[0]
    return address


def format_access_line(record: ResponseRecord, now: float) -> str:
    line = f"{_timestamp(now)} [{client_ip(record.remote_ip)}] {record.status} {record.method} {record.path}"
    if record.user_agent:
        line += f' "{record.user_agent}"'
    return line + "\n"


class AccessLogger:
    def __init__(
        self,
        stream: Optional[TextIO] = None,
        access_log_path: str = "",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.stream = stream if stream is not None else sys.stderr
        self.access_log_path = access_log_path
        self.clock = clock
        self._lock = threading.Lock()
        self._file_error_reported = False

    def _emit(self, line: str) -> None:
        with self._lock:
            self.stream.write(line)
            self.stream.flush()

    def diagnostic(self, message: str) -> None:
        self._emit(f"{_timestamp(self.clock())} {message.rstrip()}\n")

    def record(self, record: ResponseRecord) -> None:
        line = format_access_line(record, self.clock())
        self._emit(line)
        if not self.access_log_path:
            return
        try:
            with self._lock:
                with open(self.access_log_path, "a", encoding="utf-8") as f:
                    f.write(line)
        except OSError as exc:
            if not self._file_error_reported:
                self._file_error_reported = True
                self.diagnostic(f"fail to write access log {self.access_log_path}: {exc}")
