from __future__ import annotations

from typing import Iterable, Optional, Protocol, Tuple


Headers = Iterable[Tuple[str, str]]

STATE_IDLE = "idle"
STATE_HEADER_WRITTEN = "header_written"
STATE_BODY_WRITTEN = "body_written"
STATE_DONE = "done"


class ResponseWriter(Protocol):
    def write_header(self, code: int, headers: Headers = ()) -> None: ...

    def write(self, data: bytes) -> int: ...

    def flush(self) -> None: ...


class StatusRecordingWriter:
    """Forwards every call to ``inner`` and remembers the first status sent.

    Body bytes written before any header count as an implicit 200. Nothing
    about the real response is changed.
    """

    def __init__(self, inner: ResponseWriter) -> None:
        self.inner = inner
        self.state = STATE_IDLE
        self._status: Optional[int] = None

    @property
    def status(self) -> int:
        return 200 if self._status is None else self._status

    @property
    def header_written(self) -> bool:
        return self._status is not None

    def write_header(self, code: int, headers: Headers = ()) -> None:
        self.inner.write_header(code, headers)
        if self._status is None:
            self._status = int(code)
        if self.state == STATE_IDLE:
            self.state = STATE_HEADER_WRITTEN

    def write(self, data: bytes) -> int:
        n = self.inner.write(data)
        if self._status is None:
            self._status = 200
        if self.state != STATE_DONE:
            self.state = STATE_BODY_WRITTEN
        return n

    def flush(self) -> None:
        self.inner.flush()

    def finish(self) -> bool:
        """Move to the terminal state; True only on the first call."""
        if self.state == STATE_DONE:
            return False
        self.state = STATE_DONE
        return True
