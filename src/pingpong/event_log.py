from __future__ import annotations

import asyncio
import os
import time
from datetime import datetime
from typing import TextIO

from . import config
from .engine import ProbeEvent
from .ping import PingError, PingSuccess, PingTimeout


def format_event(event: ProbeEvent) -> str:
    result = event.result
    ts_str = datetime.fromtimestamp(result.timestamp).strftime(config.LOG_TIME_FORMAT)
    if isinstance(result, PingSuccess):
        detail = f"ok rtt={result.rtt_ms:.1f}ms"
    elif isinstance(result, PingTimeout):
        detail = "timeout"
    elif isinstance(result, PingError):
        detail = f"error={result.error}"
    else:
        raise TypeError(f"not a ping result: {result!r}")
    return f"{ts_str} | {event.host_name} seq={result.sequence} {detail}\n"


class EventLogger:
    """Appends one line per probe to a log file."""

    def __init__(self, path: str):
        self.path = path

    def _open(self) -> TextIO:
        self._maybe_rotate_log()
        return open(self.path, "a", encoding="utf-8")

    def log_event(self, event: ProbeEvent):
        with self._open() as f:
            f.write(format_event(event))

    async def run(self, queue: asyncio.Queue):
        """Log events from an Engine subscription until cancelled."""
        while True:
            event = await queue.get()
            self.log_event(event)

    def drain(self, queue: asyncio.Queue) -> int:
        """Log whatever is still queued. Returns the number of events written."""
        count = 0
        while not queue.empty():
            self.log_event(queue.get_nowait())
            count += 1
        return count

    def _maybe_rotate_log(self):
        # Rotate log if it hasn't been modified for LOG_ROTATE_AFTER_DAYS
        try:
            last_mod_time = os.path.getmtime(self.path)
        except FileNotFoundError:
            return  # file doesn't exist yet, that's ok
        if time.time() - last_mod_time > config.LOG_ROTATE_AFTER_DAYS * 24 * 60 * 60:
            suffix = datetime.fromtimestamp(last_mod_time).strftime("%Y%m%d%H%M%S")
            os.rename(self.path, f"{self.path}.{suffix}")
