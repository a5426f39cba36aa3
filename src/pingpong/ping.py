from __future__ import annotations

import asyncio
import contextlib
import logging
import math
import platform
import re
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Union

from . import config

logger = logging.getLogger(__name__)

PING_RTT_RE = re.compile(r"time\s*[=<]\s*([0-9]*\.?[0-9]+)\s*ms", re.IGNORECASE)
PING_LOSS_RE = re.compile(r"100(\.0+)?% (packet )?loss")

SEQUENCE_MASK = 0xFFFF


@dataclass(frozen=True)
class PingSuccess:
    rtt_ms: float
    sequence: int
    timestamp: float


@dataclass(frozen=True)
class PingTimeout:
    sequence: int
    timestamp: float


@dataclass(frozen=True)
class PingError:
    error: str
    sequence: int
    timestamp: float


PingResult = Union[PingSuccess, PingTimeout, PingError]

# Sends one echo request and returns the RTT in ms, or None when no reply came.
# Raises ProbeError when the network reports a failure.
ProbeFunc = Callable[[str, float], Awaitable[Optional[float]]]


class ProbeError(Exception):
    """The echo request failed before its timeout (e.g. host unreachable)."""


def next_sequence(sequence: int) -> int:
    return (sequence + 1) & SEQUENCE_MASK


# killed children waiting to be reaped; holds references so the tasks aren't collected
_reapers: set[asyncio.Task] = set()


def _reap(proc) -> None:
    """Collect a killed ping in the background so the timeout isn't extended."""
    task = asyncio.ensure_future(proc.wait())
    _reapers.add(task)
    task.add_done_callback(_reapers.discard)


def parse_rtt_ms(output: str) -> Optional[float]:
    """Extract the round-trip time from ``ping`` output.

    Handles ``time=12.3 ms`` (Linux/macOS) and ``time=12ms`` / ``time<1ms``
    (Windows). ``time<N`` is read as N/2.
    """
    if not output:
        return None
    match = PING_RTT_RE.search(output)
    if not match:
        return None
    value = float(match.group(1))
    if "<" in match.group(0):
        return value / 2.0
    return value


def build_ping_command(
    ip: str,
    timeout: float,
    packet_size: int = config.PACKET_SIZE,
    system: Optional[str] = None,
) -> list[str]:
    """Platform-specific command sending a single echo request."""
    system = system or platform.system()
    if system == "Windows":
        return [
            "ping", "-n", "1",
            "-w", str(max(1, int(timeout * 1000))),
            "-l", str(packet_size),
            ip,
        ]
    family = "-6" if ":" in ip else "-4"
    if system == "Linux":
        # -W takes whole seconds; the caller's wait_for enforces the real bound
        return [
            "ping", family, "-n", "-c", "1",
            "-W", str(max(1, math.ceil(timeout))),
            "-s", str(packet_size),
            ip,
        ]
    # macOS/BSD: -W has different units, rely on the caller's timeout
    return ["ping", "-n", "-c", "1", "-s", str(packet_size), ip]


async def system_ping(
    ip: str, timeout: float, packet_size: int = config.PACKET_SIZE
) -> Optional[float]:
    """Ping ``ip`` once using the system 'ping' command.

    Returns the RTT in ms on a reply and None when the reply never arrived.
    Raises ProbeError when ping reports a failure or cannot be started.
    """
    cmd = build_ping_command(ip, timeout, packet_size)
    try:
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )
    except OSError as e:
        raise ProbeError(f"cannot run ping: {e}") from e

    try:
        out_bytes, _ = await proc.communicate()
    except asyncio.CancelledError:
        # the caller's timeout fired; don't leave the child running
        with contextlib.suppress(ProcessLookupError):
            proc.kill()
        _reap(proc)
        raise

    stdout = out_bytes.decode(errors="replace")
    # Windows exits 0 when a gateway answers "Destination host unreachable"
    failure = _failure_line(stdout)
    if failure:
        raise ProbeError(failure)
    if proc.returncode == 0:
        rtt_ms = parse_rtt_ms(stdout)
        if rtt_ms is None:
            logger.debug("Reply from %s without a time field: %r", ip, stdout[:100])
            raise ProbeError("unparseable ping output")
        return rtt_ms

    if PING_LOSS_RE.search(stdout) or "timed out" in stdout.lower():
        return None
    raise ProbeError(f"ping exited with status {proc.returncode}")


def _failure_line(output: str) -> Optional[str]:
    # unreachable replies also end in "100% packet loss", so look for them first
    for line in output.splitlines():
        lowered = line.lower().strip()
        if (
            "unreachable" in lowered
            or "unknown host" in lowered
            or lowered.startswith("ping:")
        ):
            return line.strip()
    return None


def make_system_probe(packet_size: int = config.PACKET_SIZE) -> ProbeFunc:
    async def probe(ip: str, timeout: float) -> Optional[float]:
        return await system_ping(ip, timeout, packet_size)

    return probe
