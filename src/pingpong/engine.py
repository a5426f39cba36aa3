from __future__ import annotations

import asyncio
import contextlib
import logging
import threading
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional, Sequence

from .config import Host, PingConfig
from .ping import (
    PingError,
    PingResult,
    PingSuccess,
    PingTimeout,
    ProbeError,
    ProbeFunc,
    make_system_probe,
    next_sequence,
)
from .resolver import ResolutionError, host_id, resolve_address
from .stats import HostStatistics

logger = logging.getLogger(__name__)

Resolver = Callable[[str], Awaitable[str]]


@dataclass(frozen=True)
class ProbeEvent:
    host_id: str
    host_name: str
    result: PingResult


class ChannelClosed(Exception):
    """The event consumer has gone away."""


class EventChannel:
    """Unbounded many-producer, single-consumer queue of ProbeEvents.

    Once closed, ``send`` raises ChannelClosed and ``recv`` drains what is
    left before returning None.
    """

    def __init__(self):
        self._queue: asyncio.Queue[Optional[ProbeEvent]] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def send(self, event: ProbeEvent):
        if self._closed:
            raise ChannelClosed()
        self._queue.put_nowait(event)

    async def recv(self) -> Optional[ProbeEvent]:
        if self._closed and self._queue.empty():
            return None
        return await self._queue.get()

    def close(self):
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(None)  # wakes a waiting recv()


class Prober:
    """Pings one host on a fixed interval, one probe at a time."""

    def __init__(
        self,
        host: Host,
        ip: str,
        interval: float,
        timeout: float,
        probe: ProbeFunc,
        channel: EventChannel,
        stop_event: asyncio.Event,
    ):
        self.host = host
        self.host_id = host_id(host.address)
        self.ip = ip
        self.interval = interval
        self.timeout = timeout
        self.probe = probe
        self.channel = channel
        self.stop_event = stop_event
        self.sequence = 0

    async def probe_once(self) -> PingResult:
        """Send one echo request and classify it. Never raises for probe failures."""
        sequence = self.sequence
        self.sequence = next_sequence(sequence)
        timestamp = time.time()
        try:
            rtt_ms = await asyncio.wait_for(self.probe(self.ip, self.timeout), self.timeout)
        except asyncio.TimeoutError:
            rtt_ms = None
        except (ProbeError, OSError) as e:
            return PingError(str(e) or type(e).__name__, sequence, timestamp)
        if rtt_ms is None:
            return PingTimeout(sequence, timestamp)
        return PingSuccess(rtt_ms, sequence, timestamp)

    async def run(self):
        """Tick until stopped or the channel closes."""
        logger.debug("Prober started: %s (%s) every %.2fs", self.host.name, self.ip, self.interval)
        try:
            while not self.stop_event.is_set():
                start = time.monotonic()
                result = await self.probe_once()
                logger.debug("%s seq=%d -> %s", self.host.name, result.sequence, type(result).__name__)
                try:
                    self.channel.send(ProbeEvent(self.host_id, self.host.name, result))
                except ChannelClosed:
                    break
                # a probe that overran the interval makes the next tick late, never overlapping
                delay = max(0.0, self.interval - (time.monotonic() - start))
                with contextlib.suppress(asyncio.TimeoutError):
                    await asyncio.wait_for(self.stop_event.wait(), delay)
        except Exception:
            logger.exception("Prober for %s crashed", self.host.name)
            raise
        finally:
            logger.debug("Prober stopped: %s", self.host.name)


@dataclass(frozen=True)
class HostSnapshot:
    host_id: str
    name: str
    address: str
    ip: Optional[str]
    error: Optional[str]  # resolution failure, if any
    stats: HostStatistics


@dataclass
class _HostEntry:
    host: Host
    host_id: str
    ip: Optional[str] = None
    error: Optional[str] = None


class Engine:
    """Runs one Prober per enabled host and folds their results into stats."""

    def __init__(
        self,
        hosts: Sequence[Host],
        ping_config: PingConfig,
        *,
        probe: Optional[ProbeFunc] = None,
        resolver: Resolver = resolve_address,
    ):
        self.ping_config = ping_config
        self.probe = probe or make_system_probe(ping_config.packet_size)
        self.resolver = resolver

        self._entries: List[_HostEntry] = []
        self._stats: Dict[str, HostStatistics] = {}
        self._lock = threading.Lock()
        self._subscribers: List[asyncio.Queue] = []
        for host in hosts:
            if not host.enabled:
                continue
            hid = host_id(host.address)
            if hid in self._stats:
                logger.warning("Skipping %s: address %s is already monitored", host.name, host.address)
                continue
            self._entries.append(_HostEntry(host, hid))
            self._stats[hid] = HostStatistics(ping_config.history_size)

        self._channel: Optional[EventChannel] = None
        self._stop_event: Optional[asyncio.Event] = None
        self._probers: List[Prober] = []
        self._prober_tasks: List[asyncio.Task] = []
        self._aggregator: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._aggregator is not None

    def host_info(self) -> list[tuple[str, str]]:
        return [(e.host_id, e.host.name) for e in self._entries]

    def subscribe(self) -> asyncio.Queue:
        """Queue receiving every ProbeEvent after it reached the statistics."""
        queue: asyncio.Queue[ProbeEvent] = asyncio.Queue()
        self._subscribers.append(queue)
        return queue

    async def _resolve(self, entry: _HostEntry):
        try:
            entry.ip = await self.resolver(entry.host.address)
        except ResolutionError as e:
            entry.error = str(e)
            logger.warning("Not probing %s: %s", entry.host.name, e)

    async def start(self):
        if self.running:
            return
        self._channel = EventChannel()
        self._stop_event = asyncio.Event()
        await asyncio.gather(*(self._resolve(e) for e in self._entries))

        timeout = self.ping_config.timeout
        for entry in self._entries:
            if entry.ip is None:
                continue
            interval = entry.host.interval or self.ping_config.interval
            if timeout > interval:
                logger.warning(
                    "%s: timeout %.2fs exceeds interval %.2fs, ticks will run late",
                    entry.host.name, timeout, interval,
                )
            self._probers.append(
                Prober(entry.host, entry.ip, interval, timeout, self.probe, self._channel, self._stop_event)
            )

        self._aggregator = asyncio.create_task(self._aggregate())
        self._prober_tasks = [asyncio.create_task(p.run()) for p in self._probers]
        logger.info(
            "Engine started: %d of %d hosts probing", len(self._probers), len(self._entries)
        )

    async def stop(self):
        """Stop ticking, let in-flight probes finish, then drain the channel."""
        if not self.running:
            return
        self._stop_event.set()
        await asyncio.gather(*self._prober_tasks, return_exceptions=True)
        self._channel.close()
        await asyncio.gather(self._aggregator, return_exceptions=True)
        self._aggregator = None
        self._prober_tasks = []
        self._probers = []
        logger.info("Engine stopped")

    async def __aenter__(self) -> "Engine":
        await self.start()
        return self

    async def __aexit__(self, *exc_info):
        await self.stop()

    async def _aggregate(self):
        try:
            while True:
                event = await self._channel.recv()
                if event is None:
                    break
                self.apply(event)
        finally:
            # probers see ChannelClosed once nobody is reading
            self._channel.close()

    def apply(self, event: ProbeEvent):
        with self._lock:
            stats = self._stats.get(event.host_id)
            if stats is None:
                stats = self._stats[event.host_id] = HostStatistics(self.ping_config.history_size)
            stats.record(event.result)
        for queue in self._subscribers:
            queue.put_nowait(event)

    def snapshot(self) -> list[HostSnapshot]:
        """Consistent copy of every host's statistics, in config order."""
        with self._lock:
            return [
                HostSnapshot(
                    host_id=e.host_id,
                    name=e.host.name,
                    address=e.host.address,
                    ip=e.ip,
                    error=e.error,
                    stats=self._stats[e.host_id].copy(),
                )
                for e in self._entries
            ]
