from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import signal
import sys
from typing import Optional, Sequence

from rich.console import Console
from rich.live import Live

from . import config
from .config import Config, ConfigError, load_config
from .engine import Engine
from .event_log import EventLogger
from .logging_config import configure_logging
from .ui import build_table

console = Console()
logger = logging.getLogger(__name__)


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="pingpong",
        description="Monitor connectivity to multiple hosts with a live table.",
    )
    parser.add_argument(
        "-c", "--config", default=config.CONFIG_FILE, help="configuration file path"
    )
    parser.add_argument(
        "-i", "--interval", type=float, help="ping interval in seconds (overrides config)"
    )
    parser.add_argument(
        "--host",
        action="append",
        default=[],
        metavar="ADDRESS",
        help="additional host to ping (can be used multiple times)",
    )
    parser.add_argument("--log-file", help="append every probe result to this file")
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> Config:
    try:
        cfg = load_config(args.config)
    except FileNotFoundError:
        logger.info("No config file at %s, using defaults", args.config)
        cfg = Config()
    for address in args.host:
        cfg.add_host(address)
    if args.interval is not None:
        cfg.set_interval(args.interval)
    return cfg.validate()


async def ui_loop(engine: Engine, cfg: Config, stop_event: asyncio.Event):
    """Renders the live UI table."""
    refresh = cfg.ui.refresh_rate / 1000.0
    with Live(
        build_table(engine.snapshot(), cfg.ui.show_details),
        refresh_per_second=max(1, int(1 / refresh)),
        console=console,
        screen=False,
    ) as live:
        while not stop_event.is_set():
            live.update(build_table(engine.snapshot(), cfg.ui.show_details))
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(stop_event.wait(), refresh)


async def main_async(cfg: Config, log_file: Optional[str] = None):
    """The main asynchronous entry point of the application."""
    stop_event = asyncio.Event()
    engine = Engine(list(cfg.enabled_hosts()), cfg.ping)

    loop = asyncio.get_running_loop()

    def _signal_handler():
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _signal_handler)
        except NotImplementedError:  # Windows
            signal.signal(sig, lambda s, f: loop.call_soon_threadsafe(_signal_handler))

    event_logger = EventLogger(log_file) if log_file else None
    events = engine.subscribe() if event_logger else None
    log_task = asyncio.create_task(event_logger.run(events)) if event_logger else None

    async with engine:
        await ui_loop(engine, cfg, stop_event)

    if log_task is not None:
        log_task.cancel()
        await asyncio.gather(log_task, return_exceptions=True)
        event_logger.drain(events)  # results flushed while the engine stopped

    console.print("\nSummary:")
    for snap in engine.snapshot():
        st = snap.stats
        if snap.error:
            console.print(f"{snap.name}: {snap.error}")
            continue
        console.print(
            f"{snap.name}: sent={st.total} ok={st.successful} timeout={st.timed_out} "
            f"error={st.errored} packet_loss={st.packet_loss_percent():.1f}%"
        )


def main(argv: Optional[Sequence[str]] = None):
    args = parse_args(argv)
    configure_logging(console)
    try:
        cfg = build_config(args)
    except ConfigError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        sys.exit(2)
    try:
        asyncio.run(main_async(cfg, args.log_file))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":  # pragma: no cover
    main()
