from __future__ import annotations

from typing import Optional, Sequence

from rich import box
from rich.table import Table
from rich.text import Text

from . import config
from .engine import HostSnapshot
from .ping import PingError, PingSuccess, PingTimeout

SPARK_CHARS = "▁▂▃▄▅▆▇█"
SPARK_GAP = "·"


def sparkline(values: Sequence[Optional[float]]) -> str:
    known = [v for v in values if v is not None]
    if not known:
        return SPARK_GAP * len(values)
    low, high = min(known), max(known)
    span = high - low or 1.0
    top = len(SPARK_CHARS) - 1
    return "".join(
        SPARK_GAP if v is None else SPARK_CHARS[round((v - low) / span * top)]
        for v in values
    )


def _last_display(snap: HostSnapshot) -> Text:
    last = snap.stats.last_result
    if snap.error is not None:
        return Text("unresolved", style="red")
    if last is None:
        return Text("no data", style="dim")
    if isinstance(last, PingSuccess):
        return Text(f"{last.rtt_ms:.1f}")
    if isinstance(last, PingTimeout):
        return Text("timeout", style="red")
    if isinstance(last, PingError):
        return Text(last.error, style="red")
    raise TypeError(f"not a ping result: {last!r}")


def build_table(snapshot: Sequence[HostSnapshot], show_details: bool = True) -> Table:
    table = Table(
        title="pingpong",
        box=box.MINIMAL_DOUBLE_HEAD,
        expand=True,
        caption_style="bold",
    )
    table.add_column("Host", style="bold")
    table.add_column("Address")
    table.add_column("Quality")
    table.add_column("Last (ms)")
    table.add_column("Avg")
    if show_details:
        table.add_column("Min")
        table.add_column("Max")
        table.add_column("Median")
        table.add_column("Jitter")
    table.add_column(f"Loss % ({config.QUALITY_WINDOW})")
    table.add_column("Loss % (all)")
    table.add_column("Sent")
    table.add_column("RTT", no_wrap=True)

    down = 0
    for snap in snapshot:
        st = snap.stats
        rtt = st.rtt_stats()
        if st.total:
            quality = st.connection_quality()
            quality_cell = Text(f"{quality.symbol} {quality.value}", style=quality.color)
            if st.consecutive_failures:
                down += 1
        else:
            quality_cell = Text("-", style="dim")
        address = snap.address if snap.ip in (None, snap.address) else f"{snap.address} ({snap.ip})"
        row = [snap.name, address, quality_cell, _last_display(snap), f"{rtt.avg:.1f}"]
        if show_details:
            row += [f"{rtt.min:.1f}", f"{rtt.max:.1f}", f"{rtt.median:.1f}", f"{rtt.jitter:.1f}"]
        row += [
            f"{st.packet_loss_percent_recent():.0f}",
            f"{st.packet_loss_percent():.1f}",
            str(st.total),
            sparkline(st.rtt_history_for_graph(config.SPARKLINE_POINTS)),
        ]
        table.add_row(*row)

    table.caption = f"{len(snapshot)} hosts, {down} failing"
    return table
