from __future__ import annotations

import ipaddress
import tomllib
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Iterator, Optional

# Default config file looked up in the working directory
CONFIG_FILE = "pingpong.toml"

# Ping settings
PING_INTERVAL_SECONDS = 1.0  # how often each host is pinged
PING_TIMEOUT_SECONDS = 3.0  # a probe with no reply after this is a timeout
HISTORY_SIZE = 300  # results kept per host (5 minutes at 1s intervals)
PACKET_SIZE = 32  # ICMP payload bytes
MAX_PACKET_SIZE = 65507

# Connection quality is judged on this many of the most recent results
QUALITY_WINDOW = 20

# Quality thresholds
POOR_LOSS_PCT = 10.0
POOR_RTT_MS = 500.0
FAIR_LOSS_PCT = 2.0
FAIR_RTT_MS = 100.0

# UI settings
UI_REFRESH_RATE_MS = 100
UI_THEME = "auto"
UI_GRAPH_HEIGHT = 10
SPARKLINE_POINTS = 30

# Event log
LOG_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_ROTATE_AFTER_DAYS = 90

# Hosts used when no config file is present
DEFAULT_HOSTS: list[tuple[str, str]] = [
    ("Google DNS", "8.8.8.8"),
    ("Cloudflare DNS", "1.1.1.1"),
    ("Google", "google.com"),
]


class ConfigError(ValueError):
    """Raised when a config file cannot be read or holds invalid values."""


@dataclass(frozen=True)
class Host:
    name: str
    address: str
    enabled: bool = True
    interval: Optional[float] = None  # overrides PingConfig.interval


@dataclass
class PingConfig:
    interval: float = PING_INTERVAL_SECONDS
    timeout: float = PING_TIMEOUT_SECONDS
    history_size: int = HISTORY_SIZE
    packet_size: int = PACKET_SIZE


@dataclass
class UiConfig:
    refresh_rate: int = UI_REFRESH_RATE_MS  # milliseconds
    theme: str = UI_THEME
    show_details: bool = True
    graph_height: int = UI_GRAPH_HEIGHT


def _default_hosts() -> list[Host]:
    return [Host(name, address) for name, address in DEFAULT_HOSTS]


@dataclass
class Config:
    ping: PingConfig = field(default_factory=PingConfig)
    hosts: list[Host] = field(default_factory=_default_hosts)
    ui: UiConfig = field(default_factory=UiConfig)

    def add_host(self, address: str) -> Host:
        """Append an enabled host, naming bare IPv4 addresses ``IP <addr>``."""
        address = address.strip()
        name = address
        try:
            if isinstance(ipaddress.ip_address(address), ipaddress.IPv4Address):
                name = f"IP {address}"
        except ValueError:
            pass
        host = Host(name=name, address=address)
        self.hosts.append(host)
        return host

    def set_interval(self, interval: float):
        if interval <= 0:
            raise ConfigError("interval must be positive")
        self.ping = replace(self.ping, interval=interval)

    def enabled_hosts(self) -> Iterator[Host]:
        return (h for h in self.hosts if h.enabled)

    def validate(self) -> "Config":
        p = self.ping
        _expect_number(p.interval, "ping.interval")
        _expect_number(p.timeout, "ping.timeout")
        _expect_number(p.history_size, "ping.history_size", integer=True)
        _expect_number(p.packet_size, "ping.packet_size", integer=True)
        _expect_number(self.ui.refresh_rate, "ui.refresh_rate", integer=True)
        _expect(self.ui.theme, str, "ui.theme")
        _expect(self.ui.show_details, bool, "ui.show_details")
        _expect_number(self.ui.graph_height, "ui.graph_height", integer=True)
        for i, h in enumerate(self.hosts):
            _expect(h.name, str, f"hosts[{i}].name")
            _expect(h.address, str, f"hosts[{i}].address")
            _expect(h.enabled, bool, f"hosts[{i}].enabled")
            if h.interval is not None:
                _expect_number(h.interval, f"hosts[{i}].interval")

        if p.interval <= 0:
            raise ConfigError(f"ping.interval must be positive, got {p.interval}")
        if p.timeout <= 0:
            raise ConfigError(f"ping.timeout must be positive, got {p.timeout}")
        if p.history_size < 1:
            raise ConfigError(
                f"ping.history_size must be at least 1, got {p.history_size}"
            )
        if not 0 <= p.packet_size <= MAX_PACKET_SIZE:
            raise ConfigError(
                f"ping.packet_size must be between 0 and {MAX_PACKET_SIZE}, got {p.packet_size}"
            )
        if self.ui.refresh_rate <= 0:
            raise ConfigError("ui.refresh_rate must be positive")
        for i, h in enumerate(self.hosts):
            if not h.name.strip():
                raise ConfigError(f"hosts[{i}]: name must not be empty")
            if not h.address.strip():
                raise ConfigError(f"hosts[{i}] ({h.name}): address must not be empty")
            if h.interval is not None and h.interval <= 0:
                raise ConfigError(
                    f"hosts[{i}] ({h.name}): interval must be positive, got {h.interval}"
                )
        return self


def _expect(value: Any, kind: type, where: str):
    if not isinstance(value, kind):
        raise ConfigError(
            f"{where} must be {kind.__name__}, got {type(value).__name__} {value!r}"
        )


def _expect_number(value: Any, where: str, integer: bool = False):
    # bool is an int subclass, but `interval = true` is a typo, not a number
    kinds = (int,) if integer else (int, float)
    if isinstance(value, bool) or not isinstance(value, kinds):
        kind = "an integer" if integer else "a number"
        raise ConfigError(f"{where} must be {kind}, got {type(value).__name__} {value!r}")


def _section(data: dict[str, Any], key: str) -> dict[str, Any]:
    value = data.get(key, {})
    if not isinstance(value, dict):
        raise ConfigError(f"[{key}] must be a table")
    return value


def _build(cls, values: dict[str, Any], where: str):
    try:
        return cls(**values)
    except TypeError as e:
        raise ConfigError(f"{where}: {e}") from e


def config_from_dict(data: dict[str, Any]) -> Config:
    """Build and validate a Config from parsed TOML data.

    Missing sections and keys fall back to the module defaults. A missing
    ``hosts`` array means the default host list.
    """
    ping = _build(PingConfig, _section(data, "ping"), "[ping]")
    ui = _build(UiConfig, _section(data, "ui"), "[ui]")
    if "hosts" in data:
        raw_hosts = data["hosts"]
        if not isinstance(raw_hosts, list):
            raise ConfigError("hosts must be an array of tables")
        hosts = [
            _build(Host, h, f"hosts[{i}]") if isinstance(h, dict) else None
            for i, h in enumerate(raw_hosts)
        ]
        if None in hosts:
            raise ConfigError("every [[hosts]] entry must be a table")
    else:
        hosts = _default_hosts()
    return Config(ping=ping, hosts=hosts, ui=ui).validate()


def load_config(path: str | Path) -> Config:
    """Load a TOML config file.

    Raises FileNotFoundError if the file is missing and ConfigError if it
    cannot be parsed or validated.
    """
    path = Path(path)
    with path.open("rb") as f:
        try:
            data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"{path}: {e}") from e
    try:
        return config_from_dict(data)
    except ConfigError as e:
        raise ConfigError(f"{path}: {e}") from e
