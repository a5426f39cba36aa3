from __future__ import annotations

import asyncio
import ipaddress
import socket
import uuid


class ResolutionError(Exception):
    """A configured address could not be turned into an IP address."""

    def __init__(self, address: str, reason: str):
        super().__init__(f"cannot resolve {address!r}: {reason}")
        self.address = address
        self.reason = reason


def host_id(address: str) -> str:
    """Stable identifier for an address, independent of its display name."""
    return f"host_{uuid.uuid5(uuid.NAMESPACE_DNS, address)}"


async def resolve_address(address: str) -> str:
    """Return an IP for ``address``: literals as-is, names via a DNS lookup."""
    address = address.strip()
    if not address:
        raise ResolutionError(address, "empty address")
    try:
        return str(ipaddress.ip_address(address))
    except ValueError:
        pass

    loop = asyncio.get_running_loop()
    try:
        infos = await loop.getaddrinfo(address, None, type=socket.SOCK_STREAM)
    except (socket.gaierror, UnicodeError) as e:
        raise ResolutionError(address, str(e)) from e
    if not infos:
        raise ResolutionError(address, "no addresses found")
    # sockaddr is (host, port) for IPv4 and (host, port, flow, scope) for IPv6
    return infos[0][4][0]
