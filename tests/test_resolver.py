import asyncio
import socket
import uuid

import pytest

from pingpong.resolver import ResolutionError, host_id, resolve_address


def test_host_id_is_stable():
    assert host_id("127.0.0.1") == host_id("127.0.0.1")
    assert host_id("127.0.0.1") != host_id("8.8.8.8")
    # name-based uuid, so the same across processes
    assert host_id("8.8.8.8") == f"host_{uuid.uuid5(uuid.NAMESPACE_DNS, '8.8.8.8')}"


def test_literal_addresses_skip_dns(monkeypatch):
    def no_dns(*args, **kwargs):
        raise AssertionError("DNS lookup for a literal address")

    monkeypatch.setattr(socket, "getaddrinfo", no_dns)
    assert asyncio.run(resolve_address("192.168.1.1")) == "192.168.1.1"
    assert asyncio.run(resolve_address(" ::1 ")) == "::1"


def test_hostname_uses_first_result(monkeypatch):
    def fake_getaddrinfo(host, port, *args, **kwargs):
        assert host == "example.org"
        return [
            (socket.AF_INET, socket.SOCK_STREAM, 6, "", ("93.184.216.34", 0)),
            (socket.AF_INET, socket.SOCK_STREAM, 6, "", ("93.184.216.35", 0)),
        ]

    monkeypatch.setattr(socket, "getaddrinfo", fake_getaddrinfo)
    assert asyncio.run(resolve_address("example.org")) == "93.184.216.34"


def test_lookup_failure(monkeypatch):
    def failing(*args, **kwargs):
        raise socket.gaierror(socket.EAI_NONAME, "Name or service not known")

    monkeypatch.setattr(socket, "getaddrinfo", failing)
    with pytest.raises(ResolutionError) as exc:
        asyncio.run(resolve_address("no.such.host.invalid"))
    assert exc.value.address == "no.such.host.invalid"


def test_no_results(monkeypatch):
    monkeypatch.setattr(socket, "getaddrinfo", lambda *a, **k: [])
    with pytest.raises(ResolutionError, match="no addresses"):
        asyncio.run(resolve_address("empty.example"))


def test_empty_address():
    with pytest.raises(ResolutionError):
        asyncio.run(resolve_address("  "))
