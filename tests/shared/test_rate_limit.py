"""Client address resolution tests."""

import pytest
from starlette.requests import Request

from authcore.config.settings import settings
from authcore.shared.rate_limit import get_client_ip


def _request(peer: str, forwarded_for: str | None = None) -> Request:
    headers = [(b"x-forwarded-for", forwarded_for.encode())] if forwarded_for is not None else []
    return Request({"type": "http", "method": "GET", "path": "/", "headers": headers, "client": (peer, 50000)})


@pytest.fixture
def behind_proxy(monkeypatch):
    monkeypatch.setattr(settings, "trusted_proxies", "10.0.0.0/8")


def test_peer_address_without_header():
    assert get_client_ip(_request("192.0.2.10")) == "192.0.2.10"


def test_header_from_untrusted_peer_is_ignored(behind_proxy):
    assert get_client_ip(_request("192.0.2.10", "203.0.113.7")) == "192.0.2.10"


def test_header_from_trusted_proxy(behind_proxy):
    assert get_client_ip(_request("10.0.0.2", "203.0.113.7")) == "203.0.113.7"


def test_nearest_untrusted_hop_wins(behind_proxy):
    # The left-most entry is client supplied and cannot be trusted
    assert get_client_ip(_request("10.0.0.2", "198.51.100.99, 203.0.113.7, 10.0.0.5")) == "203.0.113.7"


def test_ipv6_client(behind_proxy):
    assert get_client_ip(_request("10.0.0.2", "2001:db8::1")) == "2001:db8::1"


@pytest.mark.parametrize("forwarded_for", ["x" * 200, "203.0.113.7; drop", "", "  ,  "])
def test_invalid_header_falls_back_to_peer(behind_proxy, forwarded_for):
    assert get_client_ip(_request("10.0.0.2", forwarded_for)) == "10.0.0.2"


def test_only_trusted_hops_fall_back_to_peer(behind_proxy):
    assert get_client_ip(_request("10.0.0.2", "10.0.0.9")) == "10.0.0.2"
