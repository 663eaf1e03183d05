"""Per-client rate limiting (slowapi)."""

import ipaddress

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.util import get_remote_address

from authcore.config.settings import settings


def _parse_ip(value: str) -> ipaddress.IPv4Address | ipaddress.IPv6Address | None:
    try:
        return ipaddress.ip_address(value.strip())
    except ValueError:
        return None


def _is_trusted_proxy(address: ipaddress.IPv4Address | ipaddress.IPv6Address | None) -> bool:
    return address is not None and any(address in network for network in settings.trusted_proxy_networks)


def get_client_ip(request: Request) -> str:
    """Client address used for rate limiting and recorded on refresh tokens.

    ``X-Forwarded-For`` is honoured only when the peer is a configured trusted
    proxy. The header is read from the nearest hop backwards and the first
    address that is not itself a trusted proxy wins. An unparsable entry ends
    the walk and the peer address is used instead.
    """
    peer = get_remote_address(request)
    forwarded_for = request.headers.get("x-forwarded-for")
    if not forwarded_for or not _is_trusted_proxy(_parse_ip(peer)):
        return peer

    for entry in reversed(forwarded_for.split(",")):
        address = _parse_ip(entry)
        if address is None:
            break
        if not _is_trusted_proxy(address):
            return str(address)
    return peer


limiter = Limiter(key_func=get_client_ip, enabled=settings.rate_limit_enabled)


async def rate_limit_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle rate limit exceeded errors."""
    return JSONResponse(
        status_code=429,
        content={"detail": "Rate limit exceeded"},
    )
