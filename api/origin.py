"""
api/origin.py -- Resolve the caller's origin address.

The origin address is the pseudo-identity for vote and visit dedup. When
TRUST_FORWARDED_FOR is on, the first X-Forwarded-For entry wins over the
transport peer address. Clients can forge that header, so deployments that
are not behind a proxy should turn it off.
"""

from fastapi import Request

from core.config import get_settings


def get_origin_address(request: Request) -> str:
    """Return the forwarded client address, the peer address, or "unknown"."""
    if get_settings().trust_forwarded_for:
        forwarded = request.headers.get("X-Forwarded-For", "")
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    if request.client and request.client.host:
        return request.client.host
    return "unknown"
