"""
rate_limit.py — Global rate limiter instance.

Uses slowapi (a Starlette-compatible wrapper around the `limits` library).
Requests are keyed by client IP address.

Limits are attached to write endpoints in the route tables:
    Route("POST", "/requests", send_request, limit="10/minute")

Set RATE_LIMIT_ENABLED=false to switch every limit off (the test suite does).
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from rendezvous.core.config import settings

# Key requests by client IP.
limiter = Limiter(key_func=get_remote_address, enabled=settings.rate_limit_enabled)
