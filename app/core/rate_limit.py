"""Coarse per-IP throttling for administrative endpoints, using slowapi.

Quote traffic goes through the per-key sliding-window limiter in
app.aggregator.rate_limiter instead.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address)
