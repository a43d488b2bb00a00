"""
web/limiter.py -- Shared slowapi rate limiter instance.

Imported by web/app.py (to mount as middleware) and web/routes.py (to apply
the login limit with @limiter.limit()). A single shared instance means all
routes share one in-memory counter store; separate instances would each count
from zero and the limit would never trigger.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")
