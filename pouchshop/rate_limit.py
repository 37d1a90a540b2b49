"""
Shared rate limiter for every router
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from pouchshop.config import get_settings

limiter = Limiter(key_func=get_remote_address, enabled=get_settings().rate_limit_enabled)
