"""Rate limiting shared by every router (slowapi, keyed by client IP)."""

from slowapi import Limiter
from slowapi.util import get_remote_address

from src.config import settings

limiter = Limiter(key_func=get_remote_address)

RATE_LIMIT = settings.api_rate_limit
