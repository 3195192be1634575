# server/services/rate_limiter.py

from slowapi import Limiter
from slowapi.util import get_remote_address

from config import Config

# Per-client limits for the endpoints that cost money (chat) or guard
# credentials (login). State is in-process; each instance counts separately.
limiter = Limiter(key_func=get_remote_address, enabled=Config.RATE_LIMIT_ENABLED)
