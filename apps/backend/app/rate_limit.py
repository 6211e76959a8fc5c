"""
IP-based rate limiting for public endpoints.
"""
import os
from slowapi import Limiter
from slowapi.util import get_remote_address

# Extraction fans out to third-party sites: 30 requests per minute in dev, 10 in production
RATE_LIMIT_EXTRACT = os.getenv("RATE_LIMIT_EXTRACT", "30/minute" if os.getenv("CAREERAI_ENV") == "dev" else "10/minute")
RATE_LIMIT_ADMIN = os.getenv("RATE_LIMIT_ADMIN", "60/minute")

limiter = Limiter(key_func=get_remote_address)
