import time

from flask import request
from flask_limiter import Limiter

from . import config


def client_ip(req):
    forwarded = req.headers.get('X-Forwarded-For', '')
    if forwarded:
        return forwarded.split(',')[0].strip()
    return (req.headers.get('X-Real-IP')
            or req.headers.get('CF-Connecting-IP')
            or req.remote_addr
            or 'unknown')


def remote_key():
    return client_ip(request)


def login_key():
    """Admin logins are counted per client IP and lower-cased username."""
    data = request.get_json(silent=True) or {}
    username = str(data.get('username') or '').lower()
    return f"admin-login:{client_ip(request)}:{username}"


def login_limit():
    return f"{config.LOGIN_RATE_LIMIT} per {config.LOGIN_RATE_WINDOW_SECONDS} seconds"


def retry_after():
    """Seconds until the limit this request hit resets."""
    current = limiter.current_limit
    if current is None:
        return config.LOGIN_RATE_WINDOW_SECONDS
    return max(1, int(current.reset_at - time.time()) + 1)


limiter = Limiter(remote_key, default_limits=[], storage_uri=config.RATELIMIT_STORAGE_URI,
                  strategy='fixed-window')
