# app/services/ratelimit.py
"""
Sliding-window rate limiting backed by Redis sorted sets.

Each request adds a timestamped member to 'ratelimit:<tier>:<client_ip>';
members older than the window are trimmed before counting. When Redis is
not configured (local development, tests) every request is allowed.
"""

import time
import uuid
from functools import wraps
from flask import current_app, jsonify, g
import redis
from app.utils import get_client_ip

# LAZY INIT: one client per process, created on first use
_redis_client = None
_redis_url = None


def get_redis_client():
    """Returns a shared Redis client, or None if REDIS_URL is not set."""
    global _redis_client, _redis_url

    url = current_app.config.get('REDIS_URL')
    if not url:
        return None

    if _redis_client is None or _redis_url != url:
        _redis_client = redis.Redis.from_url(url, socket_timeout=2, socket_connect_timeout=2)
        _redis_url = url
    return _redis_client


def check_rate_limit(tier, identifier=None):
    """
    Registers one request against the tier's window.

    Returns:
        dict: {success, limit, remaining, reset} where 'reset' is a unix
              timestamp (seconds) at which a slot frees up.
    """
    limit = current_app.config['RATE_LIMIT_TIERS'][tier]
    window = current_app.config['RATE_LIMIT_WINDOW_SECONDS']
    now = time.time()

    client = get_redis_client()
    if client is None:
        return {"success": True, "limit": limit, "remaining": limit, "reset": int(now + window)}

    identifier = identifier or get_client_ip()
    key = f"ratelimit:{tier}:{identifier}"

    try:
        pipe = client.pipeline()
        pipe.zremrangebyscore(key, 0, now - window)
        pipe.zcard(key)
        pipe.zadd(key, {f"{now}-{uuid.uuid4().hex[:8]}": now})
        pipe.expire(key, window + 60)
        results = pipe.execute()
        current_count = results[1]

        if current_count >= limit:
            # The rejected request must not consume a slot
            client.zremrangebyscore(key, now, now)
            oldest = client.zrange(key, 0, 0, withscores=True)
            oldest_time = float(oldest[0][1]) if oldest else now
            return {
                "success": False,
                "limit": limit,
                "remaining": 0,
                "reset": int(oldest_time + window) + 1,
            }

        return {
            "success": True,
            "limit": limit,
            "remaining": max(0, limit - current_count - 1),
            "reset": int(now + window),
        }

    except redis.RedisError as e:
        # Fail open when Redis is unreachable
        current_app.logger.warning(f"Rate limiter unavailable, allowing request: {str(e)}")
        return {"success": True, "limit": limit, "remaining": limit, "reset": int(now + window)}


def _apply_headers(response, result):
    response.headers['X-RateLimit-Limit'] = str(result['limit'])
    response.headers['X-RateLimit-Remaining'] = str(result['remaining'])
    response.headers['X-RateLimit-Reset'] = str(result['reset'])
    return response


def rate_limit(tier):
    """
    Decorator applying a rate-limit tier ('public', 'auth', 'standard', 'admin').

    Usage:
        @bp.route('/2fa/setup', methods=['POST'])
        @rate_limit('auth')
        @require_jwt
        def setup_route(): ...

    Error Responses:
        429: Too many requests (with Retry-After header)
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            result = check_rate_limit(tier)

            if not result['success']:
                retry_after = max(1, result['reset'] - int(time.time()))
                current_app.logger.warning(
                    f"Rate limit exceeded for tier '{tier}' from {get_client_ip()} "
                    f"(request {g.get('request_id')})"
                )
                response = jsonify({
                    "success": False,
                    "error": "Too many requests",
                    "message": f"Rate limit exceeded. Try again in {retry_after} seconds.",
                    "retryAfter": retry_after,
                    "error_code": 429,
                })
                response.status_code = 429
                response.headers['Retry-After'] = str(retry_after)
                return _apply_headers(response, result)

            response = current_app.make_response(f(*args, **kwargs))
            return _apply_headers(response, result)

        return decorated_function
    return decorator
