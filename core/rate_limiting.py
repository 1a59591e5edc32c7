"""
Redis-based rate limiting for the buyer-facing payment endpoints.
Fixed window counter per view and client IP; fails open when Redis is down.
"""
import logging
import time

import redis
from django.conf import settings
from django.http import JsonResponse
from rest_framework import status

logger = logging.getLogger(__name__)

_redis_client = None
_redis_retry_at = 0.0

# Seconds to wait before reconnecting after a failed connection attempt
REDIS_RETRY_BACKOFF_SECONDS = 30


def get_redis_client():
    """
    Connect on first use; returns None when Redis is unreachable.
    A failed connection is not retried until the back-off window passes.
    """
    global _redis_client, _redis_retry_at
    if _redis_client is None:
        if time.monotonic() < _redis_retry_at:
            return None
        try:
            client = redis.Redis.from_url(
                settings.REDIS_URL,
                decode_responses=True,
                socket_connect_timeout=5
            )
            client.ping()
            _redis_client = client
        except (redis.ConnectionError, redis.TimeoutError) as e:
            _redis_retry_at = time.monotonic() + REDIS_RETRY_BACKOFF_SECONDS
            logger.warning(
                f"Redis connection failed: {e}. Rate limiting skipped for {REDIS_RETRY_BACKOFF_SECONDS}s."
            )
            return None
    return _redis_client


def get_client_ip(request):
    """Extract client IP address from request."""
    x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
    if x_forwarded_for:
        ip = x_forwarded_for.split(',')[0].strip()
    else:
        ip = request.META.get('REMOTE_ADDR', 'unknown')
    return ip


class RateLimitMixin:
    """
    Mixin class for class-based views to add rate limiting.

    Usage:
        class VerifyPaymentView(RateLimitMixin, APIView):
            rate_limit_max_requests = 30
            rate_limit_window_seconds = 60
            rate_limit_scope = 'payment-verify'
    """
    rate_limit_max_requests = 20
    rate_limit_window_seconds = 60
    rate_limit_scope = None

    def _rate_limited_response(self, ttl):
        response = JsonResponse(
            {
                'success': False,
                'error': 'Rate limit exceeded',
                'detail': f'Maximum {self.rate_limit_max_requests} requests per {self.rate_limit_window_seconds} seconds allowed.',
                'retry_after': ttl
            },
            status=status.HTTP_429_TOO_MANY_REQUESTS,
        )
        response['X-RateLimit-Limit'] = str(self.rate_limit_max_requests)
        response['X-RateLimit-Remaining'] = '0'
        response['X-RateLimit-Reset'] = str(ttl)
        response['Retry-After'] = str(ttl)
        return response

    def dispatch(self, request, *args, **kwargs):
        if request.method == 'OPTIONS' or not getattr(settings, 'RATE_LIMIT_ENABLED', True):
            return super().dispatch(request, *args, **kwargs)

        redis_client = get_redis_client()
        if redis_client is None:
            return super().dispatch(request, *args, **kwargs)

        try:
            client_ip = get_client_ip(request)
            scope = self.rate_limit_scope or self.__class__.__name__
            key = f"rate_limit:{scope}:{client_ip}"

            current_count = redis_client.incr(key)

            if current_count == 1:
                redis_client.expire(key, self.rate_limit_window_seconds)

            ttl = redis_client.ttl(key)
        except redis.RedisError as e:
            logger.error(f"Redis error in rate limiting: {e}")
            return super().dispatch(request, *args, **kwargs)

        if current_count > self.rate_limit_max_requests:
            logger.warning(f"Rate limit exceeded for {client_ip} on {scope}")
            return self._rate_limited_response(ttl)

        response = super().dispatch(request, *args, **kwargs)
        response['X-RateLimit-Limit'] = str(self.rate_limit_max_requests)
        response['X-RateLimit-Remaining'] = str(max(0, self.rate_limit_max_requests - current_count))
        response['X-RateLimit-Reset'] = str(ttl)

        return response
