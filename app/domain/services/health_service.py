"""
Health checks for the webhook service.

Two levels:
- liveness: the process answers (no dependency checks)
- readiness: Redis answers PING; the fulfillment circuit state is reported
  for visibility but does not fail the check, since an open circuit only
  degrades best-effort steps until it resets
"""
from typing import Any, Optional

import redis.asyncio as aioredis

from app.core.circuit_breaker import CircuitBreaker
from app.core.logging import get_logger

logger = get_logger(__name__)

_STATUS_HEALTHY = "healthy"
_STATUS_DEGRADED = "degraded"

_CHECK_OK = "ok"

# Sanitized messages, no infrastructure details
_ERROR_REDIS = "error: redis_unavailable"


async def _check_redis(client: Optional[aioredis.Redis]) -> str:
    """PING the durable store."""
    if client is None:
        return _ERROR_REDIS
    try:
        await client.ping()
        return _CHECK_OK
    except Exception as e:
        logger.warning("Redis health check failed", extra_data={"error": str(e)})
        return _ERROR_REDIS


async def check_readiness(
    client: Optional[aioredis.Redis],
    fulfillment_breaker: Optional[CircuitBreaker] = None,
) -> dict[str, Any]:
    """
    Readiness check body.

    - status: "healthy" when Redis answers, "degraded" otherwise
    - redis: "ok" or "error: ..."
    - fulfillment_circuit: closed / open / half_open (when a client exists)
    """
    redis_status = await _check_redis(client)
    result: dict[str, Any] = {
        "status": _STATUS_HEALTHY if redis_status == _CHECK_OK else _STATUS_DEGRADED,
        "redis": redis_status,
    }
    if fulfillment_breaker is not None:
        result["fulfillment_circuit"] = fulfillment_breaker.state.value

    if result["status"] != _STATUS_HEALTHY:
        logger.warning("Readiness check degraded", extra_data=result)
    return result
