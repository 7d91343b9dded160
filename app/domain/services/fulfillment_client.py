"""
Fulfillment Service client - alias issuance, onboarding notification and the
durable order ledger.

Endpoints:
- POST /alias           {email, customerId, notifyUser} -> {alias}
- POST /onboard-notify  {customerId, email, alias, planKey, planName} -> {notificationSent}
- POST /orders          order snapshot -> opaque acknowledgement

Every call is bounded by FULFILLMENT_TIMEOUT_SECONDS, retried on transient
statuses / network errors with exponential backoff, and wrapped in a circuit
breaker. Raises FulfillmentError when all attempts fail.
"""
from __future__ import annotations

import asyncio
from typing import Any, Optional

import httpx

from app.core.circuit_breaker import CircuitBreaker, CircuitBreakerConfig
from app.core.config import Settings
from app.core.exceptions import FulfillmentError, ServiceTimeoutError
from app.core.logging import get_logger, log_async_operation
from app.core.validation import EmailValidator
from app.domain.records import OrderSnapshot

logger = get_logger(__name__)


class FulfillmentClient:
    def __init__(
        self,
        settings: Settings,
        circuit_breaker: CircuitBreaker | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = settings.FULFILLMENT_BASE_URL
        self._api_key = settings.FULFILLMENT_API_KEY
        self._contract = settings.FULFILLMENT_CONTRACT
        self._onboarding_secret = settings.onboarding_secret
        self._timeout = settings.FULFILLMENT_TIMEOUT_SECONDS
        self._max_retries = settings.FULFILLMENT_MAX_RETRIES
        self._backoff_base = settings.FULFILLMENT_RETRY_BACKOFF_SECONDS
        self._transient_status_codes = settings.transient_status_codes
        self._transport = transport
        self._circuit_breaker = circuit_breaker or CircuitBreaker(
            "fulfillment",
            CircuitBreakerConfig(
                failure_threshold=settings.FULFILLMENT_CB_FAILURE_THRESHOLD,
                timeout_seconds=settings.FULFILLMENT_CB_RESET_SECONDS,
            ),
            counts_as_failure=_is_upstream_failure,
        )

    @property
    def has_onboarding_secret(self) -> bool:
        return self._onboarding_secret is not None

    @property
    def circuit_breaker(self) -> CircuitBreaker:
        return self._circuit_breaker

    def _headers(self, idempotency_key: Optional[str], with_onboarding_secret: bool) -> dict[str, str]:
        headers = {
            "x-api-key": self._api_key,
            "x-ng-contract": self._contract,
        }
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key
        if with_onboarding_secret and self._onboarding_secret:
            headers["x-onboarding-secret"] = self._onboarding_secret
        return headers

    async def _request_with_retry(
        self,
        endpoint: str,
        payload: dict[str, Any],
        headers: dict[str, str],
    ) -> dict[str, Any]:
        """POST with retry and exponential backoff. Returns the decoded JSON body."""
        url = f"{self._base_url}/{endpoint}"

        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            for attempt in range(self._max_retries):
                last_attempt = attempt == self._max_retries - 1
                backoff = self._backoff_base * (2 ** attempt)
                try:
                    response = await client.post(url, json=payload, headers=headers)
                except httpx.TimeoutException:
                    if not last_attempt:
                        logger.warning(
                            f"Fulfillment /{endpoint} timeout, retrying",
                            extra_data={"attempt": attempt + 1, "backoff_seconds": backoff},
                        )
                        await asyncio.sleep(backoff)
                        continue
                    raise ServiceTimeoutError("fulfillment", self._timeout)
                except httpx.RequestError as exc:
                    if not last_attempt:
                        logger.warning(
                            f"Fulfillment /{endpoint} network error, retrying",
                            extra_data={
                                "error": str(exc),
                                "attempt": attempt + 1,
                                "backoff_seconds": backoff,
                            },
                        )
                        await asyncio.sleep(backoff)
                        continue
                    raise FulfillmentError(
                        message=f"/{endpoint} network error: {str(exc)}",
                        details={"network_error": True, "attempts": self._max_retries},
                    )

                if 200 <= response.status_code < 300:
                    return _json_body(response)

                if response.status_code in self._transient_status_codes and not last_attempt:
                    logger.warning(
                        f"Transient Fulfillment /{endpoint} error, retrying",
                        extra_data={
                            "status_code": response.status_code,
                            "attempt": attempt + 1,
                            "max_retries": self._max_retries,
                            "backoff_seconds": backoff,
                        },
                    )
                    await asyncio.sleep(backoff)
                    continue

                raise FulfillmentError.from_response(endpoint, response)

        raise FulfillmentError(message=f"/{endpoint} exhausted retries")

    async def _post(
        self,
        endpoint: str,
        payload: dict[str, Any],
        *,
        idempotency_key: Optional[str] = None,
        with_onboarding_secret: bool = False,
    ) -> dict[str, Any]:
        headers = self._headers(idempotency_key, with_onboarding_secret)

        async def _send() -> dict[str, Any]:
            return await self._request_with_retry(endpoint, payload, headers)

        return await self._circuit_breaker.execute(_send)

    @log_async_operation("fulfillment.create_alias")
    async def create_alias(
        self,
        email: str,
        customer_id: str,
        notify_user: bool,
        idempotency_key: str,
    ) -> str:
        body = await self._post(
            "alias",
            {"email": email, "customerId": customer_id, "notifyUser": notify_user},
            idempotency_key=idempotency_key,
        )
        alias = body.get("alias")
        if not isinstance(alias, str) or not alias:
            raise FulfillmentError(
                message="alias response has no alias",
                details={"operation": "alias", "email": EmailValidator.mask(email)},
            )
        return alias

    @log_async_operation("fulfillment.onboard_notify")
    async def onboard_notify(
        self,
        customer_id: str,
        email: str,
        alias: str,
        plan_key: Optional[str],
        plan_name: Optional[str],
    ) -> bool:
        body = await self._post(
            "onboard-notify",
            {
                "customerId": customer_id,
                "email": email,
                "alias": alias,
                "planKey": plan_key,
                "planName": plan_name,
            },
            idempotency_key=f"onboard-{customer_id}",
            with_onboarding_secret=True,
        )
        return bool(body.get("notificationSent"))

    @log_async_operation("fulfillment.upsert_order")
    async def upsert_order(self, snapshot: OrderSnapshot) -> dict[str, Any]:
        return await self._post(
            "orders",
            snapshot.model_dump(by_alias=True, mode="json"),
            idempotency_key=f"order-{snapshot.event_id}",
        )


def _json_body(response: httpx.Response) -> dict[str, Any]:
    """Decoded JSON object, or {} for empty / non-JSON / non-object bodies."""
    if not response.content:
        return {}
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def _is_upstream_failure(exc: Exception) -> bool:
    """A 4xx rejection means the service answered; it does not trip the breaker."""
    if isinstance(exc, FulfillmentError):
        status_code = exc.details.get("status_code")
        if isinstance(status_code, int) and 400 <= status_code < 500 and status_code not in (408, 429):
            return False
    return True
