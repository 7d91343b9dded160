"""
Smoke tests for a deployed instance.

Runs lightweight HTTP checks against a running app:
- GET /health
- POST /api/stripe/webhook with a signed synthetic event

The synthetic event uses an event type the service does not act on, so the
run touches no customer record and calls no downstream service. It only
proves that the route is up and the signing secret matches.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import os
import sys
import time
import uuid
from pathlib import Path

import httpx

# Allow running from any directory (e.g. `python scripts/smoke_webhook.py`)
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from app.core.logging import get_logger, setup_logging  # noqa: E402


logger = get_logger(__name__)


def _base_url() -> str:
    port = os.environ.get("PORT", "8000")
    return os.environ.get("BASE_URL", f"http://127.0.0.1:{port}").rstrip("/")


def _timeout_seconds() -> float:
    return float(os.environ.get("SMOKE_TIMEOUT_SECONDS", "10"))


def _event_payload() -> str:
    return json.dumps({
        "id": f"evt_smoke_{uuid.uuid4().hex[:12]}",
        "object": "event",
        "type": "smoke.ping",
        "livemode": False,
        "created": int(time.time()),
        "data": {"object": {"id": "smoke"}},
    })


def _signature(payload: str, secret: str) -> str:
    timestamp = int(time.time())
    signed = f"{timestamp}.{payload}".encode()
    digest = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


def _check_status(resp: httpx.Response, expected_family: int = 2) -> None:
    family = resp.status_code // 100
    if family != expected_family:
        raise RuntimeError(
            f"Unexpected status {resp.status_code} for {resp.request.method} {resp.request.url}. "
            f"Body: {(resp.text or '')[:500]}"
        )


def main() -> None:
    setup_logging(level="INFO", json_format=False, app_name="access-reconciler-smoke")

    secret = os.environ.get("STRIPE_WEBHOOK_SECRET", "")
    if not secret:
        raise SystemExit("STRIPE_WEBHOOK_SECRET must be set to sign the smoke event")

    base_url = _base_url()
    timeout = _timeout_seconds()

    logger.info("Starting smoke tests", extra_data={"base_url": base_url, "timeout_seconds": timeout})

    with httpx.Client(timeout=timeout) as client:
        health_url = f"{base_url}/health"
        logger.info("Checking health endpoint", extra_data={"url": health_url})
        resp = client.get(health_url)
        _check_status(resp, expected_family=2)

        webhook_url = f"{base_url}/api/stripe/webhook"
        payload = _event_payload()
        logger.info("Posting signed stripe webhook", extra_data={"url": webhook_url})
        resp = client.post(
            webhook_url,
            content=payload.encode(),
            headers={"Stripe-Signature": _signature(payload, secret), "Content-Type": "application/json"},
        )
        _check_status(resp, expected_family=2)
        logger.info("Webhook accepted", extra_data={"outcome": resp.json().get("outcome")})

    logger.info("Smoke tests completed successfully")


if __name__ == "__main__":
    main()
