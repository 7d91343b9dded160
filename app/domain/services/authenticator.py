"""
Authenticator - verifies the Stripe-Signature header over the raw request
body before anything else looks at the payload.

The signature covers the exact bytes Stripe sent, so the body must not be
parsed (or re-serialized) before verification.
"""
import json

import stripe

from app.core.config import Settings
from app.core.exceptions import WebhookPayloadError, WebhookSignatureError
from app.core.logging import get_logger
from app.domain.events import ProviderEvent

logger = get_logger(__name__)


class WebhookAuthenticator:
    """Turns (raw body, signature header) into a trusted ProviderEvent"""

    def __init__(self, settings: Settings) -> None:
        self._secret = settings.STRIPE_WEBHOOK_SECRET
        self._tolerance = settings.STRIPE_SIGNATURE_TOLERANCE_SECONDS

    def verify(self, raw_body: bytes, signature_header: str | None) -> ProviderEvent:
        """
        Verify and decode one delivery.

        Raises:
            WebhookSignatureError: header missing or signature does not verify
            WebhookPayloadError: verified body is not an event envelope
        """
        if not signature_header:
            logger.warning("Stripe webhook without Stripe-Signature header")
            raise WebhookSignatureError("Missing stripe-signature", missing=True)

        try:
            payload = raw_body.decode("utf-8")
        except UnicodeDecodeError:
            logger.warning("Stripe webhook body is not valid UTF-8")
            raise WebhookSignatureError("Webhook body could not be verified")

        try:
            stripe.WebhookSignature.verify_header(
                payload, signature_header, self._secret, self._tolerance
            )
        except stripe.SignatureVerificationError as e:
            logger.warning(
                "Stripe webhook signature verification failed",
                extra_data={"error": str(e)},
            )
            raise WebhookSignatureError("Webhook signature verification failed")

        return self._decode(payload)

    @staticmethod
    def _decode(payload: str) -> ProviderEvent:
        try:
            envelope = json.loads(payload)
        except json.JSONDecodeError as e:
            raise WebhookPayloadError("Webhook body is not JSON", details={"error": str(e)})

        if not isinstance(envelope, dict):
            raise WebhookPayloadError("Webhook body is not a JSON object")

        event_id = envelope.get("id")
        event_type = envelope.get("type")
        data = envelope.get("data")
        data_object = data.get("object") if isinstance(data, dict) else None

        if not isinstance(event_id, str) or not event_id:
            raise WebhookPayloadError("Event envelope has no id", details={"field": "id"})
        if not isinstance(event_type, str) or not event_type:
            raise WebhookPayloadError("Event envelope has no type", details={"field": "type"})
        if not isinstance(data_object, dict):
            raise WebhookPayloadError(
                "Event envelope has no data.object", details={"field": "data.object"}
            )

        created = envelope.get("created")
        return ProviderEvent(
            id=event_id,
            type=event_type,
            data_object=data_object,
            livemode=bool(envelope.get("livemode", False)),
            created=created if isinstance(created, int) else None,
        )
