"""
Input Validation Utilities

Normalization and masking of identifiers that arrive in provider payloads:
- E-mail addresses (storage keys are lowercased)
- Provider object ids (customer / subscription / price references)
"""
import re
from typing import Any


class ValidationPatterns:
    """Regex patterns for validation"""

    # Anything that looks like an e-mail inside a larger string (URL paths, log text)
    EMAIL_IN_TEXT = re.compile(r"([A-Za-z0-9._%+-])[A-Za-z0-9._%+-]*@([A-Za-z0-9.-]+)")


class EmailValidator:
    """E-mail normalization and masking"""

    @staticmethod
    def clean(email: str | None) -> str | None:
        """Stripped address with its case preserved, or None for empty input"""
        if not email or not isinstance(email, str):
            return None
        return email.strip() or None

    @staticmethod
    def normalize(email: str | None) -> str | None:
        """
        Normalize an e-mail for use as a storage key.

        Returns:
            Lowercased, stripped address, or None for empty input
        """
        cleaned = EmailValidator.clean(email)
        return cleaned.lower() if cleaned else None

    @staticmethod
    def mask(email: str | None) -> str:
        """
        Mask an e-mail for logging (privacy).

        Returns:
            Masked address (e.g., a****@example.com)
        """
        if not email or "@" not in email:
            return "****"
        local, domain = email.split("@", 1)
        return f"{local[:1]}****@{domain}"

    @staticmethod
    def mask_in_text(text: str) -> str:
        """Mask every e-mail-shaped substring."""
        return ValidationPatterns.EMAIL_IN_TEXT.sub(r"\1****@\2", text)


def provider_ref(value: Any) -> str | None:
    """
    Extract an object id from a provider reference.

    Stripe expands references on demand, so a field such as ``customer`` is
    either the bare id string, an expanded object with an ``id``, or null.
    """
    if isinstance(value, str):
        return value or None
    if isinstance(value, dict):
        ref = value.get("id")
        return ref if isinstance(ref, str) and ref else None
    return None
