"""
Tests for e-mail handling and provider reference extraction
"""
import pytest

from app.core.validation import EmailValidator, provider_ref


class TestEmailValidator:

    @pytest.mark.unit
    def test_clean_keeps_case(self):
        assert EmailValidator.clean("  Alice@Example.COM ") == "Alice@Example.COM"
        assert EmailValidator.clean("   ") is None
        assert EmailValidator.clean(None) is None

    @pytest.mark.unit
    def test_normalize(self):
        assert EmailValidator.normalize("  Alice@Example.COM ") == "alice@example.com"
        assert EmailValidator.normalize("   ") is None
        assert EmailValidator.normalize(None) is None

    @pytest.mark.unit
    def test_mask(self):
        assert EmailValidator.mask("alice@example.com") == "a****@example.com"
        assert EmailValidator.mask(None) == "****"
        assert EmailValidator.mask("broken") == "****"

    @pytest.mark.unit
    def test_mask_in_text(self):
        masked = EmailValidator.mask_in_text("/api/x/alice@example.com/y and bob@test.io")

        assert masked == "/api/x/a****@example.com/y and b****@test.io"


class TestProviderRef:

    @pytest.mark.unit
    @pytest.mark.parametrize("value, expected", [
        ("cus_1", "cus_1"),
        ({"id": "cus_2", "object": "customer"}, "cus_2"),
        ({"object": "customer"}, None),
        ("", None),
        (None, None),
        (42, None),
    ])
    def test_provider_ref(self, value, expected):
        assert provider_ref(value) == expected
