"""
Application Configuration
"""
import json
from functools import lru_cache
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings

# Stripe price -> plan defaults for the First Flame tier
FIRSTFLAME_TIER = "firstflame"
FIRSTFLAME_INDIVIDUAL_KEY = "firstflame_individual"
FIRSTFLAME_INDIVIDUAL_NAME = "First Flame: Individual"
FIRSTFLAME_PAIR_KEY = "firstflame_pair"
FIRSTFLAME_PAIR_NAME = "First Flame: Household Pair"


class PricePlan(BaseModel):
    """One row of the static price table."""

    tier: str
    plan_key: str = Field(alias="planKey")
    plan_name: str = Field(alias="planName")

    model_config = {"populate_by_name": True}


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    APP_NAME: str = "Access Reconciler"
    DEBUG: bool = False

    # Redis: keyed durable store for event locks, customer records, onboarding markers
    REDIS_URL: str = "redis://localhost:6379/0"

    # Event lock lifetimes
    EVENT_PROCESSING_TTL_SECONDS: int = 600  # 10 minutes
    EVENT_DONE_TTL_SECONDS: int = 30 * 24 * 3600  # 30 days

    # Stripe
    STRIPE_SECRET_KEY: str = ""
    STRIPE_WEBHOOK_SECRET: str = ""
    STRIPE_SIGNATURE_TOLERANCE_SECONDS: int = 300
    STRIPE_TIMEOUT_SECONDS: float = 10.0

    # Price table
    STRIPE_PRICE_ID_FIRSTFLAME_INDIVIDUAL: str = ""
    STRIPE_PRICE_ID_FIRSTFLAME_PAIR: str = ""
    # JSON object: {"price_xxx": {"tier": "...", "planKey": "...", "planName": "..."}}
    EXTRA_PRICE_PLANS: dict[str, PricePlan] = {}

    # Fulfillment Service (alias issuance, onboarding notification, order ledger)
    FULFILLMENT_BASE_URL: str = ""
    FULFILLMENT_API_KEY: str = ""
    FULFILLMENT_ONBOARDING_SECRET: str = ""
    FULFILLMENT_CONTRACT: str = "v1"
    FULFILLMENT_TIMEOUT_SECONDS: float = 10.0
    # Attempts per call, including the first one
    FULFILLMENT_MAX_RETRIES: int = 3
    # Base delay, multiplied by 2**attempt
    FULFILLMENT_RETRY_BACKOFF_SECONDS: float = 0.5
    FULFILLMENT_TRANSIENT_STATUS_CODES: str = "502,503,504,429"
    # Circuit breaker around the Fulfillment Service
    FULFILLMENT_CB_FAILURE_THRESHOLD: int = 5
    FULFILLMENT_CB_RESET_SECONDS: float = 30.0

    # Customer export endpoint
    CUSTOMERS_EXPORT_KEY: str = ""

    @field_validator("FULFILLMENT_BASE_URL", mode="before")
    @classmethod
    def normalize_fulfillment_url(cls, v: str) -> str:
        """Strip trailing slashes so endpoint paths can be appended directly"""
        return (v or "").strip().rstrip("/")

    @field_validator("EXTRA_PRICE_PLANS", mode="before")
    @classmethod
    def parse_extra_price_plans(cls, v: Any) -> Any:
        """Accept an empty string as "no extra plans" (unset env vars on some hosts)"""
        if v is None or (isinstance(v, str) and not v.strip()):
            return {}
        if isinstance(v, str):
            return json.loads(v)
        return v

    @field_validator(
        "EVENT_PROCESSING_TTL_SECONDS",
        "EVENT_DONE_TTL_SECONDS",
        mode="after",
    )
    @classmethod
    def validate_positive_ttl(cls, v: int) -> int:
        """A non-positive TTL makes SET EX fail and would break every webhook"""
        if v < 1:
            raise ValueError("TTL values must be at least 1 second")
        return v

    @field_validator("FULFILLMENT_MAX_RETRIES", mode="after")
    @classmethod
    def validate_max_retries(cls, v: int) -> int:
        if v < 1:
            raise ValueError("FULFILLMENT_MAX_RETRIES must be at least 1")
        return v

    @property
    def transient_status_codes(self) -> set[int]:
        return {
            int(code.strip())
            for code in self.FULFILLMENT_TRANSIENT_STATUS_CODES.split(",")
            if code.strip()
        }

    def price_plan_table(self) -> dict[str, PricePlan]:
        """Price id -> plan mapping, First Flame defaults first, extras override."""
        table: dict[str, PricePlan] = {}
        if self.STRIPE_PRICE_ID_FIRSTFLAME_INDIVIDUAL:
            table[self.STRIPE_PRICE_ID_FIRSTFLAME_INDIVIDUAL] = PricePlan(
                tier=FIRSTFLAME_TIER,
                plan_key=FIRSTFLAME_INDIVIDUAL_KEY,
                plan_name=FIRSTFLAME_INDIVIDUAL_NAME,
            )
        if self.STRIPE_PRICE_ID_FIRSTFLAME_PAIR:
            table[self.STRIPE_PRICE_ID_FIRSTFLAME_PAIR] = PricePlan(
                tier=FIRSTFLAME_TIER,
                plan_key=FIRSTFLAME_PAIR_KEY,
                plan_name=FIRSTFLAME_PAIR_NAME,
            )
        table.update(self.EXTRA_PRICE_PLANS)
        return table

    def missing_webhook_config(self) -> list[str]:
        """Names of required settings that are empty; the webhook cannot run without them."""
        required = {
            "STRIPE_WEBHOOK_SECRET": self.STRIPE_WEBHOOK_SECRET,
            "STRIPE_SECRET_KEY": self.STRIPE_SECRET_KEY,
            "FULFILLMENT_BASE_URL": self.FULFILLMENT_BASE_URL,
            "FULFILLMENT_API_KEY": self.FULFILLMENT_API_KEY,
        }
        return [name for name, value in required.items() if not value]

    @property
    def onboarding_secret(self) -> Optional[str]:
        return self.FULFILLMENT_ONBOARDING_SECRET or None

    class Config:
        env_file = ".env"
        case_sensitive = True
        env_ignore_empty = True


@lru_cache
def get_settings() -> Settings:
    """Build the settings object once per process."""
    return Settings()
