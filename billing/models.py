"""
billing/models.py -- Domain types for subscription tiers and entitlements.

Pattern: Data class (pure data container, zero logic beyond ordering).
Mirrors auth/models.py -- dataclasses own domain shape; the entitlement
engine and stores do the work.

Tier is a closed enumeration with a total order free < pro < business.
Feature inclusion is monotonic along that order: business has every pro
feature, pro has every free feature.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

# Sentinel ceiling meaning "no limit applies".
UNLIMITED = -1


class Tier(str, Enum):
    FREE = "free"
    PRO = "pro"
    BUSINESS = "business"

    @property
    def rank(self) -> int:
        return _TIER_ORDER.index(self)

    @classmethod
    def parse(cls, value: str | None) -> Tier | None:
        """Return the Tier for value, or None when it is not a known tier."""
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return None


_TIER_ORDER = (Tier.FREE, Tier.PRO, Tier.BUSINESS)


class Feature(str, Enum):
    # Free
    BASIC_TEMPLATES = "basic_templates"
    EMAIL_SUPPORT = "email_support"
    BASIC_CLIENT_MANAGEMENT = "basic_client_management"
    # Pro
    CUSTOM_TEMPLATES = "custom_templates"
    PRIORITY_SUPPORT = "priority_support"
    ADVANCED_REPORTING = "advanced_reporting"
    CLIENT_PORTAL = "client_portal"
    PAYMENT_TRACKING = "payment_tracking"
    # Business
    MULTI_USER = "multi_user"
    API_ACCESS = "api_access"
    CUSTOM_INTEGRATIONS = "custom_integrations"
    DEDICATED_SUPPORT = "dedicated_support"
    WHITE_LABEL = "white_label"


class ResourceKind(str, Enum):
    INVOICE = "invoice"
    CLIENT = "client"


@dataclass(frozen=True)
class SubscriptionRecord:
    """Read-only mirror of the backend subscriber row for one user.

    billing_customer_id is the processor's customer reference (a Stripe
    customer id in production). It is carried for display and support only.
    """

    user_id: str | None
    tier: Tier = Tier.FREE
    subscribed: bool = False
    period_end: str | None = None  # ISO 8601, None for free
    billing_customer_id: str | None = None


def free_subscription(user_id: str | None = None) -> SubscriptionRecord:
    """The default record used when no subscription exists or no user is signed in."""
    return SubscriptionRecord(user_id=user_id)
