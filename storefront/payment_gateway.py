"""Payment gateway capability used by the checkout flow.

``build_payment_gateway`` picks the implementation once at startup: a
Stripe-backed gateway when ``STRIPE_SECRET_KEY`` is set, otherwise one that
refuses every call so misconfiguration surfaces as a checkout error.
"""
import logging
from dataclasses import dataclass, field
from typing import Optional

import stripe

from storefront import config
from storefront.exceptions import GatewayNotConfiguredError

logger = logging.getLogger(__name__)


@dataclass
class GatewaySession:
    id: str
    url: Optional[str] = None
    payment_status: Optional[str] = None
    amount_total: Optional[int] = None
    metadata: dict = field(default_factory=dict)


def _plain_metadata(metadata) -> dict:
    if not metadata:
        return {}
    if hasattr(metadata, "to_dict"):
        metadata = metadata.to_dict()
    return {str(k): v for k, v in dict(metadata).items()}


def _to_session(obj) -> GatewaySession:
    return GatewaySession(
        id=obj.id,
        url=getattr(obj, "url", None),
        payment_status=getattr(obj, "payment_status", None),
        amount_total=getattr(obj, "amount_total", None),
        metadata=_plain_metadata(getattr(obj, "metadata", None)),
    )


class PaymentGateway:

    def create_session(self, params: dict) -> GatewaySession:
        raise NotImplementedError

    def retrieve_session(self, session_id: str) -> GatewaySession:
        raise NotImplementedError

    def create_percent_discount(self, percent: int, name: str) -> str:
        raise NotImplementedError


class StripeGateway(PaymentGateway):

    def __init__(self, api_key: str,
                 timeout: int = config.STRIPE_TIMEOUT_SECONDS,
                 max_network_retries: int = config.STRIPE_MAX_NETWORK_RETRIES,
                 client=None):
        self.client = client or stripe.StripeClient(
            api_key,
            http_client=stripe.new_default_http_client(timeout=timeout),
            max_network_retries=max_network_retries,
        )

    def create_session(self, params: dict) -> GatewaySession:
        session = self.client.checkout.sessions.create(params=params)
        logger.info("Stripe session created: %s (amount_total=%s)",
                    session.id, getattr(session, "amount_total", None))
        return _to_session(session)

    def retrieve_session(self, session_id: str) -> GatewaySession:
        session = self.client.checkout.sessions.retrieve(session_id)
        return _to_session(session)

    def create_percent_discount(self, percent: int, name: str) -> str:
        coupon = self.client.coupons.create(params={
            "percent_off": percent,
            "duration": "once",
            "name": name,
        })
        return coupon.id


class UnconfiguredGateway(PaymentGateway):

    def _refuse(self, operation):
        logger.error("STRIPE NOT CONFIGURED: attempted to %s", operation)
        raise GatewayNotConfiguredError(operation)

    def create_session(self, params: dict) -> GatewaySession:
        self._refuse("create checkout session")

    def retrieve_session(self, session_id: str) -> GatewaySession:
        self._refuse("retrieve checkout session")

    def create_percent_discount(self, percent: int, name: str) -> str:
        self._refuse("create coupon")


def build_payment_gateway(api_key: Optional[str] = None) -> PaymentGateway:
    api_key = config.STRIPE_SECRET_KEY if api_key is None else api_key.strip()
    if not api_key:
        logger.error("STRIPE_SECRET_KEY is not set; payment gateway disabled")
        return UnconfiguredGateway()
    if not api_key.startswith(("sk_test_", "sk_live_", "rk_test_", "rk_live_")):
        logger.warning("Stripe key doesn't start with 'sk_test_' or 'sk_live_'")
    return StripeGateway(api_key)
