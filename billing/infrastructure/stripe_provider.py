"""
Stripe implementation of the BillingProvider port.

Stripe calls are blocking; they run in worker threads through
`sync_to_async`. Provider objects are converted to plain dictionaries
and narrowed to billing snapshots before leaving this module.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

import stripe
from asgiref.sync import sync_to_async
from django.conf import settings

from billing.domain.snapshots import (
    CheckoutRequest,
    CheckoutSnapshot,
    CustomerSnapshot,
    PriceSnapshot,
    SessionSnapshot,
    SubscriptionSnapshot,
    plan_hint_from,
)
from billing.ports.billing_provider import BillingProvider
from core.domain.exceptions import (
    BillingProviderError,
    ProviderResourceMissingError,
    TransientProviderError,
)
from core.domain.value_objects import Plan, SubscriptionStatus
from plans.domain.plan import PlanDefinition

logger = logging.getLogger(__name__)

CURRENCY = "usd"
PAID_SESSION_STATUSES = ("paid", "no_payment_required")


def to_plain(value: Any) -> Any:
    """Convert Stripe objects (and nested ones) to plain dicts and lists."""
    if isinstance(value, dict):
        return {key: to_plain(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_plain(item) for item in value]
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        return to_plain(to_dict())
    return value


def from_timestamp(value) -> Optional[datetime]:
    """Convert a Unix timestamp to an aware UTC datetime."""
    if value is None:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


def to_timestamp(value: Union[datetime, str]) -> Union[int, str]:
    """Convert a datetime to a Unix timestamp; strings like "now" pass through."""
    if isinstance(value, datetime):
        return int(value.timestamp())
    return value


def ref_of(value) -> Optional[str]:
    """Return the id of an expandable field, expanded or not."""
    if isinstance(value, dict):
        return value.get("id")
    return value


def subscription_snapshot(data: Dict[str, Any]) -> SubscriptionSnapshot:
    """
    Narrow a subscription payload.

    The plan hint prefers subscription metadata, which plan changes
    update, over the metadata of the subscribed price. Period boundaries
    are read from the subscription or, on newer API versions, its first item.
    """
    items = (data.get("items") or {}).get("data") or []
    first_item = items[0] if items else {}
    price_metadata = (first_item.get("price") or {}).get("metadata") or {}
    metadata = {key: str(value) for key, value in (data.get("metadata") or {}).items()}

    return SubscriptionSnapshot(
        subscription_ref=data["id"],
        status=SubscriptionStatus.from_provider(data.get("status")),
        customer_ref=ref_of(data.get("customer")),
        current_period_start=from_timestamp(
            data.get("current_period_start") or first_item.get("current_period_start")
        ),
        current_period_end=from_timestamp(
            data.get("current_period_end") or first_item.get("current_period_end")
        ),
        cancel_at_period_end=bool(data.get("cancel_at_period_end")),
        plan_hint=plan_hint_from(metadata.get("planId")) or plan_hint_from(price_metadata.get("planId")),
        created_at=from_timestamp(data.get("created")),
        metadata=metadata,
    )


def session_snapshot(data: Dict[str, Any]) -> SessionSnapshot:
    """Narrow a checkout session payload."""
    metadata = {key: str(value) for key, value in (data.get("metadata") or {}).items()}
    customer_details = data.get("customer_details") or {}
    email = customer_details.get("email") or data.get("customer_email") or metadata.get("email")

    return SessionSnapshot(
        session_ref=data["id"],
        paid=data.get("payment_status") in PAID_SESSION_STATUSES,
        created_at=from_timestamp(data.get("created")),
        plan_hint=plan_hint_from(metadata.get("planId")),
        customer_email=email,
        customer_ref=ref_of(data.get("customer")),
        subscription_ref=ref_of(data.get("subscription")),
        mode=data.get("mode") or "payment",
        amount_total=data.get("amount_total"),
        currency=data.get("currency"),
        metadata=metadata,
    )


def customer_snapshot(data: Dict[str, Any]) -> CustomerSnapshot:
    """Narrow a customer payload."""
    if data.get("deleted"):
        raise ProviderResourceMissingError(f"Customer {data.get('id')} was deleted")
    return CustomerSnapshot(
        customer_ref=data["id"],
        email=data.get("email"),
        metadata={key: str(value) for key, value in (data.get("metadata") or {}).items()},
    )


class StripeBillingProvider(BillingProvider):
    """
    Stripe billing provider.

    Prices are looked up once per plan and price, then cached on the
    instance.
    """

    def __init__(
        self,
        secret_key: str,
        api_version: Optional[str] = None,
        timeout: float = 10,
        max_retries: int = 2,
        price_ids: Optional[Dict[Plan, str]] = None,
    ):
        """
        Configure the Stripe client.

        Args:
            secret_key: Stripe secret API key
            api_version: Pinned Stripe API version
            timeout: Per-request network timeout in seconds
            max_retries: Network retries performed by the Stripe client
            price_ids: Preconfigured price ids per plan
        """
        stripe.api_key = secret_key
        if api_version:
            stripe.api_version = api_version
        stripe.max_network_retries = max_retries
        stripe.default_http_client = stripe.RequestsClient(timeout=timeout)
        self.price_ids = price_ids or {}
        self._price_cache: Dict[tuple, PriceSnapshot] = {}

    async def _call(self, operation: str, func, *args, **kwargs) -> Dict[str, Any]:
        """
        Run a blocking Stripe call and convert its result.

        Raises:
            ProviderResourceMissingError: Stripe has no such object
            TransientProviderError: Network, rate limit or Stripe server errors
            BillingProviderError: Any other Stripe error
        """
        try:
            result = await sync_to_async(func, thread_sensitive=False)(*args, **kwargs)
        except stripe.InvalidRequestError as e:
            if e.code == "resource_missing":
                raise ProviderResourceMissingError(f"Stripe {operation}: {e.user_message or e}") from e
            logger.warning("Stripe rejected %s: %s", operation, e)
            raise BillingProviderError(f"Stripe {operation} failed: {e.user_message or e}") from e
        except (stripe.APIConnectionError, stripe.RateLimitError, stripe.APIError) as e:
            logger.warning("Stripe unavailable during %s: %s", operation, e)
            raise TransientProviderError(f"Stripe {operation} failed: {e}") from e
        except stripe.StripeError as e:
            logger.error("Stripe error during %s: %s", operation, e)
            raise BillingProviderError(f"Stripe {operation} failed: {e.user_message or e}") from e
        return to_plain(result)

    async def create_customer(
        self, email: str, name: str = "", metadata: Optional[Dict[str, str]] = None
    ) -> CustomerSnapshot:
        params = {"email": email, "metadata": metadata or {}}
        if name:
            params["name"] = name
        data = await self._call("customer create", stripe.Customer.create, **params)
        logger.info("Created Stripe customer %s for %s", data["id"], email)
        return customer_snapshot(data)

    async def retrieve_customer(self, customer_ref: str) -> CustomerSnapshot:
        data = await self._call("customer retrieve", stripe.Customer.retrieve, customer_ref)
        return customer_snapshot(data)

    async def update_customer_metadata(
        self, customer_ref: str, metadata: Dict[str, str]
    ) -> CustomerSnapshot:
        data = await self._call(
            "customer update", stripe.Customer.modify, customer_ref, metadata=metadata
        )
        return customer_snapshot(data)

    def _price_matches(self, price: Dict[str, Any], plan: PlanDefinition) -> bool:
        recurring = price.get("recurring") or {}
        if plan.recurring != bool(recurring):
            return False
        if plan.recurring and recurring.get("interval") != "month":
            return False
        return price.get("unit_amount") == plan.unit_amount and price.get("currency") == CURRENCY

    async def _configured_price(self, plan: PlanDefinition) -> Optional[PriceSnapshot]:
        price_ref = self.price_ids.get(plan.id)
        if not price_ref:
            return None
        price = await self._call("price retrieve", stripe.Price.retrieve, price_ref)
        if bool(price.get("recurring")) != plan.recurring:
            logger.warning(
                "Configured price %s for plan %s has the wrong billing cadence, ignoring it",
                price_ref,
                plan.id.value,
            )
            return None
        return PriceSnapshot(
            price_ref=price["id"],
            product_ref=ref_of(price.get("product")),
            unit_amount=price.get("unit_amount") or 0,
            recurring=plan.recurring,
        )

    async def _find_or_create_product(self, plan: PlanDefinition) -> str:
        products = await self._call("product list", stripe.Product.list, active=True, limit=100)
        for product in products.get("data") or []:
            if (product.get("metadata") or {}).get("planId") == plan.id.value:
                return product["id"]

        product = await self._call(
            "product create",
            stripe.Product.create,
            name=f"Entitlement Service - {plan.label}",
            description=plan.description,
            metadata={"planId": plan.id.value},
        )
        logger.info("Created Stripe product %s for plan %s", product["id"], plan.id.value)
        return product["id"]

    async def find_or_create_price(self, plan: PlanDefinition) -> PriceSnapshot:
        """
        Find or create the price for a plan.

        A configured price id wins when its cadence matches the plan.
        Otherwise an active price on the plan's product with the same
        amount and cadence is reused, or a new one is created.
        """
        cache_key = (plan.id, plan.unit_amount)
        if cache_key in self._price_cache:
            return self._price_cache[cache_key]

        snapshot = await self._configured_price(plan)
        if snapshot is None:
            product_ref = await self._find_or_create_product(plan)
            prices = await self._call(
                "price list", stripe.Price.list, product=product_ref, active=True, limit=100
            )
            price = next(
                (item for item in prices.get("data") or [] if self._price_matches(item, plan)),
                None,
            )
            if price is None:
                params = {
                    "product": product_ref,
                    "unit_amount": plan.unit_amount,
                    "currency": CURRENCY,
                    "metadata": {"planId": plan.id.value},
                }
                if plan.recurring:
                    params["recurring"] = {"interval": "month"}
                price = await self._call("price create", stripe.Price.create, **params)
                logger.info("Created Stripe price %s for plan %s", price["id"], plan.id.value)
            snapshot = PriceSnapshot(
                price_ref=price["id"],
                product_ref=product_ref,
                unit_amount=price.get("unit_amount") or plan.unit_amount,
                recurring=plan.recurring,
            )

        self._price_cache[cache_key] = snapshot
        return snapshot

    async def create_checkout_session(self, request: CheckoutRequest) -> CheckoutSnapshot:
        if request.price_ref:
            line_item = {"price": request.price_ref, "quantity": 1}
        else:
            line_item = {
                "price_data": {
                    "currency": CURRENCY,
                    "unit_amount": request.amount,
                    "product_data": {"name": request.product_name or "Entitlement Service"},
                },
                "quantity": 1,
            }

        params = {
            "mode": request.mode,
            "line_items": [line_item],
            "success_url": request.success_url,
            "cancel_url": request.cancel_url,
            "metadata": request.metadata,
        }
        if request.customer_ref:
            params["customer"] = request.customer_ref
        elif request.customer_email:
            params["customer_email"] = request.customer_email
        if request.mode == "subscription":
            subscription_data = {"metadata": request.subscription_metadata or request.metadata}
            if request.trial_period_days:
                subscription_data["trial_period_days"] = request.trial_period_days
            params["subscription_data"] = subscription_data

        data = await self._call("checkout session create", stripe.checkout.Session.create, **params)
        return CheckoutSnapshot(session_ref=data["id"], url=data.get("url"))

    async def retrieve_session(self, session_ref: str) -> SessionSnapshot:
        data = await self._call(
            "checkout session retrieve", stripe.checkout.Session.retrieve, session_ref
        )
        return session_snapshot(data)

    async def retrieve_subscription(self, subscription_ref: str) -> SubscriptionSnapshot:
        data = await self._call(
            "subscription retrieve", stripe.Subscription.retrieve, subscription_ref
        )
        return subscription_snapshot(data)

    async def update_subscription(
        self,
        subscription_ref: str,
        metadata: Optional[Dict[str, str]] = None,
        cancel_at_period_end: Optional[bool] = None,
        trial_end: Optional[Union[datetime, str]] = None,
    ) -> SubscriptionSnapshot:
        params = {}
        if metadata is not None:
            params["metadata"] = metadata
        if cancel_at_period_end is not None:
            params["cancel_at_period_end"] = cancel_at_period_end
        if trial_end is not None:
            params["trial_end"] = to_timestamp(trial_end)

        data = await self._call(
            "subscription update", stripe.Subscription.modify, subscription_ref, **params
        )
        return subscription_snapshot(data)

    async def cancel_subscription(self, subscription_ref: str) -> SubscriptionSnapshot:
        data = await self._call("subscription cancel", stripe.Subscription.cancel, subscription_ref)
        logger.info("Canceled Stripe subscription %s", subscription_ref)
        return subscription_snapshot(data)


def is_billing_configured() -> bool:
    """Billing is configured when both Stripe keys are set."""
    return bool(
        getattr(settings, "STRIPE_SECRET_KEY", "") and getattr(settings, "STRIPE_PUBLISHABLE_KEY", "")
    )


def build_billing_provider() -> Optional[StripeBillingProvider]:
    """
    Build the Stripe provider from Django settings.

    Returns:
        StripeBillingProvider, or None when billing is not configured
    """
    if not is_billing_configured():
        logger.warning("Stripe keys are not configured; billing features are disabled")
        return None

    price_ids = {}
    if settings.STRIPE_PRICE_MONTHLY:
        price_ids[Plan.MONTHLY] = settings.STRIPE_PRICE_MONTHLY
    if settings.STRIPE_PRICE_LIFETIME:
        price_ids[Plan.LIFETIME] = settings.STRIPE_PRICE_LIFETIME

    return StripeBillingProvider(
        secret_key=settings.STRIPE_SECRET_KEY,
        api_version=settings.STRIPE_API_VERSION or None,
        timeout=settings.BILLING_PROVIDER_TIMEOUT,
        max_retries=settings.BILLING_PROVIDER_MAX_RETRIES,
        price_ids=price_ids,
    )
