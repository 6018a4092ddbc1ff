"""Transformation of Stripe catalog and subscription data into Bunny imports."""

import re
import time
import logging
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, List, Optional, Tuple

from .validator import epoch_to_iso
from ..models.record import SkippedRecord, TransformOutcome
from ..models.schema import (
    INFINITE_TIER_END,
    BillingPeriod,
    ChargeType,
    FeatureKind,
    ImportCharge,
    ImportDocument,
    ImportFeature,
    ImportPlan,
    ImportPriceList,
    ImportProduct,
    ImportTier,
    PricingModel,
)
from ..models.subscription import (
    BillingContact,
    InlineAccount,
    SubscriptionAttributes,
    SubscriptionCharge,
)

logger = logging.getLogger(__name__)


IMPORTED_PRODUCT_NAME = "Imported from Stripe"
DEFAULT_UNIT_FEATURE_CODE = "unit"
PLAN_AVAILABLE_FROM = "2024-01-01"
PLAN_AVAILABLE_TO = "2044-01-01"
DEFAULT_TRIAL_DAYS = 30

MONTH_INTERVALS = {
    1: BillingPeriod.MONTHLY,
    3: BillingPeriod.QUARTERLY,
    6: BillingPeriod.SEMI_ANNUAL,
    12: BillingPeriod.ANNUAL,
}


class UnsupportedPrice(Exception):
    """A Stripe price whose combination of settings has no Bunny equivalent."""


def generate_code(name: str) -> str:
    """Replace every run of non-alphanumeric characters with `_`."""
    return re.sub(r"[^a-zA-Z0-9]+", "_", name)


def cents_to_decimal(amount: Any, amount_decimal: Any = None) -> Optional[str]:
    """
    Convert a minor-unit amount to a decimal string with two places.

    The precise `amount_decimal` wins over the integer amount; when both
    are empty the result is None.
    """
    if not amount and not amount_decimal:
        return None
    value = amount_decimal or amount
    try:
        major = Decimal(str(value)) / Decimal(100)
    except InvalidOperation:
        return None
    return str(major.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def count_decimals(amount: Optional[str]) -> int:
    if not amount:
        return 0
    _, _, fraction = str(amount).partition(".")
    return len(fraction)


def billing_period_for(recurring: Optional[Dict[str, Any]]) -> Optional[BillingPeriod]:
    """
    Billing period of a recurring price; None for one-time prices.

    Raises:
        UnsupportedPrice: the interval has no Bunny billing period
    """
    if not recurring:
        return None

    interval = recurring.get("interval")
    count = recurring.get("interval_count") or 1
    if interval == "month" and count in MONTH_INTERVALS:
        return MONTH_INTERVALS[count]
    if interval == "year" and count == 1:
        return BillingPeriod.ANNUAL
    raise UnsupportedPrice(f"Unsupported billing period ({count} {interval})")


def pricing_model_for(price: Dict[str, Any]) -> PricingModel:
    scheme = price.get("billing_scheme")
    if scheme == "per_unit":
        return PricingModel.VOLUME
    if scheme == "tiered":
        return PricingModel.TIERED if price.get("tiers_mode") == "graduated" else PricingModel.VOLUME
    if scheme == "flat":
        return PricingModel.FLAT
    raise UnsupportedPrice(f"Unsupported billing scheme ({scheme})")


def _is_metered(price: Dict[str, Any]) -> bool:
    if "is_metered" in price:
        return bool(price["is_metered"])
    return (price.get("recurring") or {}).get("usage_type") == "metered"


class StripeProductTransformer:
    """
    Builds a single "Imported from Stripe" product from a Stripe catalog.

    Active Stripe products become plans and their active prices become
    price lists with one charge each. Prices with no Bunny equivalent are
    skipped and listed in `skipped`.
    """

    def __init__(self, catalog: Dict[str, Any], platform_id: str):
        """
        Initialize the transformer.

        Args:
            catalog: products (with features and prices), meters and features
            platform_id: Destination platform for the imported product
        """
        self.catalog = catalog
        self.platform_id = platform_id
        self.skipped: List[SkippedRecord] = []
        self._meters = {m.get("id"): m for m in catalog.get("meters") or []}

    def transform(self) -> ImportDocument:
        self.skipped = []
        product = ImportProduct(
            name=IMPORTED_PRODUCT_NAME,
            platform_id=self.platform_id,
            features=self.transform_features(),
            plans=[
                self.transform_plan(p) for p in self.catalog.get("products") or [] if p.get("active")
            ],
        )
        logger.info(
            f"Transformed {len(product.plans)} Stripe products into plans, "
            f"skipped {len(self.skipped)} prices"
        )
        return ImportDocument(products=[product])

    def transform_features(self) -> List[ImportFeature]:
        features = []
        for feature in self.catalog.get("features") or []:
            features.append(self._feature(feature.get("name"), feature.get("lookup_key"), is_unit=False))
        for meter in self.catalog.get("meters") or []:
            features.append(self._feature(meter.get("display_name"), meter.get("event_name"), is_unit=True))
        features.append(self._feature("Unit", DEFAULT_UNIT_FEATURE_CODE, is_unit=True))
        return features

    @staticmethod
    def _feature(name: str, code: Optional[str], is_unit: bool) -> ImportFeature:
        return ImportFeature(
            name=name,
            code=code,
            description=None,
            is_unit=is_unit,
            kind=FeatureKind.QUANTITY if is_unit else FeatureKind.BOOLEAN,
            is_provisioned=True,
            is_visible=True,
            position=1,
        )

    def transform_plan(self, product: Dict[str, Any]) -> ImportPlan:
        plan = ImportPlan(
            code=product["id"],
            name=product.get("name"),
            description=product.get("description"),
            available=True,
            available_from=PLAN_AVAILABLE_FROM,
            available_to=PLAN_AVAILABLE_TO,
            is_visible=True,
            include_features_from_plan_id=None,
            addon=False,
            self_service_cancel=True,
            self_service_buy=True,
            self_service_renew=True,
            position=0,
            pricing_style="priced",
        )

        for price in product.get("prices") or []:
            if not price.get("active"):
                continue
            try:
                plan.price_lists.append(self.transform_price(product, price))
            except UnsupportedPrice as e:
                logger.warning(f"Skipping price {price.get('id')} for product '{product.get('name')}' - {e}")
                self.skipped.append(SkippedRecord(identifier=price.get("id") or "unknown", reason=str(e)))

        return plan

    def feature_code_for_meter(self, meter_id: Optional[str]) -> Optional[str]:
        meter = self._meters.get(meter_id) if meter_id else None
        return meter.get("event_name") if meter else None

    def transform_price(self, product: Dict[str, Any], price: Dict[str, Any]) -> ImportPriceList:
        """
        Map one Stripe price onto a price list with a single charge.

        Raises:
            UnsupportedPrice: the price cannot be represented in Bunny
        """
        recurring = price.get("recurring") or None
        billing_period = billing_period_for(recurring)
        metered = _is_metered(price)

        if price.get("type") == "recurring":
            charge_type = ChargeType.USAGE if metered else ChargeType.RECURRING
        else:
            charge_type = ChargeType.ONE_TIME

        pricing_model = pricing_model_for(price)
        if pricing_model == PricingModel.VOLUME and charge_type == ChargeType.ONE_TIME:
            raise UnsupportedPrice("One time charges not supported for volume plans")

        feature_code = DEFAULT_UNIT_FEATURE_CODE
        if metered:
            feature_code = self.feature_code_for_meter((recurring or {}).get("meter"))
            if not feature_code:
                raise UnsupportedPrice("Metered price has no matching meter")

        round_up_interval = None
        transform_quantity = price.get("transform_quantity") or {}
        if pricing_model == PricingModel.VOLUME and transform_quantity.get("round") == "up":
            if not metered:
                raise UnsupportedPrice("Round up not supported for recurring charges")
            round_up_interval = transform_quantity.get("divide_by")

        tiers, unit_price, price_decimals = self._pricing(price, pricing_model)

        charge = ImportCharge(
            code=generate_code(f"{price['id']}_charge"),
            name=price.get("nickname") or product.get("name"),
            feature_code=feature_code,
            quantity_min=1,
            default_quantity=1,
            usage_calculation_type="sum" if metered else None,
            self_service_quantity=False,
            billing_period=billing_period,
            charge_type=charge_type.value,
            pricing_model=pricing_model.value,
            price_list_charge_tiers=tiers,
            price_decimals=price_decimals,
            round_up_interval=round_up_interval,
            price=unit_price,
        )

        return ImportPriceList(
            code=price["id"],
            name=f"{product.get('name')} {price.get('nickname') or 'Default'}",
            price_description=None,
            is_visible=price.get("active"),
            currency_id=(price.get("currency") or "").upper(),
            trial_allowed=price.get("type") != "one_time",
            trial_length_days=(recurring or {}).get("trial_period_days") or DEFAULT_TRIAL_DAYS,
            trial_expiration_action="activate",
            sku=None,
            price_list_charges=[charge],
        )

    @staticmethod
    def _pricing(price: Dict[str, Any], pricing_model: PricingModel) -> Tuple[List[ImportTier], Optional[str], int]:
        """Tiers, scalar price and price decimals for a charge."""
        tiers: List[ImportTier] = []
        decimals = 0
        stripe_tiers = price.get("tiers") or []
        unit_price = cents_to_decimal(price.get("unit_amount"), price.get("unit_amount_decimal"))

        scalar_price = None
        if pricing_model in (PricingModel.TIERED, PricingModel.VOLUME) and stripe_tiers:
            previous_up_to = None
            for index, tier in enumerate(stripe_tiers):
                tier_price = cents_to_decimal(tier.get("unit_amount"), tier.get("unit_amount_decimal"))
                decimals = max(decimals, count_decimals(tier_price))
                tiers.append(ImportTier(
                    starts=1 if index == 0 else (previous_up_to or 0) + 1,
                    ends=tier.get("up_to") or INFINITE_TIER_END,
                    price=tier_price,
                ))
                previous_up_to = tier.get("up_to")
        else:
            # Flat prices leave price_decimals at 0.
            if pricing_model == PricingModel.VOLUME:
                decimals = count_decimals(unit_price)
                tiers.append(ImportTier(starts=1, ends=INFINITE_TIER_END, price=unit_price))
            scalar_price = unit_price

        return tiers, scalar_price, 2 if decimals == 1 else decimals


class StripeSubscriptionTransformer:
    """
    Maps active Stripe subscriptions onto subscriptionCreate attributes.

    Each subscription item becomes its own record. Subscriptions in an
    active trial, with percentage discounts, or with a schedule other than a
    single cancellation phase are skipped.
    """

    def __init__(self, data: Dict[str, Any], now: Optional[int] = None):
        """
        Initialize the transformer.

        Args:
            data: subscriptions and customers as fetched from Stripe
            now: Current time in unix seconds
        """
        self.data = data
        self.now = int(time.time()) if now is None else now
        self._customers = {c.get("id"): c for c in data.get("customers") or []}

    def transform(self) -> TransformOutcome:
        outcome = TransformOutcome()
        for subscription in self.data.get("subscriptions") or []:
            self._transform_subscription(subscription, outcome)

        for skipped in outcome.skipped:
            logger.warning(f"Skipping subscription {skipped.identifier} because {skipped.reason}")
        logger.info(
            f"Transformed {len(outcome.records)} subscription records, "
            f"skipped {len(outcome.skipped)}"
        )
        return outcome

    def skip_reason(self, subscription: Dict[str, Any]) -> Optional[str]:
        """Why a whole subscription cannot be migrated, or None."""
        trial_end = subscription.get("trial_end")
        if subscription.get("trial_start") and trial_end and trial_end > self.now:
            return "it has an active trial"

        for discount in subscription.get("discounts") or []:
            coupon = discount.get("coupon") if isinstance(discount, dict) else None
            if coupon and coupon.get("percent_off"):
                return "it has a percentage discount"

        schedule = subscription.get("schedule")
        if schedule:
            phases = schedule.get("phases") if isinstance(schedule, dict) else None
            if not phases or len(phases) != 1:
                return "it has a schedule with multiple phases"
            cancel_at = subscription.get("cancel_at")
            if not cancel_at or cancel_at != phases[0].get("end_date"):
                return "it has a schedule with a single phase that isn't a cancellation"

        return None

    def customer_for(self, subscription: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """The listed customer (with tax ids) or else the expanded one."""
        return self._customers.get(subscription.get("customer")) or subscription.get("customer_data")

    def _transform_subscription(self, subscription: Dict[str, Any], outcome: TransformOutcome) -> None:
        subscription_id = subscription.get("id") or "unknown"

        reason = self.skip_reason(subscription)
        if reason:
            outcome.skip(subscription_id, reason)
            return

        customer = self.customer_for(subscription)
        if not customer:
            outcome.skip(subscription_id, "customer not found")
            return

        # A single schedule phase ending at cancel_at is a pending cancellation
        end_override = subscription.get("cancel_at") if subscription.get("schedule") else None

        for item in subscription.get("items") or []:
            price = item.get("price")
            if not isinstance(price, dict):
                continue

            start_date = epoch_to_iso(item.get("current_period_start"))
            end_date = epoch_to_iso(
                end_override or subscription.get("cancel_at") or item.get("current_period_end")
            )
            if not start_date or not end_date:
                outcome.skip(
                    subscription_id,
                    f"of invalid dates. Start date: {start_date}, End date: {end_date}",
                )
                continue

            outcome.records.append(self.transform_item(subscription, customer, item, start_date, end_date))

    def transform_item(
        self,
        subscription: Dict[str, Any],
        customer: Dict[str, Any],
        item: Dict[str, Any],
        start_date: str,
        end_date: str
    ) -> SubscriptionAttributes:
        price = item["price"]
        return SubscriptionAttributes(
            price_list_code=price["id"],
            start_date=start_date,
            end_date=end_date,
            evergreen=not subscription.get("cancel_at"),
            trial=False,
            trial_start_date=epoch_to_iso(subscription.get("trial_start")),
            tenant_code=customer.get("id"),
            tenant_name=customer.get("name"),
            account=self.transform_account(customer),
            charges=[
                SubscriptionCharge(
                    code=generate_code(f"{price['id']}_charge"),
                    quantity=item.get("quantity"),
                    start_date=start_date,
                    end_date=end_date,
                )
            ],
            source_identifier=subscription.get("id"),
        )

    @staticmethod
    def transform_account(customer: Dict[str, Any]) -> InlineAccount:
        name = customer.get("name") or ""
        first_name, _, last_name = name.partition(" ")
        address = customer.get("address") or {}
        shipping = (customer.get("shipping") or {}).get("address") or {}

        tax_ids = customer.get("tax_ids") or []
        if isinstance(tax_ids, dict):
            tax_ids = tax_ids.get("data") or []

        return InlineAccount(
            code=customer.get("id"),
            name=customer.get("name"),
            tax_number=tax_ids[0].get("value") if tax_ids else None,
            billing_street=address.get("line1"),
            billing_city=address.get("city"),
            billing_state=address.get("state"),
            billing_zip=address.get("postal_code"),
            billing_country=address.get("country"),
            shipping_street=shipping.get("line1"),
            shipping_city=shipping.get("city"),
            shipping_state=shipping.get("state"),
            shipping_zip=shipping.get("postal_code"),
            shipping_country=shipping.get("country"),
            billing_contact=BillingContact(
                first_name=first_name,
                last_name=last_name.strip(),
                email=customer.get("email"),
                phone=customer.get("phone"),
            ),
        )
