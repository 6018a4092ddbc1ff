"""Transformation of another Bunny instance's product graph into an import document."""

import logging
from typing import Any, Dict, List, Optional

from ..exceptions import MissingResourceError
from ..models.schema import (
    INFINITE_TIER_END,
    BillingPeriod,
    FeatureKind,
    ImportCharge,
    ImportDocument,
    ImportFeature,
    ImportPlan,
    ImportPriceList,
    ImportProduct,
    ImportTier,
)

logger = logging.getLogger(__name__)


def _lower(value: Optional[str]) -> Optional[str]:
    return value.lower() if value else None


def build_tiers(tiers: List[Dict[str, Any]]) -> List[ImportTier]:
    """
    Rebuild contiguous tiers from tiers that only carry `starts`.

    Each tier ends one before the next tier starts; the last tier ends at
    INFINITE_TIER_END. A first tier without `starts` starts at 1.
    """
    built = []
    for index, tier in enumerate(tiers):
        starts = tier.get("starts") or (1 if index == 0 else None)
        if index < len(tiers) - 1:
            next_starts = tiers[index + 1].get("starts")
            ends = next_starts - 1 if next_starts else None
        else:
            ends = INFINITE_TIER_END
        built.append(ImportTier(starts=starts, ends=ends, price=tier.get("price")))
    return built


class InstanceProductTransformer:
    """
    Maps a product graph read from one Bunny instance (camelCase GraphQL
    shape) onto the snake_case productImport document of another.
    """

    def __init__(self, destination_platforms: List[Dict[str, Any]]):
        """
        Initialize the transformer.

        Args:
            destination_platforms: Platforms of the destination instance; the
                first one is used when the source product has no platform
        """
        self.destination_platforms = destination_platforms

    def resolve_platform_id(self, product: Dict[str, Any]) -> str:
        if product.get("platformId"):
            return product["platformId"]
        if not self.destination_platforms:
            raise MissingResourceError("No platforms found in the destination instance")
        platform = self.destination_platforms[0]
        logger.info(f"Using destination platform {platform.get('name')} ({platform['id']})")
        return platform["id"]

    def transform(self, product: Dict[str, Any]) -> ImportDocument:
        """Transform one source product into a single-product import document."""
        imported = ImportProduct(
            name=product["name"],
            description=product.get("description") or None,
            internal_notes=product.get("internalNotes") or None,
            platform_id=self.resolve_platform_id(product),
            product_category_id=product.get("productCategoryId") or None,
            show_product_name_on_line_item=product.get("showProductNameOnLineItem") or False,
            everything_in_plus=product.get("everythingInPlus") or False,
            features=[self.transform_feature(f) for f in product.get("features") or []],
            plans=[self.transform_plan(p) for p in product.get("plans") or []],
        )
        logger.info(
            f"Transformed product {imported.name}: {len(imported.features)} features, "
            f"{len(imported.plans)} plans"
        )
        return ImportDocument(products=[imported])

    def transform_feature(self, feature: Dict[str, Any]) -> ImportFeature:
        is_unit = feature.get("isUnit") or False
        return ImportFeature(
            id=feature.get("id"),
            name=feature["name"],
            code=feature.get("code"),
            description=feature.get("description") or None,
            is_unit=is_unit,
            kind=FeatureKind.QUANTITY if is_unit else FeatureKind.BOOLEAN,
            is_provisioned=feature.get("isProvisioned") or False,
            is_visible=feature.get("isVisible"),
            position=feature.get("position") or 0,
            unit_name=feature.get("unitName") or None,
        )

    def transform_plan(self, plan: Dict[str, Any]) -> ImportPlan:
        return ImportPlan(
            code=plan["code"],
            name=plan["name"],
            description=plan.get("description") or None,
            internal_notes=plan.get("internalNotes") or None,
            available=plan.get("isAvailableNow"),
            available_from=plan.get("availableFrom") or None,
            available_to=plan.get("availableTo") or None,
            is_visible=plan.get("isVisible"),
            include_features_from_plan_id=None,
            addon=plan.get("addon") or False,
            self_service_cancel=plan.get("selfServiceCancel"),
            self_service_buy=plan.get("selfServiceBuy"),
            self_service_renew=plan.get("selfServiceRenew"),
            position=plan.get("position") or 0,
            pricing_description=plan.get("pricingDescription") or None,
            pricing_style="priced",
            contact_us_label=plan.get("contactUsLabel") or None,
            contact_us_url=plan.get("contactUsUrl") or None,
            price_lists=[self.transform_price_list(pl) for pl in plan.get("priceLists") or []],
        )

    def transform_price_list(self, price_list: Dict[str, Any]) -> ImportPriceList:
        billing_period = BillingPeriod.from_months(price_list.get("periodMonths"))
        return ImportPriceList(
            code=price_list["code"],
            name=price_list.get("name"),
            price_description=price_list.get("priceDescription") or None,
            is_visible=price_list.get("isVisible"),
            currency_id=price_list.get("currencyId"),
            trial_allowed=price_list.get("trialAllowed") or False,
            trial_length_days=price_list.get("trialLengthDays") or None,
            trial_expiration_action=price_list.get("trialExpirationAction") or None,
            sku=price_list.get("sku") or None,
            price_list_charges=[
                self.transform_charge(c, billing_period) for c in price_list.get("charges") or []
            ],
        )

    def transform_charge(self, charge: Dict[str, Any], billing_period: Optional[BillingPeriod]) -> ImportCharge:
        tiers = charge.get("priceListChargeTiers") or []
        feature = charge.get("feature") or {}

        return ImportCharge(
            code=charge["code"],
            name=charge.get("name"),
            accounting_code=charge.get("accountingCode") or None,
            tax_code=charge.get("taxCode") or None,
            price_description=charge.get("priceDescription") or None,
            specific_invoice_line_text=charge.get("specificInvoiceLineText") or None,
            feature_id=charge.get("featureId") or None,
            feature_code=feature.get("code") or None,
            billing_period=billing_period,
            charge_type=_lower(charge.get("chargeType")),
            pricing_model=_lower(charge.get("pricingModel")),
            usage_calculation_type=_lower(charge.get("usageCalculationType")),
            quantity_min=charge.get("quantityMin") or 1,
            quantity_max=charge.get("quantityMax") or None,
            default_quantity=1,
            self_service_quantity=charge.get("selfServiceQuantity") or False,
            recognition_period=charge.get("recognitionPeriod") or None,
            price_list_charge_tiers=build_tiers(tiers),
            price_decimals=charge.get("priceDecimals") or 0,
            feature_addon=charge.get("featureAddon"),
            round_up_interval=charge.get("roundUpInterval") or None,
            price=None if tiers else charge.get("price"),
        )
