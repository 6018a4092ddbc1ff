"""Import document schema for the productImport mutation."""

from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_serializer


# Upper bound used for the last tier of a tiered or volume charge.
INFINITE_TIER_END = 999999999


class BillingPeriod(str, Enum):
    """Charge billing periods."""
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    SEMI_ANNUAL = "semi_annual"
    ANNUAL = "annual"
    NONE = "none"

    @classmethod
    def from_months(cls, months: Any) -> Optional["BillingPeriod"]:
        """Map a period length in months onto a billing period, or None."""
        return _PERIOD_BY_MONTHS.get(months) if isinstance(months, int) else None


_PERIOD_BY_MONTHS = {
    1: BillingPeriod.MONTHLY,
    3: BillingPeriod.QUARTERLY,
    6: BillingPeriod.SEMI_ANNUAL,
    12: BillingPeriod.ANNUAL,
}


class ChargeType(str, Enum):
    """Charge types."""
    RECURRING = "recurring"
    USAGE = "usage"
    ONE_TIME = "one_time"


class PricingModel(str, Enum):
    """Pricing models."""
    FLAT = "flat"
    VOLUME = "volume"
    TIERED = "tiered"


class FeatureKind(str, Enum):
    """Feature kinds."""
    BOOLEAN = "boolean"
    QUANTITY = "quantity"


Price = Union[str, float, int]


class ImportModel(BaseModel):
    """Base for import document nodes; unknown keys pass through."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    def to_import_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class ImportFeature(ImportModel):
    id: Optional[str] = None
    name: str
    code: Optional[str] = None
    description: Optional[str] = None
    is_unit: Optional[bool] = False
    kind: Optional[FeatureKind] = FeatureKind.BOOLEAN
    is_provisioned: Optional[bool] = False
    is_visible: Optional[bool] = None
    position: Optional[int] = 0
    unit_name: Optional[str] = None


class ImportTier(ImportModel):
    starts: Optional[int] = None
    ends: Optional[int] = INFINITE_TIER_END
    price: Optional[Price] = None


class ImportCharge(ImportModel):
    code: str
    name: Optional[str] = None
    accounting_code: Optional[str] = None
    tax_code: Optional[str] = None
    price_description: Optional[str] = None
    specific_invoice_line_text: Optional[str] = None
    feature_id: Optional[str] = None
    feature_code: Optional[str] = None
    billing_period: Optional[BillingPeriod] = None
    charge_type: Optional[str] = None
    pricing_model: Optional[str] = None
    usage_calculation_type: Optional[str] = None
    quantity_min: Optional[int] = 1
    quantity_max: Optional[int] = None
    default_quantity: Optional[int] = 1
    self_service_quantity: Optional[bool] = False
    recognition_period: Optional[str] = None
    price_list_charge_tiers: List[ImportTier] = Field(default_factory=list)
    price_decimals: Optional[int] = 0
    feature_addon: Optional[bool] = None
    round_up_interval: Optional[int] = None
    price: Optional[Price] = None

    @model_serializer(mode="wrap")
    def _omit_unset_pricing(self, handler):
        data = handler(self)
        for key in ("price", "round_up_interval"):
            if data.get(key) is None:
                data.pop(key, None)
        return data


class ImportPriceList(ImportModel):
    code: str
    name: Optional[str] = None
    price_description: Optional[str] = None
    is_visible: Optional[bool] = None
    currency_id: Optional[str] = None
    trial_allowed: Optional[bool] = False
    trial_length_days: Optional[int] = None
    trial_expiration_action: Optional[str] = None
    sku: Optional[str] = None
    price_list_charges: List[ImportCharge] = Field(default_factory=list)


class ImportPlan(ImportModel):
    code: str
    name: str
    description: Optional[str] = None
    internal_notes: Optional[str] = None
    available: Optional[bool] = None
    available_from: Optional[str] = None
    available_to: Optional[str] = None
    is_visible: Optional[bool] = None
    include_features_from_plan_id: Optional[str] = None
    addon: Optional[bool] = False
    self_service_cancel: Optional[bool] = None
    self_service_buy: Optional[bool] = None
    self_service_renew: Optional[bool] = None
    position: Optional[int] = 0
    pricing_description: Optional[str] = None
    pricing_style: Optional[str] = "priced"
    contact_us_label: Optional[str] = None
    contact_us_url: Optional[str] = None
    price_lists: List[ImportPriceList] = Field(default_factory=list)


class ImportProduct(ImportModel):
    name: str
    description: Optional[str] = None
    internal_notes: Optional[str] = None
    platform_id: Optional[str] = Field(default=None, alias="platformId")
    product_category_id: Optional[str] = None
    show_product_name_on_line_item: Optional[bool] = False
    everything_in_plus: Optional[bool] = False
    features: List[ImportFeature] = Field(default_factory=list)
    plans: List[ImportPlan] = Field(default_factory=list)


class ImportDocument(ImportModel):
    """The `{ "products": [...] }` document accepted by productImport."""
    products: List[ImportProduct] = Field(default_factory=list)
