"""Data models for bunny-cli."""

from .record import (
    BatchStatus,
    ImportBatchResult,
    MappedRecord,
    RecordResult,
    SkippedRecord,
    SourceRecord,
    TransformOutcome,
)
from .migration import (
    AccountCache,
    CommandResult,
    ImportKind,
    LLMProvider,
    Profile,
)
from .schema import (
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
from .subscription import (
    BillingContact,
    InlineAccount,
    PriceTier,
    SubscriptionAttributes,
    SubscriptionCharge,
    SubscriptionDiscount,
)

__all__ = [
    "BatchStatus",
    "ImportBatchResult",
    "MappedRecord",
    "RecordResult",
    "SkippedRecord",
    "SourceRecord",
    "TransformOutcome",
    "AccountCache",
    "CommandResult",
    "ImportKind",
    "LLMProvider",
    "Profile",
    "INFINITE_TIER_END",
    "BillingPeriod",
    "ChargeType",
    "FeatureKind",
    "ImportCharge",
    "ImportDocument",
    "ImportFeature",
    "ImportPlan",
    "ImportPriceList",
    "ImportProduct",
    "ImportTier",
    "PricingModel",
    "BillingContact",
    "InlineAccount",
    "PriceTier",
    "SubscriptionAttributes",
    "SubscriptionCharge",
    "SubscriptionDiscount",
]
