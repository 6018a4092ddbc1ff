"""Service layer: mapping, validation, transformation and LLM branding."""

from .attribute_mapper import AttributeMapper, FieldType, MatchMode
from .validator import RecordValidator
from .subscription_builder import SubscriptionRowBuilder
from .transformer import InstanceProductTransformer
from .stripe_transformer import StripeProductTransformer, StripeSubscriptionTransformer
from .llm_inference import BrandingAnalyzer
from .profile_store import ProfileStore

__all__ = [
    "AttributeMapper",
    "FieldType",
    "MatchMode",
    "RecordValidator",
    "SubscriptionRowBuilder",
    "InstanceProductTransformer",
    "StripeProductTransformer",
    "StripeSubscriptionTransformer",
    "BrandingAnalyzer",
    "ProfileStore",
]
