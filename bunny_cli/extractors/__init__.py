"""Data extractors for files, Stripe, Bunny instances and websites."""

from .base import BaseExtractor, ExtractionResult
from .csv_extractor import CSVExtractor, JSONDocumentExtractor
from .platform_extractor import PlatformExtractor
from .stripe_extractor import StripeExtractor
from .web_scraper import WebsiteExtractor, extract_meta_from_html

__all__ = [
    "BaseExtractor",
    "ExtractionResult",
    "CSVExtractor",
    "JSONDocumentExtractor",
    "PlatformExtractor",
    "StripeExtractor",
    "WebsiteExtractor",
    "extract_meta_from_html",
]
