"""Helpers for turning scraped branding into values the platform accepts."""

import re
from typing import Optional
from urllib.parse import urlparse


def normalize_domain(domain: str) -> str:
    """Prefix https:// unless the domain already carries a scheme."""
    domain = domain.strip()
    if not domain.startswith(("http://", "https://")):
        domain = f"https://{domain}"
    return domain


def sanitize_color(color: Optional[str]) -> Optional[str]:
    """
    Reduce a color to bare hex digits.

    "#1A2B3C" -> "1A2B3C"; at most 8 digits are kept and nothing left
    yields None.
    """
    if not color:
        return None
    cleaned = re.sub(r"[^0-9a-fA-F]", "", re.sub(r"^#", "", color))[:8]
    return cleaned or None


def resolve_url(base: str, url: Optional[str]) -> Optional[str]:
    """Resolve a possibly relative image URL against the site URL."""
    if not url:
        return url
    if url.startswith(("http://", "https://")):
        return url
    if url.startswith("//"):
        return f"https:{url}"
    if url.startswith("/"):
        parsed = urlparse(base)
        return f"{parsed.scheme}://{parsed.netloc}{url}"
    return f"{base.rstrip('/')}/{url}"


MIME_TYPES = (
    (".png", "image/png"),
    (".jpg", "image/jpeg"),
    (".jpeg", "image/jpeg"),
    (".gif", "image/gif"),
    (".webp", "image/webp"),
    (".svg", "image/svg+xml"),
    (".ico", "image/x-icon"),
)


def guess_mime_type(url: str) -> str:
    """MIME type from the file extension anywhere in the URL; PNG by default."""
    for extension, mime_type in MIME_TYPES:
        if extension in url:
            return mime_type
    return "image/png"
