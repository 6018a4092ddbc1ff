"""Website fetch and branding metadata extraction."""

import logging
import re
from typing import Any, Dict, List, Optional, Tuple
from datetime import datetime

import requests

from .base import BaseExtractor, ExtractionResult
from ..services.branding import guess_mime_type

logger = logging.getLogger(__name__)


USER_AGENT = "Mozilla/5.0 (compatible; bunny-cli/1.0)"
MAX_IMAGES = 5


def _meta_pattern(attr: str, value: str) -> Tuple[re.Pattern, re.Pattern]:
    """A `<meta>` content pattern in both attribute orders."""
    return (
        re.compile(rf"""<meta[^>]+{attr}=["']{value}["'][^>]+content=["']([^"']+)["']""", re.I),
        re.compile(rf"""<meta[^>]+content=["']([^"']+)["'][^>]+{attr}=["']{value}["']""", re.I),
    )


def _link_pattern(rel: str) -> Tuple[re.Pattern, re.Pattern]:
    """A `<link>` href pattern in both attribute orders."""
    return (
        re.compile(rf"""<link[^>]+rel=["']{rel}["'][^>]+href=["']([^"']+)["']""", re.I),
        re.compile(rf"""<link[^>]+href=["']([^"']+)["'][^>]+rel=["']{rel}["']""", re.I),
    )


META_PATTERNS = {
    "ogImage": _meta_pattern("property", "og:image"),
    "twitterImage": _meta_pattern("name", "twitter:image"),
    "appleIcon": _link_pattern("apple-touch-icon"),
    "favicon": _link_pattern("(?:shortcut icon|icon)"),
    "themeColor": _meta_pattern("name", "theme-color"),
    "ogTitle": _meta_pattern("property", "og:title"),
    "ogDescription": _meta_pattern("property", "og:description"),
}

IMG_TAG = re.compile(r"<img[^>]+>", re.I)
IMG_ALT = re.compile(r"""alt=["']([^"']*)["']""", re.I)
IMG_SRC = re.compile(r"""src=["']([^"']+)["']""", re.I)
IMG_SRC_ANY = re.compile(r"""<img[^>]+src=["']([^"']+)["']""", re.I)
TITLE = re.compile(r"<title[^>]*>([^<]+)</title>", re.I)


def _first_match(html: str, patterns: Tuple[re.Pattern, ...]) -> Optional[str]:
    for pattern in patterns:
        match = pattern.search(html)
        if match:
            return match.group(1)
    return None


def extract_meta_from_html(html: str) -> Dict[str, Any]:
    """
    Collect branding hints from a page.

    Keys are only present when found: ogImage, twitterImage, appleIcon,
    favicon, themeColor, logoImgs (img sources whose alt mentions "logo"),
    images (first five img sources), title, ogTitle, ogDescription.
    """
    meta: Dict[str, Any] = {}
    if not html:
        return meta

    for key in ("ogImage", "twitterImage", "appleIcon", "favicon", "themeColor"):
        value = _first_match(html, META_PATTERNS[key])
        if value:
            meta[key] = value

    logo_imgs: List[str] = []
    for tag in IMG_TAG.findall(html):
        alt = IMG_ALT.search(tag)
        src = IMG_SRC.search(tag)
        if src and alt and "logo" in alt.group(1).lower():
            logo_imgs.append(src.group(1))
    if logo_imgs:
        meta["logoImgs"] = logo_imgs

    images = IMG_SRC_ANY.findall(html)[:MAX_IMAGES]
    if images:
        meta["images"] = images

    title = TITLE.search(html)
    if title:
        meta["title"] = title.group(1).strip()

    for key in ("ogTitle", "ogDescription"):
        value = _first_match(html, META_PATTERNS[key])
        if value:
            meta[key] = value

    return meta


class WebsiteExtractor(BaseExtractor):
    """Fetches a customer's website and pulls branding metadata out of it."""

    source_name = "website"

    def __init__(self, url: str, timeout: float = 10, session: Optional[requests.Session] = None):
        super().__init__()
        self.url = url
        self.timeout = timeout
        self._session = session or requests.Session()

    def fetch_html(self) -> str:
        """
        Fetch the page, following redirects.

        A failed fetch is recorded as a warning and yields an empty page.
        """
        try:
            response = self._session.get(
                self.url,
                headers={"User-Agent": USER_AGENT},
                timeout=self.timeout,
                allow_redirects=True,
            )
            return response.text
        except requests.exceptions.RequestException as e:
            self.add_warning(f"Could not fetch {self.url}: {e}. Proceeding with domain name only.")
            return ""

    def extract(self) -> ExtractionResult:
        """Extract the branding metadata of the page as a single record."""
        self.reset()
        started_at = datetime.utcnow()
        meta = extract_meta_from_html(self.fetch_html())

        result = self.get_extraction_result([meta])
        result.started_at = started_at
        result.completed_at = datetime.utcnow()
        result.metadata["url"] = self.url
        return result

    def download_image(self, image_url: str) -> Tuple[bytes, str]:
        """
        Download an image and work out its MIME type.

        Raises:
            requests.exceptions.RequestException: the download failed
        """
        response = self._session.get(image_url, headers={"User-Agent": USER_AGENT}, timeout=30)
        if not response.ok:
            raise requests.exceptions.HTTPError(
                f"HTTP {response.status_code} {response.reason}", response=response
            )

        content_type = response.headers.get("content-type") or ""
        if content_type.startswith("image/"):
            mime_type = content_type.split(";")[0].strip()
        else:
            mime_type = guess_mime_type(image_url)

        logger.info(f"Downloaded logo ({len(response.content)} bytes, {mime_type})")
        return response.content, mime_type
