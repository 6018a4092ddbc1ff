"""Stripe REST API extractor for catalog and subscription migration."""

import logging
from typing import Any, Dict, List, Optional
from datetime import datetime

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .base import BaseExtractor, ExtractionResult
from ..exceptions import ProviderError

logger = logging.getLogger(__name__)


STRIPE_API_BASE = "https://api.stripe.com"


class StripeExtractor(BaseExtractor):
    """
    Extractor for the Stripe API.

    Lists are read with cursor pagination (`starting_after` / `has_more`),
    100 objects per page.
    """

    source_name = "stripe"

    def __init__(
        self,
        api_key: str,
        base_url: str = STRIPE_API_BASE,
        page_size: int = 100,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize the Stripe extractor.

        Args:
            api_key: Stripe secret key (sk_...)
            base_url: Override base URL
            page_size: Objects per list page
            session: Custom requests session
        """
        super().__init__()
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.page_size = page_size
        self._session = session or self._create_session()

    def _create_session(self) -> requests.Session:
        """Create a requests session with retry logic."""
        session = requests.Session()

        retries = Retry(
            total=3,
            backoff_factor=2.0,
            status_forcelist=[429, 500, 502, 503, 504],
        )

        adapter = HTTPAdapter(max_retries=retries)
        session.mount("https://", adapter)
        session.mount("http://", adapter)

        return session

    def _get_auth_headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            response = self._session.get(url, headers=self._get_auth_headers(), params=params)
            response.raise_for_status()
        except requests.exceptions.HTTPError as e:
            message = e.response.text
            try:
                message = e.response.json().get("error", {}).get("message") or message
            except ValueError:
                pass
            raise ProviderError(
                f"Stripe API error: {e.response.status_code} - {message}",
                {"path": path, "status_code": e.response.status_code},
            ) from e
        except requests.exceptions.RequestException as e:
            raise ProviderError(f"Stripe request failed: {e}", {"path": path}) from e

        return response.json()

    def list_all(self, path: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """Read every page of a Stripe list endpoint."""
        items: List[Dict[str, Any]] = []
        cursor = None

        while True:
            page_params = dict(params or {})
            page_params["limit"] = self.page_size
            if cursor:
                page_params["starting_after"] = cursor

            data = self._get(path, page_params)
            page = data.get("data", [])
            items.extend(page)

            if not data.get("has_more") or not page:
                break
            cursor = page[-1].get("id")

        logger.debug(f"Fetched {len(items)} objects from {path}")
        return items

    # Catalog

    def fetch_product_features(self, product_id: str) -> List[Dict[str, Any]]:
        """Entitlement features attached to a product."""
        features = []
        for product_feature in self.list_all(f"/v1/products/{product_id}/features"):
            feature = product_feature.get("entitlement_feature")
            if not feature:
                continue
            features.append({
                "id": feature.get("id"),
                "name": feature.get("name"),
                "active": feature.get("active"),
                "lookup_key": feature.get("lookup_key"),
                "metadata": feature.get("metadata"),
                "product_feature_id": product_feature.get("id"),
            })
        return features

    def fetch_product_prices(self, product_id: str) -> List[Dict[str, Any]]:
        """Active prices of a product, with tiers expanded."""
        prices = []
        for price in self.list_all(
            "/v1/prices",
            {"product": product_id, "active": "true", "expand[]": ["data.tiers"]},
        ):
            recurring = price.get("recurring") or {}
            price["is_metered"] = recurring.get("usage_type") == "metered"
            prices.append(price)
        return prices

    def fetch_products(self) -> List[Dict[str, Any]]:
        """Active products, each with its features and prices."""
        products = []
        for product in self.list_all("/v1/products", {"active": "true"}):
            product["features"] = self.fetch_product_features(product["id"])
            product["prices"] = self.fetch_product_prices(product["id"])
            products.append(product)

        logger.info(f"Fetched {len(products)} Stripe products")
        return products

    def fetch_coupons(self) -> List[Dict[str, Any]]:
        return self.list_all("/v1/coupons")

    def fetch_meters(self) -> List[Dict[str, Any]]:
        """Billing meters. An account without meter access yields an empty list."""
        try:
            return self.list_all("/v1/billing/meters")
        except ProviderError as e:
            self.add_warning(f"Error fetching meters: {e.message}")
            return []

    def fetch_entitlement_features(self) -> List[Dict[str, Any]]:
        """All entitlement features. Failure yields an empty list."""
        try:
            return self.list_all("/v1/entitlements/features")
        except ProviderError as e:
            self.add_warning(f"Error fetching features: {e.message}")
            return []

    def fetch_catalog(self) -> Dict[str, Any]:
        """Everything the product transformer reads."""
        return {
            "products": self.fetch_products(),
            "coupons": self.fetch_coupons(),
            "meters": self.fetch_meters(),
            "features": self.fetch_entitlement_features(),
        }

    # Subscriptions

    def fetch_subscriptions(self) -> List[Dict[str, Any]]:
        """Active subscriptions with customer, item prices and schedule expanded."""
        subscriptions = []
        for subscription in self.list_all(
            "/v1/subscriptions",
            {
                "status": "active",
                "expand[]": ["data.customer", "data.items.data.price", "data.schedule"],
            },
        ):
            customer = subscription.get("customer")
            if isinstance(customer, dict):
                subscription["customer_data"] = customer
                subscription["customer"] = customer.get("id")
            subscription["items"] = (subscription.get("items") or {}).get("data", [])
            subscriptions.append(subscription)

        logger.info(f"Fetched {len(subscriptions)} active Stripe subscriptions")
        return subscriptions

    def fetch_customers(self) -> List[Dict[str, Any]]:
        """Customers with their tax ids flattened to a list."""
        customers = []
        for customer in self.list_all("/v1/customers", {"expand[]": ["data.tax_ids"]}):
            customers.append({
                "id": customer.get("id"),
                "name": customer.get("name"),
                "email": customer.get("email"),
                "phone": customer.get("phone"),
                "address": customer.get("address"),
                "shipping": customer.get("shipping"),
                "tax_ids": (customer.get("tax_ids") or {}).get("data", []),
            })
        return customers

    def fetch_subscription_data(self) -> Dict[str, Any]:
        """Everything the subscription transformer reads."""
        return {
            "subscriptions": self.fetch_subscriptions(),
            "customers": self.fetch_customers(),
        }

    def extract(self) -> ExtractionResult:
        """Extract the product catalog; coupons, meters and features go in metadata."""
        self.reset()
        started_at = datetime.utcnow()
        catalog = self.fetch_catalog()

        result = self.get_extraction_result(catalog["products"])
        result.started_at = started_at
        result.completed_at = datetime.utcnow()
        result.metadata.update({
            "coupons": catalog["coupons"],
            "meters": catalog["meters"],
            "features": catalog["features"],
        })
        return result
