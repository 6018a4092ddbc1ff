"""Read-side GraphQL queries against a Bunny instance."""

import json
import logging
from typing import Any, Dict, List, Optional
from datetime import datetime

from .base import BaseExtractor, ExtractionResult
from ..client import GraphQLErrors, PlatformClient, QueryResult, TransportError, TransportFailure, run_query
from ..exceptions import BunnyCLIError

logger = logging.getLogger(__name__)


PRODUCTS_QUERY = """query products ($after: String, $before: String, $first: Int, $last: Int, $filter: String, $sort: String) {
  products (after: $after, before: $before, first: $first, last: $last, filter: $filter, sort: $sort) {
    edges {
      cursor
      node {
        code
        description
        everythingInPlus
        id
        internalNotes
        name
        platformId
        productCategoryId
        showProductNameOnLineItem
      }
    }
    totalCount
  }
}"""

PRODUCT_QUERY = """query product ($id: ID, $code: String) {
  product (id: $id, code: $code) {
    code
    description
    everythingInPlus
    id
    internalNotes
    name
    platformId
    productCategoryId
    showProductNameOnLineItem
    features {
      code
      description
      id
      isProvisioned
      isUnit
      isVisible
      name
      position
      unitName
    }
    plans {
      addon
      availableFrom
      availableTo
      code
      contactUsLabel
      contactUsUrl
      description
      id
      internalNotes
      isAvailableNow
      isVisible
      name
      position
      pricingDescription
      selfServiceBuy
      selfServiceCancel
      selfServiceRenew
      priceLists {
        code
        currencyId
        id
        isVisible
        name
        periodMonths
        priceDescription
        sku
        trialAllowed
        trialLengthDays
        trialExpirationAction
        charges {
          accountingCode
          code
          featureAddon
          featureId
          feature {
            code
          }
          billingPeriod
          chargeType
          pricingModel
          usageCalculationType
          id
          name
          price
          priceDecimals
          priceDescription
          quantityMax
          quantityMin
          recognitionPeriod
          roundUpInterval
          selfServiceQuantity
          specificInvoiceLineText
          taxCode
          priceListChargeTiers {
            price
            starts
          }
        }
      }
    }
  }
}"""

PLATFORMS_QUERY = """query platforms {
  platforms {
    edges {
      node {
        id
        name
        code
      }
    }
  }
}"""

ENTITIES_QUERY = """query entities ($first: Int, $filter: String) {
  entities (first: $first, filter: $filter) {
    edges {
      node {
        id
        name
        brandColor
        accentColor
        emailTemplate
        topNavImageUrl
      }
    }
  }
}"""

DOCTOR_QUERY = """query products ($first: Int) {
  products (first: $first) {
    edges {
      node {
        id
        name
      }
    }
    totalCount
  }
}"""


class PlatformExtractor(BaseExtractor):
    """
    Extractor for a Bunny instance.

    Used as the source of an instance-to-instance product migration and to
    look up destination platforms and entities.
    """

    source_name = "bunny"

    def __init__(self, client: PlatformClient):
        super().__init__()
        self.client = client

    def _fetch(self, document: str, variables: Dict[str, Any], root: str) -> Any:
        """Run a query and return `data[root]`, raising on any failure."""
        result = run_query(self.client, document, variables)

        if isinstance(result, TransportFailure):
            raise TransportError(result.raw, result.status_code)
        if isinstance(result, GraphQLErrors):
            raise BunnyCLIError(f"GraphQL errors: {', '.join(result.messages)}")

        if root not in result.data:
            raise BunnyCLIError(f"Unexpected response structure: {json.dumps(result.data, default=str)}")
        return result.data[root]

    def _fetch_nodes(self, document: str, variables: Dict[str, Any], root: str) -> List[Dict[str, Any]]:
        connection = self._fetch(document, variables, root)
        if not isinstance(connection, dict) or not isinstance(connection.get("edges"), list):
            raise BunnyCLIError(f"Invalid response structure from {root} query")
        return [edge["node"] for edge in connection["edges"] if edge.get("node")]

    def list_products(self) -> List[Dict[str, Any]]:
        return self._fetch_nodes(PRODUCTS_QUERY, {}, "products")

    def get_product(self, product_id: Optional[str] = None, code: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """The full product graph: features, plans, price lists, charges and tiers."""
        variables = {"id": product_id, "code": code}
        return self._fetch(PRODUCT_QUERY, {k: v for k, v in variables.items() if v}, "product")

    def list_platforms(self) -> List[Dict[str, Any]]:
        return self._fetch_nodes(PLATFORMS_QUERY, {}, "platforms")

    def list_entities(self, first: int = 100) -> List[Dict[str, Any]]:
        return self._fetch_nodes(ENTITIES_QUERY, {"first": first}, "entities")

    def probe(self) -> QueryResult:
        """Minimal read used to check connectivity and credentials."""
        return run_query(self.client, DOCTOR_QUERY, {"first": 1})

    def extract(self) -> ExtractionResult:
        """Extract the product list of the instance."""
        self.reset()
        started_at = datetime.utcnow()
        products = self.list_products()

        result = self.get_extraction_result(products)
        result.started_at = started_at
        result.completed_at = datetime.utcnow()
        result.metadata["base_url"] = self.client.base_url

        logger.info(f"Extracted {len(products)} products from {self.client.base_url}")
        return result
