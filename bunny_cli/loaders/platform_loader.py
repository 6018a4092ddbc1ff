"""Loader that submits records to a Bunny instance through GraphQL mutations."""

import logging
from typing import Any, Dict, Optional

import requests

from .base import BaseLoader
from ..client import GraphQLErrors, PlatformClient, TransportError, TransportFailure, run_query
from ..exceptions import RecordError
from ..models.subscription import SubscriptionAttributes

logger = logging.getLogger(__name__)


ACCOUNT_CREATE = """mutation accountCreate ($attributes: AccountAttributes!) {
  accountCreate (attributes: $attributes) {
    account {
      id
      code
      name
    }
    errors
  }
}"""

CONTACT_CREATE = """mutation contactCreate ($attributes: ContactAttributes!) {
  contactCreate (attributes: $attributes) {
    contact {
      id
      accountId
      code
      email
      firstName
      lastName
      fullName
    }
    errors
  }
}"""

SUBSCRIPTION_CREATE = """mutation subscriptionCreate ($attributes: SubscriptionAttributes!) {
  subscriptionCreate (attributes: $attributes) {
    subscription {
      id
      account {
        id
        name
      }
      trialStartDate
      trialEndDate
      startDate
      endDate
      state
      evergreen
      priceList {
        code
        name
      }
      tenant {
        id
        code
        name
      }
    }
    errors
  }
}"""

PRODUCT_IMPORT = """mutation productImport ($attributes: JSON!) {
  productImport (attributes: $attributes) {
    response
    errors
  }
}"""

MRR_IMPORT = """mutation legacyRecurringRevenueImport ($source: String!) {
  legacyRecurringRevenueImport (source: $source) {
    errors
  }
}"""

ENTITY_UPDATE = """mutation entityUpdate ($id: ID!, $attributes: EntityAttributes!) {
  entityUpdate (id: $id, attributes: $attributes) {
    entity {
      id
      name
      brandColor
      accentColor
    }
    errors
  }
}"""

BRANDING_IMAGE_NAMES = ("top_nav_image", "quote_image")


def account_identifier(attributes: Dict[str, Any]) -> str:
    return attributes.get("name") or attributes.get("code") or "Unknown"


def contact_identifier(attributes: Dict[str, Any]) -> str:
    full_name = f"{attributes.get('firstName') or ''} {attributes.get('lastName') or ''}".strip()
    return attributes.get("fullName") or full_name or attributes.get("email") or "Unknown"


def _join_errors(errors: Any) -> str:
    if isinstance(errors, list):
        return ", ".join(str(e) for e in errors)
    return str(errors)


class PlatformLoader(BaseLoader):
    """
    Loader for a Bunny instance.

    Each submit method performs one mutation and returns the created
    entity, raising RecordError or TransportError on failure.
    """

    def __init__(self, client: PlatformClient, dry_run: bool = False):
        """
        Initialize the loader.

        Args:
            client: Authenticated-on-demand client for the destination instance
            dry_run: If True, report records as loaded without submitting them
        """
        super().__init__(dry_run=dry_run)
        self.client = client

    def _mutate(
        self,
        document: str,
        variables: Dict[str, Any],
        operation: str,
        error_prefix: str = "Import errors"
    ) -> Dict[str, Any]:
        """Run a mutation and return its payload, raising on any failure."""
        result = run_query(self.client, document, variables)

        if isinstance(result, TransportFailure):
            raise TransportError(result.raw, result.status_code)

        if isinstance(result, GraphQLErrors):
            raise RecordError(f"GraphQL errors: {', '.join(result.messages)}")

        payload = result.data.get(operation)
        if not payload:
            raise RecordError(f"Invalid response from server - no {operation} data")

        if payload.get("errors"):
            raise RecordError(f"{error_prefix}: {_join_errors(payload['errors'])}")

        return payload

    def create_account(self, attributes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        payload = self._mutate(ACCOUNT_CREATE, {"attributes": attributes}, "accountCreate")
        return payload.get("account")

    def create_contact(self, attributes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        payload = self._mutate(CONTACT_CREATE, {"attributes": attributes}, "contactCreate")
        return payload.get("contact")

    def create_subscription(self, attributes: SubscriptionAttributes) -> Dict[str, Any]:
        """Create a subscription; the result includes the (possibly new) account id."""
        payload = self._mutate(
            SUBSCRIPTION_CREATE,
            {"attributes": attributes.to_dict()},
            "subscriptionCreate",
        )
        subscription = payload.get("subscription")
        if not subscription:
            raise RecordError("Invalid response from server - no subscription returned")
        return subscription

    def import_products(self, document: Dict[str, Any]) -> Dict[str, Any]:
        """Submit a `{ "products": [...] }` document."""
        payload = self._mutate(PRODUCT_IMPORT, {"attributes": document}, "productImport")
        response = payload.get("response") or {}
        if isinstance(response, dict) and response.get("status") == "failed":
            raise RecordError(response.get("message") or "Product import failed")
        return response

    def import_mrr(self, source: str) -> Dict[str, Any]:
        """Submit raw recurring revenue CSV text."""
        # A successful import returns only an empty error list.
        result = run_query(self.client, MRR_IMPORT, {"source": source})
        if isinstance(result, TransportFailure):
            raise TransportError(result.raw, result.status_code)
        if isinstance(result, GraphQLErrors):
            raise RecordError(f"GraphQL errors: {', '.join(result.messages)}")

        payload = result.data.get("legacyRecurringRevenueImport") or {}
        if payload.get("errors"):
            raise RecordError(f"Import errors: {_join_errors(payload['errors'])}")
        return {"imported": True}

    def update_entity(self, entity_id: str, attributes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        payload = self._mutate(
            ENTITY_UPDATE,
            {"id": entity_id, "attributes": attributes},
            "entityUpdate",
            error_prefix="Entity update errors",
        )
        return payload.get("entity")

    def upload_branding_image(
        self,
        entity_id: str,
        name: str,
        content: bytes,
        mime_type: str
    ) -> None:
        """Upload an image to an entity's branding slot (top_nav_image or quote_image)."""
        if name not in BRANDING_IMAGE_NAMES:
            raise ValueError(f"Unsupported branding image: {name}")

        token = self.client.access_token or self.client.authenticate()
        url = f"{self.client.base_url}/api/images/branding"

        try:
            response = requests.put(
                url,
                params={"name": name},
                headers={"Authorization": f"bearer {token}"},
                files={"image": ("logo", content, mime_type)},
                data={"entity_id": entity_id},
                timeout=30,
            )
        except requests.exceptions.RequestException as e:
            raise TransportError(str(e)) from e

        if not response.ok:
            raise TransportError(
                f"HTTP {response.status_code} {response.reason}: {response.text}",
                response.status_code,
            )
        logger.info(f"Uploaded {name} for entity {entity_id}")
