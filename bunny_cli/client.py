"""GraphQL client for a Bunny instance."""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

logger = logging.getLogger(__name__)


DEFAULT_SCOPE = (
    "standard:read standard:write admin:read admin:write "
    "product:read product:write billing:read billing:write"
)


def format_base_url(value: str) -> str:
    """Normalize a subdomain or URL to `https://host` without a trailing slash."""
    url = re.sub(r"^https?://", "", value.strip())
    url = re.sub(r"/$", "", url)
    if not url.startswith("http"):
        url = f"https://{url}"
    return url


class TransportError(Exception):
    """
    A request that never produced a GraphQL response.

    `raw` is None (network failure or empty body), a string (OAuth error
    description) or the decoded HTTP error body.
    """

    def __init__(self, raw: Any = None, status_code: Optional[int] = None):
        super().__init__(raw if isinstance(raw, str) else f"Transport failure ({status_code})")
        self.raw = raw
        self.status_code = status_code


@dataclass
class Ok:
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class GraphQLErrors:
    errors: List[Any]
    data: Optional[Dict[str, Any]] = None

    @property
    def messages(self) -> List[str]:
        messages = []
        for error in self.errors:
            if isinstance(error, dict) and error.get("message"):
                messages.append(str(error["message"]))
            else:
                messages.append(str(error))
        return messages


@dataclass
class TransportFailure:
    raw: Any = None
    status_code: Optional[int] = None


QueryResult = Union[Ok, GraphQLErrors, TransportFailure]


class PlatformClient:
    """
    Client for a Bunny instance's GraphQL API.

    Authenticates with the OAuth client-credentials grant and keeps the
    access token for the lifetime of the client.
    """

    def __init__(
        self,
        base_url: str,
        client_id: str,
        client_secret: str,
        scope: str = DEFAULT_SCOPE,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize the client.

        Args:
            base_url: Instance URL, e.g. https://acme.bunny.com
            client_id: OAuth client id
            client_secret: OAuth client secret
            scope: Space-separated OAuth scopes
            timeout: Request timeout in seconds (None waits indefinitely)
            session: Custom requests session
        """
        self.base_url = base_url.rstrip("/")
        self.client_id = client_id
        self.client_secret = client_secret
        self.scope = scope
        self.timeout = timeout
        self._session = session or self._create_session()
        self._access_token: Optional[str] = None

    @classmethod
    def from_profile(cls, profile) -> "PlatformClient":
        profile.require_complete()
        return cls(profile.base_url, profile.client_id, profile.client_secret)

    def _create_session(self) -> requests.Session:
        """Create a requests session with connection retries."""
        session = requests.Session()

        retries = Retry(
            total=3,
            backoff_factor=2.0,
            status_forcelist=[429, 502, 503, 504],
        )

        adapter = HTTPAdapter(max_retries=retries)
        session.mount("https://", adapter)
        session.mount("http://", adapter)

        return session

    @property
    def access_token(self) -> Optional[str]:
        return self._access_token

    def authenticate(self) -> str:
        """Fetch a new access token."""
        url = f"{self.base_url}/oauth/token"
        payload = {
            "grant_type": "client_credentials",
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "scope": self.scope,
        }

        try:
            response = self._session.post(url, data=payload, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            logger.debug(f"Token request failed: {e}")
            raise TransportError(None) from e

        if not response.ok:
            body = _decode_body(response)
            if isinstance(body, dict) and body.get("error_description"):
                raise TransportError(body["error_description"], response.status_code)
            raise TransportError(body, response.status_code)

        token = (_decode_body(response) or {}).get("access_token")
        if not token:
            raise TransportError(None, response.status_code)

        self._access_token = token
        return token

    def query(self, document: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Run a GraphQL document and return the decoded `{data, errors}` body.

        Raises:
            TransportError: the request failed before a GraphQL response was received
        """
        if not self._access_token:
            self.authenticate()

        response = self._post_graphql(document, variables)
        if response.status_code == 401:
            logger.debug("Access token rejected, re-authenticating")
            self.authenticate()
            response = self._post_graphql(document, variables)

        if not response.ok:
            raise TransportError(_decode_body(response), response.status_code)

        body = _decode_body(response)
        if not isinstance(body, dict):
            raise TransportError(body, response.status_code)
        return body

    def _post_graphql(self, document: str, variables: Optional[Dict[str, Any]]) -> requests.Response:
        url = f"{self.base_url}/graphql"
        headers = {
            "Authorization": f"Bearer {self._access_token}",
            "Content-Type": "application/json",
        }
        try:
            return self._session.post(
                url,
                json={"query": document, "variables": variables or {}},
                headers=headers,
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            logger.debug(f"GraphQL request failed: {e}")
            raise TransportError(None) from e


def _decode_body(response: requests.Response) -> Any:
    """Decoded JSON body, else the raw text, else None."""
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text or None


def run_query(client: PlatformClient, document: str, variables: Optional[Dict[str, Any]] = None) -> QueryResult:
    """Run a query and collapse every outcome into a QueryResult."""
    try:
        body = client.query(document, variables)
    except TransportError as e:
        return TransportFailure(raw=e.raw, status_code=e.status_code)

    logger.debug(f"GraphQL response: {body}")

    errors = body.get("errors")
    if errors:
        return GraphQLErrors(errors=list(errors), data=body.get("data"))
    return Ok(data=body.get("data") or {})
