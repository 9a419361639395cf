"""Async client for the Doma registry.

Two surfaces are used:
- the GraphQL subgraph, for name records and token marketplace activity
- the Poll REST API, for the registry event stream

Every upstream failure is raised as ``DomaAPIError`` so callers can decide
whether it should fall back to demo data.
"""
from typing import Any, Dict, List, Optional

import httpx

from app.core.config import settings
from app.core.logging import get_logger, LogTimer
from app.domain.registry import NameRecord, PollResponse, TokenActivity

logger = get_logger(__name__)


DOMAIN_QUERY = """
  query GetDomainData($name: String!) {
    name(name: $name) {
      name
      expiresAt
      tokenizedAt
      eoi
      claimedBy
      transferLock
      tokens {
        tokenId
        owner
        networkId
        createdAt
      }
      activities {
        type
        txHash
        sld
        tld
        createdAt
        ... on NameClaimedActivity {
          claimedBy
        }
        ... on NameRenewedActivity {
          expiresAt
        }
        ... on NameTokenizedActivity {
          networkId
        }
        ... on NameDetokenizedActivity {
          networkId
        }
      }
    }
  }
"""

TOKEN_ACTIVITIES_QUERY = """
  query GetTokenActivities($tokenId: String!) {
    tokenActivities(tokenId: $tokenId, take: 100, sortOrder: DESC) {
      items {
        type
        txHash
        tokenId
        createdAt
        finalized
        ... on TokenTransferredActivity {
          transferredTo
          transferredFrom
        }
        ... on TokenListedActivity {
          orderId
          seller
          buyer
          payment {
            amount
            currency
          }
          startsAt
          expiresAt
        }
        ... on TokenOfferReceivedActivity {
          orderId
          buyer
          seller
          payment {
            amount
            currency
          }
          expiresAt
        }
        ... on TokenPurchasedActivity {
          orderId
          seller
          buyer
          payment {
            amount
            currency
          }
          purchasedAt
        }
        ... on TokenListingCancelledActivity {
          orderId
          reason
        }
        ... on TokenOfferCancelledActivity {
          orderId
          reason
        }
      }
      totalCount
    }
  }
"""

# Markers of a missing or rejected key in registry error messages
AUTH_FAILURE_MARKERS = ("API Key", "401", "400")


class DomaAPIError(Exception):
    """Raised when the Doma registry cannot serve a request."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    @property
    def is_auth_failure(self) -> bool:
        """True when the failure looks like a missing, invalid or malformed key."""
        return any(marker in self.message for marker in AUTH_FAILURE_MARKERS)


class DomaClient:
    """Thin async wrapper around the Doma GraphQL and Poll endpoints.

    Example:
        >>> client = DomaClient()
        >>> record = await client.fetch_name("crypto.eth", api_key="...")
        >>> activities = await client.fetch_token_activities(record.primary_token_id)
    """

    def __init__(
        self,
        endpoint: Optional[str] = None,
        api_key: Optional[str] = None,
        poll_base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the client.

        Args:
            endpoint: GraphQL endpoint (default from DOMA_API_ENDPOINT)
            api_key: Server-side key used when the caller supplies none
            poll_base_url: Base URL of the Poll REST API
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (tests use MockTransport)
        """
        self.endpoint = endpoint or settings.doma_api_endpoint
        self.api_key = api_key if api_key is not None else settings.doma_api_key
        self.poll_base_url = (poll_base_url or settings.doma_poll_base_url).rstrip("/")
        self.timeout = timeout or settings.doma_timeout_seconds
        self._transport = transport

    def resolve_key(self, api_key: Optional[str] = None) -> Optional[str]:
        """Caller-supplied key first, then the configured one."""
        return api_key or self.api_key or None

    def _http(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    # -----------------
    # GRAPHQL
    # -----------------

    async def query(self, query: str, variables: Dict[str, Any], api_key: Optional[str] = None) -> Dict[str, Any]:
        """Run a GraphQL query and return its ``data`` payload.

        Raises:
            DomaAPIError: On transport errors, non-2xx responses or GraphQL errors
        """
        headers = {"Content-Type": "application/json"}
        key = self.resolve_key(api_key)
        if key:
            headers["Authorization"] = f"Bearer {key}"

        try:
            async with self._http() as client:
                response = await client.post(
                    self.endpoint,
                    json={"query": query, "variables": variables},
                    headers=headers,
                )
        except httpx.HTTPError as e:
            logger.error(f"Doma API transport error: {e}", extra={"error_type": type(e).__name__})
            raise DomaAPIError(f"Doma API unreachable: {e}") from e

        if response.status_code >= 400:
            message = f"HTTP {response.status_code}: {response.reason_phrase}"
            logger.error(f"Doma API Error: {message}", extra={"status_code": response.status_code})
            raise DomaAPIError(message, status_code=response.status_code)

        try:
            payload = response.json()
        except ValueError as e:
            raise DomaAPIError("Doma API returned invalid JSON") from e

        if not isinstance(payload, dict):
            raise DomaAPIError("Doma API returned an unexpected payload")

        errors = payload.get("errors")
        if errors:
            first = errors[0] if isinstance(errors, list) else errors
            if isinstance(first, dict):
                message = first.get("message") or "Unknown GraphQL error"
            else:
                message = str(first)
            logger.error(f"Doma API Error: {message}")
            raise DomaAPIError(message)

        data = payload.get("data") or {}
        if not isinstance(data, dict):
            raise DomaAPIError("Doma API returned an unexpected payload")
        return data

    async def fetch_name(self, name: str, api_key: Optional[str] = None) -> Optional[NameRecord]:
        """Fetch a name record, or None when the registry does not know it."""
        with LogTimer(logger, f"doma_query:name:{name}"):
            data = await self.query(DOMAIN_QUERY, {"name": name}, api_key)
        record = data.get("name")
        return NameRecord.model_validate(record) if record else None

    async def fetch_token_activities(self, token_id: str, api_key: Optional[str] = None) -> List[TokenActivity]:
        """Fetch the latest 100 marketplace activities of a token, newest first."""
        with LogTimer(logger, f"doma_query:token_activities:{token_id}"):
            data = await self.query(TOKEN_ACTIVITIES_QUERY, {"tokenId": token_id}, api_key)
        items = (data.get("tokenActivities") or {}).get("items") or []
        return [TokenActivity.model_validate(item) for item in items]

    # -----------------
    # POLL API
    # -----------------

    def _poll_headers(self, api_key: str) -> Dict[str, str]:
        return {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "Api-Key": api_key,
        }

    def _require_poll_key(self, api_key: Optional[str], operation: str) -> str:
        key = self.resolve_key(api_key)
        if not key:
            raise DomaAPIError(f"{operation} requires an API key", status_code=401)
        return key

    @staticmethod
    def _check_poll_response(response: httpx.Response, operation: str) -> None:
        if response.status_code == 401:
            raise DomaAPIError("Unauthorized: API Key is missing or invalid", status_code=401)
        if response.status_code == 403:
            raise DomaAPIError("Forbidden: API Key missing 'EVENTS' permission", status_code=403)
        if response.status_code >= 400:
            raise DomaAPIError(f"{operation} failed: HTTP {response.status_code}", status_code=response.status_code)

    async def _poll_request(self, method: str, path: str, api_key: str, operation: str, params=None) -> httpx.Response:
        try:
            async with self._http() as client:
                response = await client.request(
                    method,
                    f"{self.poll_base_url}{path}",
                    params=params,
                    headers=self._poll_headers(api_key),
                )
        except httpx.TimeoutException as e:
            raise DomaAPIError("Request timeout") from e
        except httpx.HTTPError as e:
            raise DomaAPIError(f"{operation} failed: {e}") from e
        self._check_poll_response(response, operation)
        return response

    async def poll_events(
        self,
        api_key: Optional[str] = None,
        event_types: Optional[List[str]] = None,
        limit: Optional[int] = None,
        finalized_only: bool = True,
    ) -> PollResponse:
        """Fetch the next page of registry events for this key's cursor."""
        key = self._require_poll_key(api_key, "Poll API")

        params: List[tuple] = []
        if limit is not None and limit > 0:
            params.append(("limit", str(limit)))
        for event_type in event_types or []:
            params.append(("eventTypes", event_type))
        params.append(("finalizedOnly", "true" if finalized_only else "false"))

        response = await self._poll_request("GET", "/v1/poll", key, "Poll", params=params)
        return PollResponse.model_validate(response.json())

    async def ack_events(self, last_event_id: int, api_key: Optional[str] = None) -> None:
        """Acknowledge every event up to and including ``last_event_id``."""
        key = self._require_poll_key(api_key, "Ack")
        await self._poll_request("POST", f"/v1/poll/ack/{last_event_id}", key, "Ack")

    async def reset_poll(self, event_id: int, api_key: Optional[str] = None) -> None:
        """Move the poll cursor back to ``event_id``."""
        key = self._require_poll_key(api_key, "Reset")
        if event_id < 0:
            raise DomaAPIError("Invalid eventId", status_code=400)
        await self._poll_request("POST", f"/v1/poll/reset/{event_id}", key, "Reset")


_client: Optional[DomaClient] = None


def get_doma_client() -> DomaClient:
    """Shared client instance (FastAPI dependency)."""
    global _client
    if _client is None:
        _client = DomaClient()
    return _client
