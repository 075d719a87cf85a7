"""Thin client for the account-aggregation API (Plaid-compatible wire format).

Only the calls this package consumes are wrapped:

- ``POST /link/token/create``: a short-lived token that starts the link flow.
- ``POST /transactions/sync``: one page of the cursor-based change feed.
- ``POST /item/public_token/exchange``: trade a link token for credentials.
- ``POST /accounts/get``: list the sub-accounts behind one credential.

The client is constructed once from :class:`~expense_ingest.config.AggregatorSettings`
and passed explicitly to the sync routines, so tests can hand in a fake with
the same methods. No retries happen here; callers decide how to react.
"""

from __future__ import annotations

from typing import Any

import requests
from pydantic import ValidationError

from .config import AggregatorSettings
from .logging_setup import get_logger
from .models import FeedAccount, FeedPage

logger = get_logger("expense_ingest.aggregator_client")

DEFAULT_CLIENT_NAME = "Family Expense Tracker"


class AggregatorError(Exception):
    """Base exception for aggregation API failures."""


class AggregatorConnectionError(AggregatorError):
    """The API could not be reached (DNS, TLS, timeout, reset)."""


class AggregatorAPIError(AggregatorError):
    """The API answered with an error status or an unusable payload."""

    def __init__(
        self,
        status_code: int,
        message: str,
        *,
        error_code: str | None = None,
    ) -> None:
        self.status_code = status_code
        self.error_code = error_code
        self.message = message
        detail = f"{error_code}: {message}" if error_code else message
        super().__init__(f"aggregator API error {status_code}: {detail}")


class AggregatorClient:
    """Requests-backed client bound to one set of API credentials."""

    def __init__(
        self,
        settings: AggregatorSettings,
        *,
        session: requests.Session | None = None,
    ) -> None:
        self.settings = settings
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "PLAID-CLIENT-ID": settings.client_id,
                "PLAID-SECRET": settings.secret,
                "Content-Type": "application/json",
                "Accept": "application/json",
            }
        )

    @classmethod
    def from_env(cls) -> AggregatorClient:
        """Build a client from environment variables (raises ``ConfigurationError``)."""

        return cls(AggregatorSettings.from_env())

    def _post(self, endpoint: str, body: dict[str, Any]) -> dict[str, Any]:
        url = f"{self.settings.base_url}{endpoint}"
        logger.debug("POST %s", url)
        try:
            response = self.session.post(url, json=body, timeout=self.settings.timeout)
        except requests.exceptions.RequestException as e:
            raise AggregatorConnectionError(f"failed to reach {url}: {e}") from e

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if not response.ok:
            error_code = None
            message = response.reason or "request failed"
            if isinstance(payload, dict):
                error_code = payload.get("error_code")
                message = payload.get("error_message") or message
            raise AggregatorAPIError(response.status_code, message, error_code=error_code)

        if not isinstance(payload, dict):
            raise AggregatorAPIError(response.status_code, f"non-JSON response from {endpoint}")
        return payload

    def transactions_sync(self, access_token: str, cursor: str | None = None) -> FeedPage:
        """Fetch the next change-feed page after ``cursor`` (from the start when absent)."""

        body: dict[str, Any] = {"access_token": access_token}
        if cursor:
            body["cursor"] = cursor
        payload = self._post("/transactions/sync", body)
        try:
            return FeedPage.model_validate(payload)
        except ValidationError as e:
            raise AggregatorAPIError(200, f"invalid /transactions/sync payload: {e}") from e

    def create_link_token(
        self, owner_id: str, *, client_name: str = DEFAULT_CLIENT_NAME
    ) -> str:
        """Return a link token scoped to ``owner_id`` for the transactions product."""

        payload = self._post(
            "/link/token/create",
            {
                "user": {"client_user_id": owner_id},
                "client_name": client_name,
                "products": ["transactions"],
                "country_codes": ["US"],
                "language": "en",
            },
        )
        link_token = payload.get("link_token")
        if not isinstance(link_token, str) or not link_token:
            raise AggregatorAPIError(200, "link token response lacks link_token")
        return link_token

    def exchange_public_token(self, public_token: str) -> tuple[str, str]:
        """Return ``(access_token, item_id)`` for a freshly linked connection."""

        payload = self._post("/item/public_token/exchange", {"public_token": public_token})
        access_token = payload.get("access_token")
        item_id = payload.get("item_id")
        if not isinstance(access_token, str) or not isinstance(item_id, str):
            raise AggregatorAPIError(200, "token exchange response lacks access_token/item_id")
        return access_token, item_id

    def get_accounts(self, access_token: str) -> tuple[str | None, list[FeedAccount]]:
        """Return ``(institution_name, accounts)`` for one connection."""

        payload = self._post("/accounts/get", {"access_token": access_token})
        item = payload.get("item") or {}
        institution = item.get("institution_name") if isinstance(item, dict) else None
        try:
            accounts = [FeedAccount.model_validate(a) for a in payload.get("accounts") or []]
        except ValidationError as e:
            raise AggregatorAPIError(200, f"invalid /accounts/get payload: {e}") from e
        return institution, accounts


__all__ = [
    "DEFAULT_CLIENT_NAME",
    "AggregatorAPIError",
    "AggregatorClient",
    "AggregatorConnectionError",
    "AggregatorError",
]
