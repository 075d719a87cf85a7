"""Configuration for the external account-aggregation API.

Values come from the process environment (the CLI loads a local ``.env``
first):

- ``AGGREGATOR_CLIENT_ID`` / ``AGGREGATOR_SECRET``: required credentials.
- ``AGGREGATOR_ENV``: ``sandbox`` (default), ``development`` or
  ``production``; selects the base URL.
- ``AGGREGATOR_BASE_URL``: optional explicit base URL (wins over the env).
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

ENVIRONMENT_URLS: dict[str, str] = {
    "sandbox": "https://sandbox.plaid.com",
    "development": "https://development.plaid.com",
    "production": "https://production.plaid.com",
}


class ConfigurationError(RuntimeError):
    """Raised when required configuration is missing or invalid."""


@dataclass(frozen=True, slots=True)
class AggregatorSettings:
    client_id: str
    secret: str
    environment: str = "sandbox"
    base_url: str = ENVIRONMENT_URLS["sandbox"]
    timeout: float = 30.0

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> AggregatorSettings:
        env = os.environ if environ is None else environ
        client_id = (env.get("AGGREGATOR_CLIENT_ID") or "").strip()
        secret = (env.get("AGGREGATOR_SECRET") or "").strip()
        if not client_id or not secret:
            raise ConfigurationError("AGGREGATOR_CLIENT_ID and AGGREGATOR_SECRET must be set")

        environment = (env.get("AGGREGATOR_ENV") or "sandbox").strip().lower()
        override = (env.get("AGGREGATOR_BASE_URL") or "").strip()
        if override:
            base_url = override
        elif environment in ENVIRONMENT_URLS:
            base_url = ENVIRONMENT_URLS[environment]
        else:
            allowed = ", ".join(ENVIRONMENT_URLS)
            raise ConfigurationError(
                f"AGGREGATOR_ENV={environment!r} is not recognized (expected one of: {allowed})"
            )
        return cls(
            client_id=client_id,
            secret=secret,
            environment=environment,
            base_url=base_url.rstrip("/"),
        )


__all__ = ["AggregatorSettings", "ConfigurationError", "ENVIRONMENT_URLS"]
