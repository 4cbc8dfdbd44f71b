"""External exchange rate providers.

All providers implement the RateProvider protocol: given a base currency
code, return the latest quotes for every currency the provider knows.
"""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Protocol

import httpx

logger = logging.getLogger(__name__)


class RateProviderError(Exception):
    """Raised when a provider cannot return quotes for a base currency."""

    def __init__(self, base_currency: str, reason: str):
        self.base_currency = base_currency
        self.reason = reason
        super().__init__(f"Rate provider failed for base {base_currency}: {reason}")


class RateProvider(Protocol):
    """Protocol for exchange rate sources."""

    provider_name: str

    async def latest(self, base_currency: str) -> dict[str, Decimal]:
        """Return a mapping of currency code -> units per one base_currency."""
        ...


class HttpRateProvider:
    """Client for exchangerate-api style endpoints.

    ``GET {base_url}{BASE}`` answers with
    ``{"base": "USD", "date": "...", "rates": {"ZAR": 18.2, ...}}``.
    One attempt per call; no retries. The provider keeps one
    ``httpx.AsyncClient`` for its lifetime; call ``aclose`` on shutdown.
    An injected client belongs to the caller and is left open.
    """

    provider_name = "exchangerate-api"

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url
        self.api_key = api_key
        self.timeout = timeout
        self.transport = transport
        self._client = client
        self._owns_client = client is None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, transport=self.transport)
        return self._client

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def latest(self, base_currency: str) -> dict[str, Decimal]:
        url = f"{self.base_url}{base_currency}"
        params = {"apikey": self.api_key} if self.api_key else None

        try:
            response = await self.client.get(url, params=params, timeout=self.timeout)
            response.raise_for_status()
            payload: Any = response.json()
        except httpx.HTTPError as exc:
            raise RateProviderError(base_currency, str(exc)) from exc
        except ValueError as exc:
            raise RateProviderError(base_currency, f"invalid JSON: {exc}") from exc

        rates = payload.get("rates") if isinstance(payload, dict) else None
        if not isinstance(rates, dict):
            raise RateProviderError(base_currency, "response has no 'rates' object")

        quotes: dict[str, Decimal] = {}
        for code, value in rates.items():
            try:
                quote = Decimal(str(value))
            except InvalidOperation:
                quote = None
            if quote is None or not quote.is_finite():
                logger.warning(
                    "Ignoring non-numeric quote %r for %s from %s",
                    value,
                    code,
                    self.provider_name,
                )
                continue
            quotes[str(code).upper()] = quote
        return quotes
