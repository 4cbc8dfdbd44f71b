"""Currency conversion through a database rate cache.

Rate lookup order:
1. Same currency: 1, no I/O
2. Freshest cached ExchangeRate row inside the freshness window
3. Rate provider, keyed by the source currency; the quote is appended
   to the cache by a background task that owns its own session
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import aliased

from hr_payroll.calculators.line_builder import LineItemBuilder
from hr_payroll.calculators.rate_provider import HttpRateProvider, RateProvider, RateProviderError
from hr_payroll.models import Company, Currency, ExchangeRate

if TYPE_CHECKING:
    from hr_payroll.config import Settings

logger = logging.getLogger(__name__)

PARITY = Decimal("1")


class RateUnavailableError(Exception):
    """Raised when no exchange rate can be found in the cache or the provider."""

    def __init__(self, from_currency: str, to_currency: str, reason: str):
        self.from_currency = from_currency
        self.to_currency = to_currency
        self.reason = reason
        super().__init__(
            f"No exchange rate available for {from_currency}->{to_currency}: {reason}"
        )


class CompanyNotFoundError(Exception):
    """Raised when a company referenced by a currency operation does not exist."""

    def __init__(self, company_id: UUID):
        self.company_id = company_id
        super().__init__(f"Company {company_id} not found")


class CurrencyConverter:
    """Resolves exchange rates and converts amounts between currencies.

    Reads go through the caller's session. Cache appends triggered by a
    provider fetch run in a separate session from ``session_factory`` so
    they never join the caller's transaction; without a factory the quote
    is used but not cached.
    """

    def __init__(
        self,
        session: AsyncSession,
        provider: RateProvider,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        cache_ttl: timedelta = timedelta(hours=24),
        fallback_to_parity: bool = False,
    ):
        self.session = session
        self.provider = provider
        self.session_factory = session_factory
        self.cache_ttl = cache_ttl
        self.fallback_to_parity = fallback_to_parity
        self._pending: set[asyncio.Task[None]] = set()

    @classmethod
    def from_settings(
        cls,
        session: AsyncSession,
        settings: Settings,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        provider: RateProvider | None = None,
    ) -> CurrencyConverter:
        """Build a converter wired to the configured HTTP provider."""
        if provider is None:
            provider = HttpRateProvider(
                base_url=settings.rate_api_url,
                api_key=settings.rate_api_key,
                timeout=settings.rate_api_timeout,
            )
        return cls(
            session,
            provider,
            session_factory=session_factory,
            cache_ttl=timedelta(hours=settings.rate_cache_ttl_hours),
            fallback_to_parity=settings.rate_fallback_to_parity,
        )

    async def rate(self, from_currency: str, to_currency: str) -> Decimal:
        """Get the rate that converts one unit of from_currency into to_currency.

        Raises:
            RateUnavailableError: If neither the cache nor the provider has a
                quote and parity fallback is disabled
        """
        from_currency = from_currency.upper()
        to_currency = to_currency.upper()
        if from_currency == to_currency:
            return PARITY

        cached = await self._cached_rate(from_currency, to_currency)
        if cached is not None:
            return cached

        try:
            quote = await self._fetch_rate(from_currency, to_currency)
        except RateUnavailableError:
            if not self.fallback_to_parity:
                raise
            logger.warning(
                "Rate %s->%s unavailable, falling back to parity",
                from_currency,
                to_currency,
            )
            return PARITY

        self._schedule_store(from_currency, to_currency, quote)
        return quote

    async def convert(self, amount: Decimal, from_currency: str, to_currency: str) -> Decimal:
        """Convert amount, rounded to cents. Same-currency amounts are returned as-is."""
        converted, _ = await self.convert_with_rate(amount, from_currency, to_currency)
        return converted

    async def convert_with_rate(
        self,
        amount: Decimal,
        from_currency: str,
        to_currency: str,
    ) -> tuple[Decimal, Decimal]:
        """Convert amount and also return the rate that was applied."""
        if from_currency.upper() == to_currency.upper():
            return amount, PARITY
        rate = await self.rate(from_currency, to_currency)
        return LineItemBuilder.round_to_cents(amount * rate), rate

    async def refresh_all(self, company_id: UUID) -> dict[str, Decimal]:
        """Fetch fresh quotes for every active currency against the company base.

        Rows are added to the caller's session and flushed; the caller
        commits. Failures for individual currencies are logged and skipped.

        Returns:
            Mapping of currency code -> stored rate into the base currency
        """
        base_result = await self.session.execute(
            select(Currency)
            .join(Company, Company.base_currency_id == Currency.currency_id)
            .where(Company.company_id == company_id)
        )
        base = base_result.scalar_one_or_none()
        if base is None:
            raise CompanyNotFoundError(company_id)

        result = await self.session.execute(
            select(Currency).where(
                Currency.is_active.is_(True),
                Currency.currency_id != base.currency_id,
            )
        )

        refreshed: dict[str, Decimal] = {}
        now = datetime.now(timezone.utc)
        for currency in result.scalars().all():
            try:
                quote = await self._fetch_rate(currency.code, base.code)
            except RateUnavailableError as exc:
                logger.warning("Skipping rate refresh for %s: %s", currency.code, exc.reason)
                continue

            self.session.add(
                ExchangeRate(
                    from_currency_id=currency.currency_id,
                    to_currency_id=base.currency_id,
                    rate=quote,
                    effective_at=now,
                    source="api",
                )
            )
            refreshed[currency.code] = quote

        await self.session.flush()
        logger.info(
            "Refreshed %d exchange rates into %s for company %s",
            len(refreshed),
            base.code,
            company_id,
        )
        return refreshed

    async def drain(self) -> None:
        """Wait for in-flight background cache writes."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _cached_rate(self, from_currency: str, to_currency: str) -> Decimal | None:
        source = aliased(Currency)
        target = aliased(Currency)
        cutoff = datetime.now(timezone.utc) - self.cache_ttl

        result = await self.session.execute(
            select(ExchangeRate.rate)
            .join(source, ExchangeRate.from_currency_id == source.currency_id)
            .join(target, ExchangeRate.to_currency_id == target.currency_id)
            .where(
                source.code == from_currency,
                target.code == to_currency,
                ExchangeRate.effective_at >= cutoff,
            )
            .order_by(ExchangeRate.effective_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def _fetch_rate(self, from_currency: str, to_currency: str) -> Decimal:
        try:
            quotes = await self.provider.latest(from_currency)
        except RateProviderError as exc:
            raise RateUnavailableError(from_currency, to_currency, exc.reason) from exc

        quote = quotes.get(to_currency)
        if quote is None:
            raise RateUnavailableError(
                from_currency,
                to_currency,
                f"{self.provider.provider_name} has no quote for {to_currency}",
            )
        if not quote.is_finite() or quote <= 0:
            raise RateUnavailableError(
                from_currency, to_currency, f"unusable quote {quote}"
            )
        return LineItemBuilder.round_rate(quote)

    def _schedule_store(self, from_currency: str, to_currency: str, rate: Decimal) -> None:
        if self.session_factory is None:
            logger.debug("No session factory, not caching %s->%s", from_currency, to_currency)
            return
        task = asyncio.create_task(
            self._store_rate(self.session_factory, from_currency, to_currency, rate)
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _store_rate(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        from_currency: str,
        to_currency: str,
        rate: Decimal,
    ) -> None:
        try:
            async with session_factory() as session:
                result = await session.execute(
                    select(Currency).where(Currency.code.in_((from_currency, to_currency)))
                )
                by_code = {c.code: c for c in result.scalars().all()}
                if from_currency not in by_code or to_currency not in by_code:
                    logger.warning(
                        "Not caching rate %s->%s: currency not registered",
                        from_currency,
                        to_currency,
                    )
                    return

                session.add(
                    ExchangeRate(
                        from_currency_id=by_code[from_currency].currency_id,
                        to_currency_id=by_code[to_currency].currency_id,
                        rate=rate,
                        effective_at=datetime.now(timezone.utc),
                        source="api",
                    )
                )
                await session.commit()
        except Exception:
            logger.exception("Failed to cache exchange rate %s->%s", from_currency, to_currency)
