"""Per-country schedule store engines."""

from collections.abc import Callable

import structlog
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from medbook.config import settings
from medbook.core.lifecycle import ensure_supported_country
from medbook.database import to_async_url
from medbook.schemas.appointments import CountryISO

logger = structlog.get_logger(__name__)


def create_country_engine(country: CountryISO) -> AsyncEngine:
    """Create a pooled engine for a country's schedule store."""
    return create_async_engine(
        to_async_url(settings.country_database_url(country.value)),
        echo=settings.debug,
        pool_pre_ping=True,
        pool_size=settings.country_pool_size,
        max_overflow=0,
        pool_recycle=3600,
    )


class CountryEnginePool:
    """
    Owns one engine per country, created on first use.

    Engines are disposed with ``release`` at the end of a processing batch
    and re-created lazily by the next ``get_engine`` call.
    """

    def __init__(self, engine_factory: Callable[[CountryISO], AsyncEngine] = create_country_engine):
        """Initialize pool with the factory used to build engines."""
        self._engine_factory = engine_factory
        self._engines: dict[CountryISO, AsyncEngine] = {}

    def get_engine(self, country_iso: str | CountryISO) -> AsyncEngine:
        """
        Get the engine for a country, creating it if needed.

        Raises:
            UnsupportedCountry: If the country has no schedule store
        """
        country = ensure_supported_country(country_iso)
        if country not in self._engines:
            self._engines[country] = self._engine_factory(country)
            logger.info("country_engine_created", country=country.value)
        return self._engines[country]

    def is_open(self, country_iso: str | CountryISO) -> bool:
        """Check if an engine is currently held for a country."""
        return ensure_supported_country(country_iso) in self._engines

    async def release(self, country_iso: str | CountryISO) -> None:
        """
        Dispose the engine held for a country.

        Failures are logged and never raised; the engine is dropped either way.
        """
        country = ensure_supported_country(country_iso)
        engine = self._engines.pop(country, None)
        if engine is None:
            return
        try:
            await engine.dispose()
            logger.info("country_engine_released", country=country.value)
        except Exception as e:
            logger.warning("country_engine_release_failed", country=country.value, error=str(e))

    async def release_all(self) -> None:
        """Dispose every held engine."""
        for country in list(self._engines):
            await self.release(country)

    async def check(self, country_iso: str | CountryISO) -> bool:
        """Check if a country's schedule store is reachable."""
        try:
            async with self.get_engine(country_iso).connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except Exception:
            return False
