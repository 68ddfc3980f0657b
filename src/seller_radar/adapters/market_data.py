# src/seller_radar/adapters/market_data.py
from __future__ import annotations

import asyncio
import json
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from seller_radar.adapters.logging_utils import get_logger
from seller_radar.domain.ports import LocationKey, MarketDataProvider
from seller_radar.domain.property import MarketData, PropertyOpportunity

logger = get_logger(__name__)


class MarketDataCache:
    """
    Memoizes market-data lookups per location key for one scoring session.

    Concurrent callers for the same key share a single in-flight fetch.
    Completed results (including None) are kept as plain values so a cache
    can outlive the event loop that filled it. Provider errors are logged
    and memoized as None.
    """

    def __init__(self) -> None:
        self._values: dict[str, MarketData | None] = {}
        self._pending: dict[str, asyncio.Future] = {}

    def __contains__(self, key: str) -> bool:
        return key in self._values

    def __len__(self) -> int:
        return len(self._values)

    async def get(
        self,
        location: LocationKey,
        provider: MarketDataProvider,
    ) -> MarketData | None:
        key = location.cache_key
        if key in self._values:
            return self._values[key]

        pending = self._pending.get(key)
        if pending is None:
            pending = asyncio.ensure_future(self._load(location, provider))
            self._pending[key] = pending
        return await pending

    async def _load(self, location: LocationKey, provider: MarketDataProvider) -> MarketData | None:
        key = location.cache_key
        try:
            result = await provider.get_market_data(location)
        except Exception as e:
            logger.warning(
                "market_data_fetch_failed",
                extra={"context": {"key": key, "error": str(e)}},
            )
            result = None
        self._values[key] = result
        self._pending.pop(key, None)
        return result


class StaticMarketDataProvider:
    """
    In-memory provider keyed by LocationKey.cache_key
    ('zip:94102', 'city:CA|san francisco', 'state:CA').
    """

    def __init__(self, data: Mapping[str, MarketData | Mapping[str, Any]] | None = None) -> None:
        self._data: dict[str, MarketData] = {}
        for key, value in (data or {}).items():
            self._data[key] = value if isinstance(value, MarketData) else MarketData.model_validate(value)

    @classmethod
    def from_json(cls, path: str | Path) -> StaticMarketDataProvider:
        p = Path(path)
        if not p.exists():
            raise FileNotFoundError(f"Market data file not found: {p}")
        with p.open("r", encoding="utf-8") as f:
            return cls(json.load(f))

    def lookup(self, location: LocationKey | None) -> MarketData | None:
        if location is None:
            return None
        return self._data.get(location.cache_key)

    def lookup_property(self, prop: PropertyOpportunity) -> MarketData | None:
        return self.lookup(LocationKey.for_property(prop))

    async def get_market_data(self, location: LocationKey) -> MarketData | None:
        return self.lookup(location)
