# src/seller_radar/domain/ports.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Protocol

from seller_radar.domain.property import MarketData, PropertyOpportunity

LocationKind = Literal["zip", "city", "state"]


# ----------------------------
# Market-data lookup key
# ----------------------------

@dataclass(frozen=True)
class LocationKey:
    kind: LocationKind
    state: str | None = None
    city: str | None = None
    zip: str | None = None

    @property
    def cache_key(self) -> str:
        if self.kind == "zip":
            return f"zip:{self.zip}"
        if self.kind == "city":
            return f"city:{(self.state or '').upper()}|{(self.city or '').lower()}"
        return f"state:{(self.state or '').upper()}"

    @classmethod
    def for_property(cls, prop: PropertyOpportunity) -> LocationKey | None:
        """ZIP, else city+state, else state; None when the property has no location."""
        zipcode = (prop.zip or "").strip()
        city = (prop.city or "").strip()
        state = (prop.state or "").strip()
        if zipcode:
            return cls(kind="zip", zip=zipcode, state=state or None, city=city or None)
        if city and state:
            return cls(kind="city", state=state.upper(), city=city)
        if state:
            return cls(kind="state", state=state.upper())
        return None


# ----------------------------
# Market-data provider interface
# ----------------------------

class MarketDataProvider(Protocol):
    async def get_market_data(self, location: LocationKey) -> MarketData | None:
        ...
