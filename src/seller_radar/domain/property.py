# src/seller_radar/domain/property.py
from __future__ import annotations

from datetime import date
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from seller_radar.domain.vectors import SellerFeatureVector

Priority = Literal["high", "medium", "low"]
MarketHealth = Literal["excellent", "good", "fair", "poor"]


class _CamelModel(BaseModel):
    # collaborators send camelCase JSON; python callers use snake_case
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


# ----------------------------
# Property input
# ----------------------------

class EngagementEvent(_CamelModel):
    type: str
    occurred_at: date


class EngagementSignals(_CamelModel):
    multi_channel_score: float | None = None
    last_engagement_date: date | None = None
    high_intent_events: list[EngagementEvent] = Field(default_factory=list)


class PropertyOpportunity(_CamelModel):
    id: str
    address: str = ""
    owner: str = ""
    owner_type: str | None = None
    priority: Priority = "medium"

    city: str = ""
    state: str = ""
    zip: str = ""
    county: str | None = None
    neighborhood: str | None = None
    county_fips: str | None = None
    msa: str | None = None
    latitude: float | None = None
    longitude: float | None = None

    market_value: float = Field(..., description="Current estimated market value")
    assessed_value: float | None = None
    estimated_equity: float = 0.0
    equity_upside: float = 0.0
    annual_property_tax: float | None = None

    years_in_home: float = 0.0
    loan_balance: float | None = None
    monthly_mortgage_payment: float | None = None
    loan_interest_rate: float | None = Field(default=None, description="Percent, e.g. 3.25")
    household_income_band: str | None = None
    owner_age: float | None = None

    last_sale_date: date | None = None
    last_refinance_date: date | None = None
    last_listing_date: date | None = None
    refinance_count_5y: int | None = None

    listing_score: float = Field(default=0.0, description="Internal listing readiness, 0-100")
    digital_engagement_score: float | None = None
    engagement: EngagementSignals | None = None
    neighbors_listed_12_months: int | None = None
    life_event_signals: list[str] = Field(default_factory=list)

    seller_outcome: Literal[0, 1] | None = None
    seller_features: SellerFeatureVector | None = None

    @field_validator("listing_score")
    @classmethod
    def _listing_score_range(cls, v: float) -> float:
        if not (0.0 <= v <= 100.0):
            raise ValueError("listing_score must be between 0 and 100")
        return v

    @field_validator("state")
    @classmethod
    def _upper_state(cls, v: str) -> str:
        return v.strip().upper()


# ----------------------------
# Market data (collaborator payload)
# ----------------------------

class RedfinSnapshot(_CamelModel):
    region_name: str | None = None
    region_type: str | None = None
    state_code: str | None = None
    median_dom: float | None = None
    months_of_supply: float | None = None
    sold_above_list: float | None = None
    price_drops: float | None = None


class CensusSnapshot(_CamelModel):
    median_home_value: float | None = None
    median_household_income: float | None = None
    occupancy_rate: float | None = None
    median_year_built: int | None = None


class HudSnapshot(_CamelModel):
    price_appreciation: float | None = None
    affordability_index: float | None = None
    income_to_price_ratio: float | None = None
    cost_burdened_households: float | None = None


class EconomicSnapshot(_CamelModel):
    mortgage_rate_30y: float | None = None
    unemployment_rate: float | None = None
    gdp_growth: float | None = None
    consumer_confidence: float | None = None
    home_ownership_rate: float | None = None


class MarketInsights(_CamelModel):
    market_health: MarketHealth | None = None
    affordability_score: float | None = None
    market_velocity: float | None = None
    investment_potential: float | None = None


class MarketData(_CamelModel):
    redfin: RedfinSnapshot | None = None
    census: CensusSnapshot | None = None
    hud: HudSnapshot | None = None
    economic: EconomicSnapshot | None = None
    insights: MarketInsights | None = None
