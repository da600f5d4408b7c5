"""Charity, grant and organization profile schemas.

Upstream payloads arrive camelCase and are validated with the same models;
``raw_data`` is kept for caching but excluded from API responses.
"""

import re
from datetime import datetime
from typing import Literal

from pydantic import Field

from deliberate.schemas.base import CamelModel

EIN_PATTERN = re.compile(r"^\d{2}-?\d{7}$")


class CharityLookupResult(CamelModel):
    ein: str
    name: str
    city: str | None = None
    state: str | None = Field(default=None, max_length=2)
    zip_code: str | None = None
    tax_status: str | None = None
    deductibility: str | None = None
    ntee_code: str | None = None
    filing_requirement: str | None = None
    ruling_date: str | None = None
    raw_data: dict | None = Field(default=None, exclude=True)


class CharitySearchItem(CamelModel):
    ein: str
    name: str
    city: str | None = None
    state: str | None = None
    ntee_code: str | None = None


class CharitySearchResult(CamelModel):
    results: list[CharitySearchItem]
    total: int
    has_more: bool


class CharityVerification(CamelModel):
    ein: str
    organization_name: str
    is_public_charity: bool
    is_tax_deductible: bool
    status: str


class GrantOpportunity(CamelModel):
    external_id: str | None = None
    title: str
    agency: str | None = None
    funding_category: str | None = None
    award_floor: int | None = None
    award_ceiling: int | None = None
    open_date: str | None = None
    close_date: str | None = None
    description: str | None = None
    raw_data: dict | None = Field(default=None, exclude=True)


class GrantDiscoverRequest(CamelModel):
    """POST /api/grants/discover request."""

    query: str = Field(min_length=2)
    max_results: int = Field(default=25, ge=1, le=100)
    page: int = Field(default=1, ge=1)


class GrantDiscoverResult(CamelModel):
    opportunities: list[GrantOpportunity]
    total: int
    page: int


class GrantAgenciesRequest(CamelModel):
    """POST /api/grants/agencies request."""

    include_opportunities: bool = False
    focus_agencies: list[str] | None = None
    funding_category: str | None = None
    max_agencies: int = Field(default=10, ge=1, le=50)


class AgencyInfo(CamelModel):
    name: str
    focus_areas: list[str] | None = None
    total_funding: float | None = None
    opportunity_count: int | None = None
    opportunities: list[GrantOpportunity] | None = None


class GrantAgenciesResult(CamelModel):
    agencies: list[AgencyInfo]


class GrantTrendsRequest(CamelModel):
    """POST /api/grants/trends request."""

    time_window_days: int = Field(default=90, ge=7, le=365)
    category_filter: str | None = None
    agency_filter: str | None = None
    min_award_amount: int | None = None
    include_forecasted: bool = False


class FundingTrend(CamelModel):
    category: str
    total_amount: float | None = None
    opportunity_count: int | None = None
    average_award: float | None = None
    trend: Literal["increasing", "decreasing", "stable", "insufficient_data"] | None = None


class TrendSummary(CamelModel):
    total_opportunities: int
    total_funding: float
    top_category: str | None = None
    time_window_days: int


class GrantTrendsResult(CamelModel):
    trends: list[FundingTrend]
    summary: TrendSummary


GrantAlertStatus = Literal["new", "reviewed", "dismissed", "applied"]


class GrantOpportunityOut(CamelModel):
    """A cached grant opportunity."""

    id: int
    external_id: str | None = None
    title: str
    agency: str | None = None
    funding_category: str | None = None
    award_floor: int | None = None
    award_ceiling: int | None = None
    open_date: str | None = None
    close_date: str | None = None
    description: str | None = None


class GrantAlertOut(CamelModel):
    id: int
    grant_opportunity_id: int
    relevance_score: float = Field(ge=0, le=100)
    relevance_reason: str | None = None
    matched_keywords: list[str] | None = None
    status: GrantAlertStatus
    notified_at: datetime | None = None
    created_at: datetime
    grant: GrantOpportunityOut | None = None


class GrantAlertList(CamelModel):
    alerts: list[GrantAlertOut]
    total: int
    new_count: int


class GrantAlertStatusUpdate(CamelModel):
    status: GrantAlertStatus


class OrgGrantHistoryEntry(CamelModel):
    id: int | None = None
    funder_name: str
    amount: int
    year: int
    source_url: str | None = None
    notes: str | None = None


class OrgProfile(CamelModel):
    ein: str
    name: str
    city: str | None = None
    state: str | None = None
    tax_status: str | None = None
    is_public_charity: bool | None = None
    is_tax_deductible: bool | None = None
    ntee_code: str | None = None
    revenue: float | None = None
    expenses: float | None = None
    assets: float | None = None
    employee_count: int | None = None
    fetched_at: datetime | None = None
    grant_history: list[OrgGrantHistoryEntry] = Field(default_factory=list)
    alert_count: int = 0


class NonprofitOut(CamelModel):
    id: int
    ein: str
    name: str
    city: str | None = None
    state: str | None = None
    tax_status: str | None = None
    is_public_charity: bool | None = None
    is_tax_deductible: bool | None = None


class ServiceStatus(CamelModel):
    connected: bool
    error: str | None = None


class IntegrationStatus(CamelModel):
    charity: ServiceStatus
    providers: list[str]
