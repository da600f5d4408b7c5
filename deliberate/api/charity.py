"""Charity, grant and organization profile endpoints."""

import logging
from datetime import datetime, timedelta, timezone
from typing import Annotated

from fastapi import APIRouter, Query, status
from pydantic import BaseModel

from deliberate.api.deps import CharityDep, CompletionsDep, LifecycleDep, StorageDep
from deliberate.auth.middleware import UserDep
from deliberate.config import settings
from deliberate.engine.context import strip_control_chars
from deliberate.errors import NotFound, UpstreamUnavailable
from deliberate.schemas.charity import (
    AgencyInfo,
    CharityLookupResult,
    CharitySearchResult,
    CharityVerification,
    GrantAgenciesRequest,
    GrantAgenciesResult,
    GrantAlertList,
    GrantAlertOut,
    GrantAlertStatus,
    GrantAlertStatusUpdate,
    GrantDiscoverRequest,
    GrantDiscoverResult,
    GrantOpportunity,
    GrantOpportunityOut,
    GrantTrendsRequest,
    GrantTrendsResult,
    IntegrationStatus,
    NonprofitOut,
    OrgGrantHistoryEntry,
    OrgProfile,
    ServiceStatus,
)
from deliberate.services.charity import (
    CHARITY_UNAVAILABLE,
    GRANTS_UNAVAILABLE,
    CharityClient,
    validate_ein,
)
from deliberate.storage.base import NotFoundError, Storage

router = APIRouter()
logger = logging.getLogger(__name__)

ORG_PROFILE_MAX_AGE = timedelta(hours=24)


def _require(charity: CharityClient | None, message: str = CHARITY_UNAVAILABLE) -> CharityClient:
    if charity is None:
        raise UpstreamUnavailable(message)
    return charity


def _clean(model: BaseModel):
    """Strip control characters from every top-level string field."""
    return model.model_copy(
        update={k: strip_control_chars(v) for k, v in model if isinstance(v, str)}
    )


async def _cache_profile(storage: Storage, result: CharityLookupResult):
    return await storage.upsert_nonprofit_profile(
        result.ein,
        name=result.name,
        city=result.city,
        state=result.state,
        tax_status=result.tax_status,
        ntee_code=result.ntee_code,
        raw_data=result.raw_data or result.model_dump(by_alias=True),
    )


@router.get("/charity/lookup/{ein}", response_model=CharityLookupResult)
async def charity_lookup(ein: str, user: UserDep, storage: StorageDep, charity: CharityDep):
    """Look up a nonprofit by EIN and cache its profile."""
    ein = validate_ein(ein)
    result = _clean(await _require(charity).lookup(ein))
    await _cache_profile(storage, result)
    return result


@router.get("/charity/search", response_model=CharitySearchResult)
async def charity_search(
    user: UserDep,
    charity: CharityDep,
    query: str = Query(min_length=2),
    city: str | None = None,
    state: str | None = Query(default=None, max_length=2),
    limit: int = Query(default=25, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
):
    result = await _require(charity).search(query, city=city, state=state, limit=limit, offset=offset)
    return result.model_copy(update={"results": [_clean(item) for item in result.results]})


@router.get("/charity/verify/{ein}", response_model=CharityVerification)
async def charity_verify(ein: str, user: UserDep, storage: StorageDep, charity: CharityDep):
    """Public charity and deductibility check; refreshes a cached profile."""
    ein = validate_ein(ein)
    result = _clean(await _require(charity).verify(ein))
    if await storage.get_nonprofit_by_ein(ein) is not None:
        await storage.upsert_nonprofit_profile(
            ein,
            is_public_charity=result.is_public_charity,
            is_tax_deductible=result.is_tax_deductible,
        )
    return result


@router.post("/grants/discover", response_model=GrantDiscoverResult)
async def discover_grants(body: GrantDiscoverRequest, user: UserDep, charity: CharityDep):
    result = await _require(charity, GRANTS_UNAVAILABLE).discover_grants(
        body.query, max_results=body.max_results, page=body.page
    )
    return result.model_copy(
        update={"opportunities": [_clean(o) for o in result.opportunities]}
    )


@router.get("/org/profile", response_model=OrgProfile)
async def org_profile(user: UserDep, storage: StorageDep, charity: CharityDep):
    """
    The home organization's profile. Refreshed when older than 24 hours;
    a stale cache is served when the upstream lookup fails.
    """
    ein = validate_ein(settings.org_ein)
    profile = await storage.get_nonprofit_by_ein(ein)
    is_fresh = (
        profile is not None
        and profile.fetched_at is not None
        and datetime.now(timezone.utc) - profile.fetched_at < ORG_PROFILE_MAX_AGE
    )
    if not is_fresh:
        try:
            result = _clean(await _require(charity).lookup(ein))
            profile = await _cache_profile(storage, result)
        except UpstreamUnavailable:
            if profile is None:
                raise
            logger.warning("Serving cached org profile for %s", ein)

    history = await storage.get_org_grant_history()
    alert_count = await storage.count_grant_alerts("new")
    return OrgProfile(
        ein=profile.ein,
        name=profile.name,
        city=profile.city,
        state=profile.state,
        tax_status=profile.tax_status,
        is_public_charity=profile.is_public_charity,
        is_tax_deductible=profile.is_tax_deductible,
        ntee_code=profile.ntee_code,
        revenue=profile.revenue,
        expenses=profile.expenses,
        assets=profile.assets,
        employee_count=profile.employee_count,
        fetched_at=profile.fetched_at,
        grant_history=[OrgGrantHistoryEntry.model_validate(g) for g in history],
        alert_count=alert_count,
    )


@router.get("/integrations/status", response_model=IntegrationStatus)
async def integrations_status(user: UserDep, charity: CharityDep, completions: CompletionsDep):
    if charity is None:
        charity_status = ServiceStatus(connected=False, error="not configured")
    else:
        error = await charity.health_check()
        charity_status = ServiceStatus(connected=error is None, error=error)
    return IntegrationStatus(charity=charity_status, providers=list(completions))


@router.get("/decisions/{decision_id}/nonprofits", response_model=list[NonprofitOut])
async def list_decision_nonprofits(
    decision_id: int, user: UserDep, lifecycle: LifecycleDep, storage: StorageDep
):
    await lifecycle.get_decision(decision_id)
    return await storage.get_decision_nonprofits(decision_id)


@router.post(
    "/decisions/{decision_id}/nonprofits/{ein}",
    response_model=NonprofitOut,
    status_code=status.HTTP_201_CREATED,
)
async def link_nonprofit(
    decision_id: int,
    ein: str,
    user: UserDep,
    lifecycle: LifecycleDep,
    storage: StorageDep,
    charity: CharityDep,
):
    """Link a nonprofit to a decision, looking it up first if not cached."""
    ein = validate_ein(ein)
    await lifecycle.get_decision(decision_id)
    profile = await storage.get_nonprofit_by_ein(ein)
    if profile is None:
        result = _clean(await _require(charity).lookup(ein))
        profile = await _cache_profile(storage, result)
    await storage.link_nonprofit_to_decision(decision_id, profile.id, user.id)
    return profile


@router.post("/grants/agencies", response_model=GrantAgenciesResult)
async def grant_agencies(body: GrantAgenciesRequest, user: UserDep, charity: CharityDep):
    """Funding agencies active in the requested area."""
    result = await _require(charity, GRANTS_UNAVAILABLE).agency_landscape(body)
    agencies: list[AgencyInfo] = []
    for agency in result.agencies:
        update = {}
        if agency.focus_areas is not None:
            update["focus_areas"] = [strip_control_chars(v) for v in agency.focus_areas]
        if agency.opportunities is not None:
            update["opportunities"] = [_clean(o) for o in agency.opportunities]
        agencies.append(_clean(agency).model_copy(update=update))
    return GrantAgenciesResult(agencies=agencies)


@router.post("/grants/trends", response_model=GrantTrendsResult)
async def grant_trends(body: GrantTrendsRequest, user: UserDep, charity: CharityDep):
    result = await _require(charity, GRANTS_UNAVAILABLE).funding_trends(body)
    return GrantTrendsResult(
        trends=[_clean(t) for t in result.trends],
        summary=_clean(result.summary),
    )


@router.get("/grants/alerts", response_model=GrantAlertList)
async def list_grant_alerts(
    user: UserDep,
    storage: StorageDep,
    alert_status: Annotated[GrantAlertStatus | None, Query(alias="status")] = None,
    limit: int = Query(default=50, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
):
    """Grant alerts, most relevant first. ``newCount`` ignores the status filter."""
    alerts, total = await storage.get_grant_alerts(alert_status, limit=limit, offset=offset)
    new_count = await storage.count_grant_alerts("new")
    return GrantAlertList(
        alerts=[GrantAlertOut.model_validate(a) for a in alerts],
        total=total,
        new_count=new_count,
    )


@router.post("/grants/alerts/{alert_id}/status", response_model=GrantAlertOut)
async def update_grant_alert_status(
    alert_id: int, body: GrantAlertStatusUpdate, user: UserDep, storage: StorageDep
):
    try:
        return await storage.update_grant_alert_status(alert_id, body.status)
    except NotFoundError as exc:
        raise NotFound("Grant alert not found") from exc


@router.get("/decisions/{decision_id}/grants", response_model=list[GrantOpportunityOut])
async def list_decision_grants(
    decision_id: int, user: UserDep, lifecycle: LifecycleDep, storage: StorageDep
):
    await lifecycle.get_decision(decision_id)
    return await storage.get_decision_grants(decision_id)


@router.post(
    "/decisions/{decision_id}/grants",
    response_model=GrantOpportunityOut,
    status_code=status.HTTP_201_CREATED,
)
async def link_grant(
    decision_id: int,
    body: GrantOpportunity,
    user: UserDep,
    lifecycle: LifecycleDep,
    storage: StorageDep,
):
    """Cache a discovered opportunity and link it to the decision."""
    await lifecycle.get_decision(decision_id)
    grant = _clean(body)
    record = await storage.upsert_grant_opportunity(
        grant.external_id,
        title=grant.title,
        agency=grant.agency,
        funding_category=grant.funding_category,
        award_floor=grant.award_floor,
        award_ceiling=grant.award_ceiling,
        open_date=grant.open_date,
        close_date=grant.close_date,
        description=grant.description,
        raw_data=grant.raw_data,
    )
    await storage.link_grant_to_decision(decision_id, record.id, user.id)
    return record
