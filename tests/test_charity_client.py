"""Tests for the charity lookup client."""

import json

import httpx
import pytest

from deliberate.errors import UpstreamUnavailable, ValidationFailed
from deliberate.schemas.charity import GrantAgenciesRequest, GrantTrendsRequest
from deliberate.services.charity import (
    CHARITY_UNAVAILABLE,
    GRANTS_UNAVAILABLE,
    CharityClient,
    find_eins,
    is_retryable_http_error,
    normalize_ein,
    validate_ein,
)

LOOKUP_PAYLOAD = {
    "ein": "81-1874043",
    "name": "Home Org",
    "city": "Phoenixville",
    "state": "PA",
    "taxStatus": "501(c)(3)",
    "deductibility": "Contributions are deductible",
}


def _client(handler, max_retries=3):
    return CharityClient(
        "https://charity.test/api/",
        api_key="k",
        max_retries=max_retries,
        backoff=0,
        transport=httpx.MockTransport(handler),
    )


def test_ein_helpers():
    """EINs validate with or without the dash."""
    assert normalize_ein("81-1874043") == "811874043"
    assert validate_ein("811874043") == "811874043"
    assert validate_ein("81-1874043") == "811874043"
    for bad in ("", "8118740", "81-18740433", "ab-cdefghi", "811-874043"):
        with pytest.raises(ValidationFailed) as exc_info:
            validate_ein(bad)
        assert exc_info.value.field == "ein"


def test_find_eins_dedupes_and_limits():
    """EIN-shaped tokens are collected in order."""
    text = "See 81-1874043, 811874043 again, then 12-3456789 and 98-7654321. Not 1234567890."
    assert find_eins(text, 2) == ["811874043", "123456789"]
    assert find_eins("no numbers here", 2) == []


def test_retryable_errors():
    """5xx, 429 and network errors retry; other 4xx do not."""
    request = httpx.Request("GET", "https://charity.test")

    def status_error(code):
        return httpx.HTTPStatusError(
            "x", request=request, response=httpx.Response(code, request=request)
        )

    assert is_retryable_http_error(status_error(503)) is True
    assert is_retryable_http_error(status_error(429)) is True
    assert is_retryable_http_error(status_error(404)) is False
    assert is_retryable_http_error(httpx.ConnectError("down")) is True
    assert is_retryable_http_error(ValueError("nope")) is False


@pytest.mark.asyncio
async def test_lookup_success():
    """Lookup hits the dashless EIN path and parses camelCase."""
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json=LOOKUP_PAYLOAD)

    client = _client(handler)
    await client.connect()
    try:
        seen.clear()
        result = await client.lookup("81-1874043")
    finally:
        await client.aclose()

    assert result.name == "Home Org"
    assert result.tax_status == "501(c)(3)"
    assert seen[0].url.path == "/api/charities/811874043"
    assert seen[0].headers["Authorization"] == "Bearer k"


@pytest.mark.asyncio
async def test_lookup_retries_server_errors():
    """Transient 5xx is retried until success."""
    calls = {"n": 0}

    def handler(request):
        calls["n"] += 1
        if calls["n"] < 3:
            return httpx.Response(503)
        return httpx.Response(200, json=LOOKUP_PAYLOAD)

    client = _client(handler)
    client._open()
    result = await client.lookup("811874043")
    await client.aclose()
    assert result.ein == "81-1874043"
    assert calls["n"] == 3


@pytest.mark.asyncio
async def test_lookup_does_not_retry_client_errors():
    """A 404 fails immediately with a generic message."""
    calls = {"n": 0}

    def handler(request):
        calls["n"] += 1
        return httpx.Response(404, json={"error": "internal detail"})

    client = _client(handler)
    client._open()
    with pytest.raises(UpstreamUnavailable) as exc_info:
        await client.lookup("811874043")
    await client.aclose()
    assert calls["n"] == 1
    assert exc_info.value.message == CHARITY_UNAVAILABLE
    assert exc_info.value.tool_name == "charity_lookup"
    assert "internal detail" not in exc_info.value.message


@pytest.mark.asyncio
async def test_malformed_payload_is_unavailable():
    """Schema violations surface as UpstreamUnavailable."""
    client = _client(lambda request: httpx.Response(200, json={"unexpected": True}))
    client._open()
    with pytest.raises(UpstreamUnavailable):
        await client.lookup("811874043")
    await client.aclose()


@pytest.mark.asyncio
async def test_network_errors_exhaust_retries():
    """Connection failures retry then become UpstreamUnavailable."""
    calls = {"n": 0}

    def handler(request):
        calls["n"] += 1
        raise httpx.ConnectError("refused", request=request)

    client = _client(handler, max_retries=2)
    client._open()
    with pytest.raises(UpstreamUnavailable):
        await client.verify("811874043")
    await client.aclose()
    assert calls["n"] == 2


@pytest.mark.asyncio
async def test_calls_before_connect_fail_cleanly():
    """An unopened client reports the service unavailable."""
    client = _client(lambda request: httpx.Response(200, json=LOOKUP_PAYLOAD))
    with pytest.raises(UpstreamUnavailable):
        await client.lookup("811874043")


@pytest.mark.asyncio
async def test_search_passes_filters():
    """Search forwards query parameters."""
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(
            200,
            json={"results": [{"ein": "811874043", "name": "Home Org"}], "total": 1, "hasMore": False},
        )

    client = _client(handler)
    client._open()
    result = await client.search("bakery", state="PA", limit=5)
    await client.aclose()

    params = seen[0].url.params
    assert params["query"] == "bakery"
    assert params["state"] == "PA"
    assert params["limit"] == "5"
    assert "city" not in params
    assert result.total == 1
    assert result.results[0].name == "Home Org"


@pytest.mark.asyncio
async def test_discover_grants_posts_query():
    """Grant discovery posts a JSON body and names its own failures."""
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(
            200,
            json={"opportunities": [{"title": "Workforce Grant", "awardCeiling": 50000}], "total": 1, "page": 2},
        )

    client = _client(handler)
    client._open()
    result = await client.discover_grants("employment", max_results=10, page=2)
    await client.aclose()

    assert seen[0].method == "POST"
    assert seen[0].url.path == "/api/grants/search"
    assert result.opportunities[0].award_ceiling == 50000

    failing = _client(lambda request: httpx.Response(500), max_retries=1)
    failing._open()
    with pytest.raises(UpstreamUnavailable) as exc_info:
        await failing.discover_grants("employment")
    await failing.aclose()
    assert exc_info.value.message == GRANTS_UNAVAILABLE


@pytest.mark.asyncio
async def test_connect_reports_health():
    """connect() returns None when healthy and the error otherwise."""
    healthy = _client(lambda request: httpx.Response(200, json={"status": "ok"}))
    assert await healthy.connect() is None
    assert healthy.connected is True
    await healthy.aclose()
    assert healthy.connected is False

    attempts = {"n": 0}

    def down(request):
        attempts["n"] += 1
        return httpx.Response(503)

    unhealthy = _client(down, max_retries=2)
    error = await unhealthy.connect()
    assert error is not None
    assert attempts["n"] == 2
    assert unhealthy.connected is True
    await unhealthy.aclose()


@pytest.mark.asyncio
async def test_agency_landscape_omits_unset_filters():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(
            200, json={"agencies": [{"name": "HHS", "opportunityCount": 12, "totalFunding": 2.5e6}]}
        )

    client = _client(handler)
    client._open()
    result = await client.agency_landscape(GrantAgenciesRequest(focus_agencies=["HHS"]))
    await client.aclose()

    assert seen[0].url.path == "/api/grants/agencies"
    assert json.loads(seen[0].content) == {
        "includeOpportunities": False,
        "focusAgencies": ["HHS"],
        "maxAgencies": 10,
    }
    assert result.agencies[0].opportunity_count == 12


@pytest.mark.asyncio
async def test_funding_trends_failure_names_the_scanner():
    """Trend failures carry their own tool name and the grants message."""
    client = _client(lambda request: httpx.Response(502), max_retries=1)
    client._open()
    with pytest.raises(UpstreamUnavailable) as exc_info:
        await client.funding_trends(GrantTrendsRequest(category_filter="Health"))
    await client.aclose()
    assert exc_info.value.message == GRANTS_UNAVAILABLE
    assert exc_info.value.tool_name == "funding_trend_scanner"
