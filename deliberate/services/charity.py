"""Charity and grant lookup client.

Talks JSON over HTTP to the nonprofit data service. Transient failures
(5xx, 429, network) are retried with exponential backoff; anything that
still fails surfaces as UpstreamUnavailable with a generic message.
"""

import logging
import re

import httpx
from pydantic import BaseModel, ValidationError
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    retry_if_result,
    stop_after_attempt,
    wait_exponential,
)

from deliberate.errors import UpstreamUnavailable, ValidationFailed
from deliberate.schemas.charity import (
    EIN_PATTERN,
    CharityLookupResult,
    CharitySearchResult,
    CharityVerification,
    GrantAgenciesRequest,
    GrantAgenciesResult,
    GrantDiscoverResult,
    GrantTrendsRequest,
    GrantTrendsResult,
)

logger = logging.getLogger(__name__)

CHARITY_UNAVAILABLE = "Charity data service unavailable"
GRANTS_UNAVAILABLE = "Grants data service unavailable"

_EIN_IN_TEXT = re.compile(r"(?<!\d)\d{2}-?\d{7}(?!\d)")


def normalize_ein(ein: str) -> str:
    return ein.replace("-", "")


def validate_ein(ein: str) -> str:
    """Return the dashless EIN or raise ValidationFailed."""
    if not EIN_PATTERN.match(ein or ""):
        raise ValidationFailed(
            "EIN must be 9 digits (e.g., 81-1874043 or 811874043)", field="ein"
        )
    return normalize_ein(ein)


def find_eins(text: str, limit: int) -> list[str]:
    """EIN-shaped tokens in ``text``, deduplicated, in order of appearance."""
    found: list[str] = []
    for match in _EIN_IN_TEXT.findall(text or ""):
        ein = normalize_ein(match)
        if ein not in found:
            found.append(ein)
        if len(found) >= limit:
            break
    return found


def is_retryable_http_error(exception: BaseException) -> bool:
    """Retry 5xx, 429 and network errors; never other 4xx."""
    if isinstance(exception, httpx.HTTPStatusError):
        return (
            exception.response.status_code >= 500
            or exception.response.status_code == 429
        )
    return isinstance(
        exception, (httpx.ConnectError, httpx.TimeoutException, httpx.NetworkError)
    )


class CharityClient:
    """
    Client for the nonprofit data service.

    Lifecycle is explicit: ``connect()`` opens the HTTP client,
    ``health_check()`` checks the service, ``aclose()`` releases it.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        timeout: float = 15.0,
        max_retries: int = 3,
        backoff: float = 1.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff = backoff
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def connected(self) -> bool:
        return self._client is not None

    async def connect(self) -> str | None:
        """
        Open the HTTP client and check the service, backing off between
        attempts. Returns None once healthy, otherwise the last error; the
        client stays open so later calls can still succeed.
        """
        if self._client is None:
            self._open()
        error = None
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(multiplier=self.backoff, max=10),
            retry=retry_if_result(lambda result: result is not None),
            retry_error_callback=lambda state: state.outcome.result(),
        ):
            with attempt:
                error = await self.health_check()
                if error:
                    logger.info(
                        "Charity health check attempt %d failed: %s",
                        attempt.retry_state.attempt_number,
                        error,
                    )
            if not attempt.retry_state.outcome.failed:
                attempt.retry_state.set_result(error)
        return error

    def _open(self) -> None:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=self.timeout,
            transport=self._transport,
        )
        logger.info("Charity client connected to %s", self.base_url)

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.info("Charity client closed")

    async def health_check(self) -> str | None:
        """Return None when the service answers, otherwise the error text."""
        if self._client is None:
            return "not connected"
        try:
            response = await self._client.get("/health")
            response.raise_for_status()
        except httpx.HTTPError as exc:
            return f"{type(exc).__name__}: {exc}"
        return None

    async def _call(
        self,
        tool_name: str,
        schema: type[BaseModel],
        unavailable_message: str,
        method: str,
        path: str,
        **kwargs,
    ):
        if self._client is None:
            raise UpstreamUnavailable(unavailable_message, tool_name)
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_retries),
                wait=wait_exponential(multiplier=self.backoff, max=10),
                retry=retry_if_exception(is_retryable_http_error),
                reraise=True,
            ):
                with attempt:
                    response = await self._client.request(method, path, **kwargs)
                    response.raise_for_status()
                    payload = response.json()
            return schema.model_validate(payload)
        except (httpx.HTTPError, ValidationError, ValueError) as exc:
            logger.error("Charity service call %s failed: %s", tool_name, exc)
            raise UpstreamUnavailable(unavailable_message, tool_name) from exc

    async def lookup(self, ein: str) -> CharityLookupResult:
        ein = validate_ein(ein)
        return await self._call(
            "charity_lookup", CharityLookupResult, CHARITY_UNAVAILABLE,
            "GET", f"/charities/{ein}",
        )

    async def search(
        self,
        query: str,
        city: str | None = None,
        state: str | None = None,
        limit: int = 25,
        offset: int = 0,
    ) -> CharitySearchResult:
        params = {"query": query, "limit": limit, "offset": offset}
        if city:
            params["city"] = city
        if state:
            params["state"] = state
        return await self._call(
            "charity_search", CharitySearchResult, CHARITY_UNAVAILABLE,
            "GET", "/charities", params=params,
        )

    async def verify(self, ein: str) -> CharityVerification:
        ein = validate_ein(ein)
        return await self._call(
            "public_charity_check", CharityVerification, CHARITY_UNAVAILABLE,
            "GET", f"/charities/{ein}/verification",
        )

    async def discover_grants(
        self, query: str, max_results: int = 25, page: int = 1
    ) -> GrantDiscoverResult:
        return await self._call(
            "opportunity_discovery", GrantDiscoverResult, GRANTS_UNAVAILABLE,
            "POST", "/grants/search",
            json={"query": query, "maxResults": max_results, "page": page},
        )

    async def agency_landscape(self, request: GrantAgenciesRequest) -> GrantAgenciesResult:
        return await self._call(
            "agency_landscape", GrantAgenciesResult, GRANTS_UNAVAILABLE,
            "POST", "/grants/agencies",
            json=request.model_dump(by_alias=True, exclude_none=True),
        )

    async def funding_trends(self, request: GrantTrendsRequest) -> GrantTrendsResult:
        return await self._call(
            "funding_trend_scanner", GrantTrendsResult, GRANTS_UNAVAILABLE,
            "POST", "/grants/trends",
            json=request.model_dump(by_alias=True, exclude_none=True),
        )
