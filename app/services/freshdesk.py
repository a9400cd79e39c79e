"""
Freshdesk API client with rate limiting, error handling, and pagination support.

This module provides an async client for the Freshdesk v2 API: ticket search
(with the quoting the search endpoint requires), hydrated ticket retrieval,
and a paginator that knows when the search results are exhausted.
"""

import httpx
import asyncio
from datetime import datetime
from typing import AsyncGenerator, Optional, Dict, List, Any
import logging

logger = logging.getLogger(__name__)

TICKET_INCLUDES = "requester,company,stats"


class FreshdeskAPIError(Exception):
    """Raised when the Freshdesk API call fails."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class FreshdeskUnavailableError(FreshdeskAPIError):
    """Network failure or 5xx response that persisted through retries."""
    pass


class FreshdeskRateLimitError(FreshdeskAPIError):
    """Raised when rate limit is exceeded and cannot be retried."""
    pass


class FreshdeskRejectedError(FreshdeskAPIError):
    """Non-retryable 4xx response (bad query, unknown ticket, bad credentials)."""
    pass


class FreshdeskClient:
    """Async client for Freshdesk API with rate limiting and error handling."""

    BASE_URL_TEMPLATE = "https://{domain}/api/v2"
    INITIAL_BACKOFF = 1  # seconds
    MAX_BACKOFF = 60  # seconds

    def __init__(
        self,
        domain: str,
        api_key: str,
        per_page: int = 30,
        timeout: float = 20.0,
        max_retries: int = 3,
        rate_limit: int = 200,
    ):
        """
        Initialize Freshdesk client.

        Args:
            domain: Full Freshdesk domain (e.g., 'company.freshdesk.com')
            api_key: Freshdesk API key
            per_page: Page size the search endpoint returns
            timeout: Per-request timeout in seconds
            max_retries: Retries for 429/5xx/network errors
            rate_limit: Maximum requests per minute
        """
        self.base_url = self.BASE_URL_TEMPLATE.format(domain=domain)
        # Freshdesk basic auth: API key as username, any password
        self._auth = (api_key, "X")
        self.per_page = per_page
        self.timeout = timeout
        self.max_retries = max_retries
        self.rate_limit = rate_limit

        # Rate limiting tracking
        self._request_count = 0
        self._rate_limit_window_start = datetime.now()
        self._rate_limit_lock = asyncio.Lock()

        # HTTP client
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        """Async context manager entry."""
        await self._ensure_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()

    async def _ensure_client(self):
        """Ensure HTTP client is initialized."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                auth=self._auth,
                headers={
                    "Content-Type": "application/json",
                    "Accept": "application/json"
                },
                timeout=self.timeout
            )

    async def close(self):
        """Close HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _check_rate_limit(self):
        """
        Check and enforce rate limiting.

        Tracks requests per minute and sleeps if limit would be exceeded.
        """
        async with self._rate_limit_lock:
            now = datetime.now()
            window_elapsed = (now - self._rate_limit_window_start).total_seconds()

            # Reset counter if window has passed
            if window_elapsed >= 60:
                self._request_count = 1
                self._rate_limit_window_start = now
                return

            if self._request_count >= self.rate_limit:
                sleep_time = 60 - window_elapsed
                if sleep_time > 0:
                    logger.warning(
                        f"Rate limit reached ({self.rate_limit} req/min). "
                        f"Sleeping for {sleep_time:.2f} seconds"
                    )
                    await asyncio.sleep(sleep_time)

                self._request_count = 0
                self._rate_limit_window_start = datetime.now()

            self._request_count += 1

    @staticmethod
    def _retry_after(response: httpx.Response, default: float) -> float:
        try:
            return float(response.headers.get("Retry-After", default))
        except ValueError:
            return default

    async def _request(
        self,
        method: str,
        endpoint: str,
        **kwargs
    ) -> Any:
        """
        Make authenticated request with rate limiting and retry logic.

        Args:
            method: HTTP method (GET, POST, etc.)
            endpoint: API endpoint path (e.g., '/tickets/123')
            **kwargs: Additional arguments to pass to httpx request

        Returns:
            Decoded JSON response

        Raises:
            FreshdeskRateLimitError: 429 responses after retries exhausted
            FreshdeskUnavailableError: 5xx or network errors after retries exhausted
            FreshdeskRejectedError: Any other 4xx response
        """
        await self._ensure_client()

        url = f"{self.base_url}{endpoint}"
        retries = 0
        backoff = self.INITIAL_BACKOFF

        while True:
            await self._check_rate_limit()

            try:
                response = await self._client.request(method, url, **kwargs)
            except httpx.RequestError as e:
                logger.error(f"Request error on {endpoint}: {e!r}")

                if retries >= self.max_retries:
                    raise FreshdeskUnavailableError(
                        f"Request failed after {retries} retries: {e!r}"
                    ) from e

                await asyncio.sleep(backoff)
                retries += 1
                backoff = min(backoff * 2, self.MAX_BACKOFF)
                continue

            if response.status_code == 429:
                retry_after = self._retry_after(response, backoff)
                logger.warning(
                    f"Rate limited on {endpoint}. "
                    f"Retry after {retry_after} seconds"
                )

                if retries >= self.max_retries:
                    raise FreshdeskRateLimitError(
                        f"Rate limit exceeded after {retries} retries",
                        status_code=429
                    )

                await asyncio.sleep(retry_after)
                retries += 1
                continue

            if 500 <= response.status_code < 600:
                logger.error(
                    f"Server error {response.status_code} on {endpoint}. "
                    f"Retry {retries}/{self.max_retries}"
                )

                if retries >= self.max_retries:
                    raise FreshdeskUnavailableError(
                        f"Server error {response.status_code} after "
                        f"{retries} retries: {response.text}",
                        status_code=response.status_code
                    )

                await asyncio.sleep(self._retry_after(response, backoff))
                retries += 1
                backoff = min(backoff * 2, self.MAX_BACKOFF)
                continue

            if response.is_error:
                logger.error(
                    f"HTTP error {response.status_code} on {endpoint}: "
                    f"{response.text}"
                )
                raise FreshdeskRejectedError(
                    f"HTTP {response.status_code}: {response.text}",
                    status_code=response.status_code
                )

            return response.json()

    async def search_tickets(self, query: str, page: int = 1) -> Dict[str, Any]:
        """
        Run one page of a ticket search.

        The search endpoint only accepts the query wrapped in double quotes,
        so the composed query is quoted here.

        Args:
            query: Freshdesk query (e.g., "status:5 AND updated_at:>'2025-01-01'")
            page: Page number (1-indexed)

        Returns:
            Dictionary containing:
                - total: Total number of matching tickets
                - results: List of ticket stubs (id, updated_at)

        Example:
            >>> data = await client.search_tickets("status:5", page=1)
            >>> ids = [r['id'] for r in data['results']]
        """
        params = {"query": f'"{query}"', "page": page}

        response = await self._request("GET", "/search/tickets", params=params)
        logger.info(
            f"Search returned {len(response.get('results') or [])} tickets "
            f"(page {page}, total {response.get('total')})"
        )

        return response

    async def get_ticket(
        self,
        ticket_id: int,
        include: Optional[str] = TICKET_INCLUDES
    ) -> Dict[str, Any]:
        """
        Get a single hydrated ticket by ID.

        Args:
            ticket_id: Freshdesk ticket ID
            include: Related entities to embed (requester, company, stats)

        Returns:
            Ticket object dictionary

        Example:
            >>> ticket = await client.get_ticket(12345)
            >>> print(ticket['company']['name'])
        """
        params = {"include": include} if include else None
        ticket = await self._request("GET", f"/tickets/{ticket_id}", params=params)
        logger.debug(f"Fetched ticket {ticket_id}")

        return ticket

    async def paginate_search(
        self,
        query: str
    ) -> AsyncGenerator[List[Dict[str, Any]], None]:
        """
        Generator that yields pages of ticket stubs from a search.

        Stops on the first empty page, or once ``page * per_page`` reaches the
        total the API reported.

        Args:
            query: Freshdesk search query (unquoted)

        Yields:
            Lists of ticket stubs, one list per page

        Example:
            >>> async for stubs in client.paginate_search("status:5"):
            ...     print([s['id'] for s in stubs])
        """
        page = 1
        total_fetched = 0

        while True:
            response = await self.search_tickets(query=query, page=page)

            results = response.get("results") or []
            if not results:
                break

            total_fetched += len(results)
            yield results

            if page * self.per_page >= (response.get("total") or 0):
                break

            page += 1

        logger.info(f"Search complete: {total_fetched} tickets over {page} page(s)")


def get_freshdesk_client() -> FreshdeskClient:
    """
    Factory function to create Freshdesk client with settings.

    Returns:
        Configured FreshdeskClient instance

    Example:
        >>> client = get_freshdesk_client()
        >>> async with client:
        ...     ticket = await client.get_ticket(12345)
    """
    from app.config import settings

    return FreshdeskClient(
        domain=settings.FRESHDESK_DOMAIN,
        api_key=settings.FRESHDESK_API_KEY,
        per_page=settings.FRESHDESK_PER_PAGE,
        timeout=settings.FRESHDESK_TIMEOUT,
        max_retries=settings.FRESHDESK_MAX_RETRIES,
        rate_limit=settings.FRESHDESK_RATE_LIMIT,
    )
