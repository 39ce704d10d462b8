"""Web search with multi-provider fallback.

Backends, in priority order: Google Custom Search (API key + engine id) >
Brave Search (API key) > DuckDuckGo HTML (no credentials).

Exactly one backend is active per service instance, chosen from the
available credentials. When a paid backend errors or returns nothing the
query is retried once on DuckDuckGo. ``search`` never raises.
"""

import re
from datetime import date
from typing import Any, Literal, Optional
from urllib.parse import parse_qs, unquote, urlparse

import httpx
from bs4 import BeautifulSoup
from pydantic import BaseModel

from unimatch.models.config import SearchConfig
from unimatch.utils.credential_manager import (
    BRAVE_SEARCH_API_KEY,
    GOOGLE_SEARCH_API_KEY,
    GOOGLE_SEARCH_ENGINE_ID,
    CredentialManager,
)
from unimatch.utils.errors import SearchError
from unimatch.utils.logger import get_logger
from unimatch.utils.rate_limiter import DomainRateLimiter, FixedDelayPolicy

InfoType = Literal["tuition", "requirements", "deadlines", "scholarships"]

DUCKDUCKGO_URL = "https://html.duckduckgo.com/html/"
GOOGLE_URL = "https://www.googleapis.com/customsearch/v1"
BRAVE_URL = "https://api.search.brave.com/res/v1/web/search"

BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0 Safari/537.36"
)

UNIVERSITY_INFO_RESULTS = 3

_REDIRECT_ANCHOR_RE = re.compile(
    r'<a\b[^>]*href="[^"]*[?&](?:amp;)?uddg=([^&"]+)[^"]*"[^>]*>(.*?)</a>',
    re.IGNORECASE | re.DOTALL,
)


class SearchResult(BaseModel):
    """One normalized search hit."""

    title: str
    url: str
    snippet: str = ""


def _clean_text(fragment: str) -> str:
    """Strip tags, decode HTML entities and collapse whitespace."""
    text = BeautifulSoup(fragment, "html.parser").get_text()
    return re.sub(r"\s+", " ", text).strip()


def _is_duckduckgo(url: str) -> bool:
    host = urlparse(url).netloc.lower()
    return host == "duckduckgo.com" or host.endswith(".duckduckgo.com")


def resolve_result_url(href: Optional[str]) -> Optional[str]:
    """Resolve a DuckDuckGo result href to its destination URL.

    Redirect links (``//duckduckgo.com/l/?uddg=<encoded>``) are unwrapped.
    Returns None when no absolute destination outside duckduckgo.com exists.
    """
    if not href:
        return None
    url = href.strip()
    if "uddg=" in url:
        target = parse_qs(urlparse(url).query).get("uddg")
        if not target:
            return None
        url = target[0]
    if not url.startswith(("http://", "https://")):
        return None
    if _is_duckduckgo(url):
        return None
    return url


def extract_primary(html: str, count: int) -> list[SearchResult]:
    """Result blocks carrying both a title anchor and a snippet."""
    soup = BeautifulSoup(html, "html.parser")
    results: list[SearchResult] = []
    for block in soup.select("div.result"):
        if len(results) >= count:
            break
        anchor = block.select_one("a.result__a")
        snippet = block.select_one(".result__snippet")
        if anchor is None or snippet is None:
            continue
        url = resolve_result_url(anchor.get("href"))
        if url is None:
            continue
        results.append(
            SearchResult(
                title=_clean_text(anchor.decode_contents()),
                url=url,
                snippet=_clean_text(snippet.decode_contents()),
            )
        )
    return results


def extract_secondary(html: str, count: int) -> list[SearchResult]:
    """Any ``uddg=`` redirect anchor; snippets are not available here."""
    results: list[SearchResult] = []
    seen: set[str] = set()
    for encoded_url, title_html in _REDIRECT_ANCHOR_RE.findall(html):
        if len(results) >= count:
            break
        url = unquote(encoded_url)
        title = _clean_text(title_html)
        if not url.startswith(("http://", "https://")) or _is_duckduckgo(url):
            continue
        if url in seen or not title:
            continue
        seen.add(url)
        results.append(SearchResult(title=title, url=url, snippet=""))
    return results


def parse_duckduckgo_html(html: str, count: int) -> list[SearchResult]:
    """Primary block extraction, then the redirect-anchor pattern if it found nothing."""
    results = extract_primary(html, count)
    if not results:
        results = extract_secondary(html, count)
    return results


class SearchBackend:
    """One search provider. ``search`` raises SearchError on any failure."""

    name = "base"
    endpoint = ""
    is_free = False

    async def search(
        self, client: httpx.AsyncClient, query: str, count: int
    ) -> list[SearchResult]:
        raise NotImplementedError

    async def _get(self, client: httpx.AsyncClient, **kwargs: Any) -> httpx.Response:
        try:
            response = await client.get(self.endpoint, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise SearchError(
                f"{self.name} returned HTTP {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise SearchError(f"{self.name} request failed: {e}") from e
        return response

    def _json(self, response: httpx.Response) -> dict[str, Any]:
        try:
            data = response.json()
        except ValueError as e:
            raise SearchError(f"{self.name} returned invalid JSON") from e
        if not isinstance(data, dict):
            raise SearchError(f"{self.name} returned unexpected payload")
        return data


class GoogleSearchBackend(SearchBackend):
    name = "google"
    endpoint = GOOGLE_URL

    def __init__(self, api_key: str, engine_id: str):
        self.api_key = api_key
        self.engine_id = engine_id

    async def search(self, client, query, count):
        response = await self._get(
            client,
            params={
                "key": self.api_key,
                "cx": self.engine_id,
                "q": query,
                "num": min(count, 10),
            },
        )
        items = self._json(response).get("items") or []
        if not isinstance(items, list):
            raise SearchError(f"{self.name} returned unexpected payload")
        return [
            SearchResult(
                title=str(item.get("title", "")),
                url=str(item["link"]),
                snippet=str(item.get("snippet") or ""),
            )
            for item in items
            if isinstance(item, dict) and item.get("link")
        ][:count]


class BraveSearchBackend(SearchBackend):
    name = "brave"
    endpoint = BRAVE_URL

    def __init__(self, api_key: str):
        self.api_key = api_key

    async def search(self, client, query, count):
        response = await self._get(
            client,
            params={"q": query, "count": min(count, 20)},
            headers={"X-Subscription-Token": self.api_key, "Accept": "application/json"},
        )
        web = self._json(response).get("web") or {}
        if not isinstance(web, dict):
            raise SearchError(f"{self.name} returned unexpected payload")
        items = web.get("results") or []
        if not isinstance(items, list):
            raise SearchError(f"{self.name} returned unexpected payload")
        return [
            SearchResult(
                title=str(item.get("title", "")),
                url=str(item["url"]),
                snippet=_clean_text(str(item.get("description") or "")),
            )
            for item in items
            if isinstance(item, dict) and item.get("url")
        ][:count]


class DuckDuckGoBackend(SearchBackend):
    name = "duckduckgo"
    endpoint = DUCKDUCKGO_URL
    is_free = True

    async def search(self, client, query, count):
        response = await self._get(
            client,
            params={"q": query, "kl": "us-en"},
            headers={"User-Agent": BROWSER_USER_AGENT},
        )
        return parse_duckduckgo_html(response.text, count)


def select_backend(credentials: CredentialManager) -> SearchBackend:
    """Pick the highest-priority backend whose credentials are present."""
    if credentials.has_credentials(GOOGLE_SEARCH_API_KEY, GOOGLE_SEARCH_ENGINE_ID):
        return GoogleSearchBackend(
            credentials.require(GOOGLE_SEARCH_API_KEY),
            credentials.require(GOOGLE_SEARCH_ENGINE_ID),
        )
    if credentials.has_credentials(BRAVE_SEARCH_API_KEY):
        return BraveSearchBackend(credentials.require(BRAVE_SEARCH_API_KEY))
    return DuckDuckGoBackend()


class WebSearchService:
    """Best-effort web search over one active backend plus the free fallback."""

    def __init__(
        self,
        backend: Optional[SearchBackend] = None,
        client: Optional[httpx.AsyncClient] = None,
        config: Optional[SearchConfig] = None,
        rate_limiter: Optional[DomainRateLimiter] = None,
        delay_policy: Optional[FixedDelayPolicy] = None,
        correlation_id: str = "web-search",
    ):
        """Initialize the search service.

        Args:
            backend: Active backend (default: DuckDuckGo)
            client: Shared HTTP client; created on first use when omitted
            config: Search settings (timeouts, per-host rate, batch delay)
            rate_limiter: Per-host limiter for outbound requests
            delay_policy: Pause between queries in search_multiple
            correlation_id: Correlation ID for logging
        """
        self.config = config if config is not None else SearchConfig()
        self.backend = backend if backend is not None else DuckDuckGoBackend()
        self.fallback = self.backend if self.backend.is_free else DuckDuckGoBackend()
        self.rate_limiter = rate_limiter if rate_limiter is not None else DomainRateLimiter(
            default_rate=self.config.requests_per_second
        )
        self.delay_policy = delay_policy if delay_policy is not None else FixedDelayPolicy(
            self.config.batch_delay_seconds
        )
        self._client = client
        self._owns_client = client is None
        self.logger: Any = get_logger(
            correlation_id=correlation_id,
            phase="web_search",
            component="web_search_service",
        )
        self.logger.info("Search backend selected", backend=self.backend.name)

    @classmethod
    def from_credentials(
        cls,
        credentials: CredentialManager,
        config: Optional[SearchConfig] = None,
        **kwargs: Any,
    ) -> "WebSearchService":
        """Build the service with the backend the available credentials allow."""
        return cls(backend=select_backend(credentials), config=config, **kwargs)

    @property
    def provider(self) -> str:
        return self.backend.name

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.config.timeout_seconds, follow_redirects=True
            )
        return self._client

    async def aclose(self) -> None:
        """Close the HTTP client if this service created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "WebSearchService":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def _run(
        self, backend: SearchBackend, query: str, count: int
    ) -> list[SearchResult]:
        await self.rate_limiter.acquire(backend.endpoint)
        try:
            return await backend.search(self._get_client(), query, count)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            # Response shapes a backend did not anticipate count as a failed search
            raise SearchError(
                f"{backend.name} response could not be parsed: {type(e).__name__}"
            ) from e

    async def search(self, query: str, count: int = 5) -> list[SearchResult]:
        """Search the web.

        Args:
            query: Query text
            count: Maximum number of results

        Returns:
            Ordered results, possibly empty. Never raises.
        """
        if count <= 0 or not query.strip():
            return []

        try:
            results = await self._run(self.backend, query, count)
        except SearchError as e:
            self.logger.warning(
                "Search backend failed", backend=self.backend.name, query=query, error=str(e)
            )
            results = []

        if results or self.backend.is_free:
            return results

        self.logger.info(
            "Falling back to free search backend",
            backend=self.backend.name,
            fallback=self.fallback.name,
            query=query,
        )
        try:
            return await self._run(self.fallback, query, count)
        except SearchError as e:
            self.logger.warning(
                "Fallback search failed", backend=self.fallback.name, query=query, error=str(e)
            )
            return []

    async def search_university_info(
        self, university: str, program: str, info_type: InfoType
    ) -> list[SearchResult]:
        """Canned query for one kind of university information, 3 results.

        Raises:
            ValueError: If info_type is not a known category
        """
        year = date.today().year
        templates = {
            "tuition": f"{university} {program} international tuition fees {year}",
            "requirements": f"{university} {program} admission requirements international students",
            "deadlines": f"{university} {program} application deadline {year}",
            "scholarships": f"{university} international student scholarships",
        }
        if info_type not in templates:
            raise ValueError(f"Unknown info type: {info_type}")
        return await self.search(templates[info_type], UNIVERSITY_INFO_RESULTS)

    async def search_multiple(
        self, queries: list[str], count: int = 3
    ) -> dict[str, list[SearchResult]]:
        """Run queries sequentially with a fixed pause between calls.

        Returns:
            Mapping from each original query to its results
        """
        results: dict[str, list[SearchResult]] = {}
        rounds = self.delay_policy.rounds()
        for query in queries:
            await rounds.wait()
            results[query] = await self.search(query, count)
        return results
