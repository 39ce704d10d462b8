"""
Shared test fixtures: fake completion client, fake search backend, sample payloads.
"""

import json
from pathlib import Path
from typing import Any, Optional

import httpx
import pytest

from unimatch.models.config import SystemParams
from unimatch.utils.conversation_store import ConversationStore
from unimatch.utils.match_cache import MatchCache
from unimatch.utils.rate_limiter import DomainRateLimiter, FixedDelayPolicy
from unimatch.utils.web_search import SearchBackend, SearchResult, WebSearchService

FIXTURES_DIR = Path(__file__).parent / "fixtures"


class FakeCompletionClient:
    """CompletionClient that replays queued responses and records every call."""

    def __init__(self, responses: Optional[list[Any]] = None):
        self.responses = list(responses or [])
        self.calls: list[dict[str, Any]] = []

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        model: str,
        temperature: float,
        max_tokens: int,
        expect_json: bool = False,
    ) -> str:
        self.calls.append(
            {
                "system_prompt": system_prompt,
                "user_prompt": user_prompt,
                "model": model,
                "temperature": temperature,
                "max_tokens": max_tokens,
                "expect_json": expect_json,
            }
        )
        if not self.responses:
            raise AssertionError("Unexpected completion call")
        response = self.responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        return response


class FakeSearchBackend(SearchBackend):
    """Backend returning canned results and recording queries."""

    name = "fake"
    endpoint = "https://search.test/api"

    def __init__(self, results: Optional[list[SearchResult]] = None, error: Optional[Exception] = None):
        self.results = results or []
        self.error = error
        self.queries: list[str] = []

    async def search(self, client, query, count):
        self.queries.append(query)
        if self.error is not None:
            raise self.error
        return self.results[:count]


class RecordingSleep:
    """Async sleep replacement that records requested delays."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def make_match(rank: int, **overrides: Any) -> dict[str, Any]:
    """One generation-response match entry in camelCase wire shape."""
    match = {
        "rank": rank,
        "university": f"University {rank}",
        "country": "Canada",
        "city": "Toronto",
        "program": "MSc Computer Science",
        "level": "MASTERS",
        "duration": "2 years",
        "tuition": {"amount": 20000, "currency": "CAD", "verified": False},
        "requirements": {
            "minGPA": 3.0,
            "ieltsMin": 6.5,
            "gmatRequired": False,
            "workExpYears": 0,
            "verified": False,
        },
        "matchScore": 85,
        "category": "TARGET",
        "admissionChance": 60,
        "prPathway": {"strength": 85, "details": "PGWP eligible", "postStudyWork": "3 years"},
        "scholarships": {"available": True, "topScholarships": ["Merit $10k/yr"]},
    }
    match.update(overrides)
    return match


def generation_response(matches: list[dict[str, Any]]) -> str:
    return json.dumps({"matches": matches})


@pytest.fixture
def fixtures_dir() -> Path:
    return FIXTURES_DIR


@pytest.fixture
def params() -> SystemParams:
    return SystemParams()


@pytest.fixture
def store(tmp_path) -> ConversationStore:
    return ConversationStore(store_dir=tmp_path / "conversations")


@pytest.fixture
def clock():
    """Mutable clock: call to read, set ``clock.now`` to move time."""

    class Clock:
        now = 1_000_000.0

        def __call__(self) -> float:
            return self.now

    return Clock()


@pytest.fixture
def cache(clock) -> MatchCache:
    return MatchCache(ttl_seconds=7 * 86400, max_size=100, clock=clock)


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def search_backend() -> FakeSearchBackend:
    return FakeSearchBackend(
        results=[
            SearchResult(
                title="Tuition and fees",
                url="https://www.example.edu/fees",
                snippet="International tuition is CAD 25,000 per year.",
            )
        ]
    )


@pytest.fixture
def web_search(search_backend, recording_sleep) -> WebSearchService:
    return WebSearchService(
        backend=search_backend,
        client=httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(500))),
        rate_limiter=DomainRateLimiter(default_rate=1000),
        delay_policy=FixedDelayPolicy(0.2, sleep=recording_sleep),
    )


@pytest.fixture
def fake_backend_cls() -> type[FakeSearchBackend]:
    return FakeSearchBackend


@pytest.fixture
def fake_completion_cls() -> type[FakeCompletionClient]:
    return FakeCompletionClient


@pytest.fixture(name="make_match")
def make_match_fixture():
    return make_match


@pytest.fixture(name="generation_response")
def generation_response_fixture():
    return generation_response
