"""
Service Coordinator Module

Wires the conversation store, conversation agent, matching agent, cache,
search and completion client from SystemParams and credentials, and exposes
the operations a routing layer maps requests onto.
"""

import asyncio
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from unimatch.agents.conversation_flow import ConversationAgent
from unimatch.agents.profile_normalizer import normalize_profile
from unimatch.agents.university_matching import UniversityMatchingAgent
from unimatch.models.config import SystemParams
from unimatch.models.conversation import StartConversationResult, TurnResult
from unimatch.models.profile import StudentProfile
from unimatch.models.university import MatchResult
from unimatch.utils.conversation_store import ConversationStore
from unimatch.utils.credential_manager import OPENAI_API_KEY, CredentialManager
from unimatch.utils.errors import ConfigurationError, MatchingError, ValidationError
from unimatch.utils.llm_helpers import CompletionClient, OpenAICompletionClient
from unimatch.utils.logger import get_logger
from unimatch.utils.match_cache import MatchCache
from unimatch.utils.web_search import WebSearchService

UNAVAILABLE_PREFIX = "AI matching is currently unavailable: "
UNAVAILABLE_DISCLAIMER = (
    "Please try again later or contact support if the issue persists."
)


class UniMatchCoordinator:
    """
    Service facade for the conversation and matching core.

    Dialogue operations are synchronous; matching operations are coroutines.
    """

    def __init__(
        self,
        params: Optional[SystemParams] = None,
        store: Optional[ConversationStore] = None,
        completion_client: Optional[CompletionClient] = None,
        web_search: Optional[WebSearchService] = None,
        credentials: Optional[CredentialManager] = None,
        cache: Optional[MatchCache] = None,
        correlation_id: str | None = None,
    ):
        """
        Initialize the coordinator.

        Args:
            params: System parameters (defaults when omitted)
            store: Conversation store (default: data/conversations)
            completion_client: Completion capability (default: OpenAI, lazy credential check)
            web_search: Search service (default: backend chosen from credentials)
            credentials: Credential source (default: environment + .env)
            cache: Match cache (default: built from params)
            correlation_id: Correlation ID for logging (auto-generated if None)
        """
        if correlation_id is None:
            correlation_id = str(uuid.uuid4())
        self.correlation_id = correlation_id

        self.params = params if params is not None else SystemParams()
        self.credentials = credentials if credentials is not None else CredentialManager()
        self.store = store if store is not None else ConversationStore()

        if completion_client is None:
            completion_client = OpenAICompletionClient(
                api_key=self.credentials.get_credential(OPENAI_API_KEY),
                config=self.params.llm,
            )
        if web_search is None:
            web_search = WebSearchService.from_credentials(
                self.credentials,
                config=self.params.search,
                correlation_id=correlation_id,
            )

        self.web_search = web_search
        self.conversation_agent = ConversationAgent(self.store, correlation_id=correlation_id)
        self.matching_agent = UniversityMatchingAgent(
            completion_client=completion_client,
            web_search=web_search,
            cache=cache,
            params=self.params,
            correlation_id=correlation_id,
        )

        self.logger = get_logger(
            correlation_id=correlation_id,
            phase="coordinator",
            component="unimatch_coordinator",
        )
        self.logger.info(
            "Coordinator initialized",
            search_provider=web_search.provider,
            verification_enabled=self.matching_agent.verification_enabled,
        )

    @classmethod
    def from_config(
        cls,
        config_path: Path | str | None = None,
        store_dir: Path | str = "data/conversations",
        env_file: Path = Path(".env"),
        **kwargs: Any,
    ) -> "UniMatchCoordinator":
        """Build a coordinator from a system_params JSON file (defaults if None)."""
        params = SystemParams.load(config_path) if config_path else SystemParams()
        return cls(
            params=params,
            store=ConversationStore(store_dir),
            credentials=CredentialManager(env_file),
            **kwargs,
        )

    async def aclose(self) -> None:
        await self.web_search.aclose()

    # Conversation

    def start_conversation(self, user_id: Optional[str] = None) -> StartConversationResult:
        return self.conversation_agent.start_conversation(user_id)

    def send_message(self, conversation_id: str, text: str) -> TurnResult:
        return self.conversation_agent.send_message(conversation_id, text)

    def get_conversation(self, conversation_id: str) -> dict[str, Any]:
        return self.conversation_agent.get_conversation(conversation_id)

    # Matching

    def _profile_from_payload(self, payload: Any) -> StudentProfile:
        if not isinstance(payload, dict):
            raise ValidationError("Profile payload must be an object")
        return normalize_profile(payload, default_budget=self.params.currency.default_budget)

    async def find_matches(self, payload: dict[str, Any]) -> MatchResult:
        """Full matching for a direct profile payload.

        Raises:
            ValidationError: Payload is not an object
            ConfigurationError: Completion credential missing
            MatchingError: Completion call failed
        """
        return await self.matching_agent.find_matches(self._profile_from_payload(payload))

    async def find_matches_quick(self, payload: dict[str, Any]) -> MatchResult:
        """Quick matching for a direct profile payload. Raises like find_matches."""
        return await self.matching_agent.find_matches_quick(
            self._profile_from_payload(payload)
        )

    def apply_filters(
        self,
        profile: StudentProfile,
        max_budget: Optional[float] = None,
        currency: Optional[str] = None,
        state: Optional[str] = None,
    ) -> StudentProfile:
        """Return a copy of the profile with budget/state constraints applied.

        The budget is converted to the reference currency; an unknown or
        missing currency uses the fallback currency's rate.
        """
        update: dict[str, Any] = {}
        if max_budget is not None and max_budget > 0:
            rates = self.params.currency
            code = (currency or rates.fallback_currency).strip().upper()
            rate = rates.rate_for(code) or rates.rate_for(rates.fallback_currency)
            update.update(
                budget=max_budget * rate,
                budget_amount=max_budget,
                budget_currency=code,
            )
        if state and state.strip():
            update["preferred_state"] = state.strip()
        return profile.model_copy(update=update) if update else profile

    async def match_conversation(
        self,
        conversation_id: str,
        max_budget: Optional[float] = None,
        currency: Optional[str] = None,
        state: Optional[str] = None,
    ) -> MatchResult:
        """Match the profile collected in a conversation, with optional filters.

        Filters are applied to a copy of the stored profile, never cumulatively.
        Matching, configuration and deadline failures degrade to an empty
        result carrying the reason as an insight.

        Raises:
            ValidationError: Bad id, or the conversation has no answers yet
            NotFoundError: Unknown conversation id
        """
        record = self.conversation_agent.get_record(conversation_id)
        if not record.profile_accumulator:
            raise ValidationError("Profile not complete")

        profile = normalize_profile(
            record.profile_accumulator, default_budget=self.params.currency.default_budget
        )
        profile = self.apply_filters(profile, max_budget, currency, state)
        self.logger.info(
            "Matching from conversation",
            conversation_id=conversation_id,
            max_budget=max_budget,
            currency=currency,
            state=state,
        )

        deadline = self.params.matching_deadline_seconds
        try:
            return await asyncio.wait_for(
                self.matching_agent.find_matches(profile), timeout=deadline
            )
        except asyncio.TimeoutError:
            reason = f"AI matching timeout after {deadline:g} seconds"
        except (MatchingError, ConfigurationError) as e:
            reason = e.message

        self.logger.warning(
            "Matching unavailable, returning empty result",
            conversation_id=conversation_id,
            reason=reason,
        )
        return MatchResult(
            matches=[],
            profile_summary=self.matching_agent.create_profile_summary(profile),
            insights=[UNAVAILABLE_PREFIX + reason],
            disclaimer=UNAVAILABLE_DISCLAIMER,
            generated_at=datetime.now(timezone.utc).isoformat(),
        )

    def get_cache_stats(self) -> dict[str, Any]:
        return self.matching_agent.get_cache_stats()

    def set_verification_enabled(self, enabled: bool) -> None:
        self.matching_agent.set_verification_enabled(enabled)
