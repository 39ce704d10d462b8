"""University matching agent: knowledge-based generation, optional web verification, caching.

Pipeline for ``find_matches``:
    cache lookup -> one generation call -> (optional) per-match verification
    rounds -> truncate -> summary, insights, disclaimer -> cache write

Generation and verification go through an injected CompletionClient, search
through an injected WebSearchService, so the agent never talks to a provider
SDK directly.
"""

import math
from datetime import date, datetime, timezone
from typing import Any, Optional

from pydantic import ValidationError as PydanticValidationError

from unimatch.models.config import SystemParams
from unimatch.models.profile import StudentProfile
from unimatch.models.university import CATEGORY_BANDS, MatchResult, UniversityMatch
from unimatch.utils.llm_helpers import CompletionClient, parse_json_object
from unimatch.utils.logger import get_logger
from unimatch.utils.match_cache import MatchCache
from unimatch.utils.prompt_loader import render_prompt
from unimatch.utils.rate_limiter import FixedDelayPolicy
from unimatch.utils.web_search import SearchResult, WebSearchService

QUICK_KEY_SUFFIX = ":quick"

BUDGET_BUCKET = 500_000
SCORE_BUCKET = 5
TEST_SCORE_BUCKET = 0.5
DEFAULT_PERCENTAGE = 60
DEFAULT_TEST_SCORE = 6

NO_MATCHES_MESSAGE = "No universities found matching your criteria."
NO_MATCHES_INSIGHT = (
    "No matches found. Consider expanding country preferences or adjusting budget."
)
EMPTY_DISCLAIMER = "Try adjusting preferences for more options."
QUICK_INSIGHT = "Quick results based on AI knowledge. Use full matching for verified data."
QUICK_DISCLAIMER = "Preliminary matches. Verify all information on official university websites."
VERIFIED_DISCLAIMER = (
    "Data verified from web search where possible. "
    "Always confirm on official university website."
)
KNOWLEDGE_DISCLAIMER = (
    "Data based on AI knowledge. Verify current fees and requirements on official websites."
)

# Currencies whose budgets read naturally in lakhs (100,000)
LAKH_CURRENCIES = {"NPR", "INR"}
LAKH = 100_000


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def _format_number(value: float) -> str:
    """Integral values without a decimal point, like a JSON number."""
    return str(int(value)) if float(value).is_integer() else repr(float(value))


def _academic_score_for_key(profile: StudentProfile) -> float:
    if profile.percentage is not None:
        return profile.percentage
    if profile.gpa is not None and profile.gpa > 0:
        # Scale bare GPAs so 4- and 10-point scales land in comparable buckets
        if profile.gpa <= 4:
            return profile.gpa * 25
        if profile.gpa <= 10:
            return profile.gpa * 10
    return DEFAULT_PERCENTAGE


def generate_cache_key(profile: StudentProfile) -> str:
    """Deterministic fingerprint of the matching-relevant profile fields.

    Args:
        profile: Normalized student profile

    Returns:
        Pipe-separated key: level|field|countries|state|budget|score|test|test score|goal
    """
    test = profile.language_test
    test_score = test.overall_score if test and test.overall_score else DEFAULT_TEST_SCORE
    countries = ",".join(sorted(profile.preferred_countries)) or "ALL"

    parts = [
        profile.study_level or "MASTERS",
        profile.field_of_study or "ANY",
        countries,
        profile.preferred_state or "ANY",
        _format_number(_round_half_up(profile.budget / BUDGET_BUCKET) * BUDGET_BUCKET),
        _format_number(
            _round_half_up(_academic_score_for_key(profile) / SCORE_BUCKET) * SCORE_BUCKET
        ),
        test.type if test else "NONE",
        _format_number(_round_half_up(test_score / TEST_SCORE_BUCKET) * TEST_SCORE_BUCKET),
        profile.career_goal or "FLEXIBLE",
    ]
    return "|".join(parts)


def derive_insights(matches: list[UniversityMatch], profile: StudentProfile) -> list[str]:
    """Text observations over a match list.

    An empty list short-circuits to a single explanatory insight.
    """
    if not matches:
        return [NO_MATCHES_INSIGHT]

    insights: list[str] = []

    safety_count = sum(1 for m in matches if m.category == "SAFETY")
    competitive_count = sum(1 for m in matches if m.category in ("REACH", "DREAM"))

    if safety_count >= 2:
        insights.append(
            f"✅ You have {safety_count} SAFETY schools with high admission chances."
        )

    if competitive_count > safety_count:
        insights.append(
            "📈 Many competitive matches. Consider improving test scores for better chances."
        )

    # Unknown converted tuition counts as not fitting
    within_budget = sum(
        1
        for m in matches
        if m.tuition.converted_amount is not None
        and m.tuition.converted_amount <= profile.budget
    )
    if profile.budget > 0 and within_budget < len(matches) / 2:
        insights.append(
            "💰 Most programs exceed tuition budget. "
            "Education loans are common and have good terms."
        )

    if profile.career_goal == "PR_PATHWAY":
        strong_pr = sum(1 for m in matches if m.pr_pathway.strength >= 80)
        if strong_pr >= 2:
            insights.append(
                "🎯 Good PR pathway options available. "
                "Canada and Australia have best outcomes."
            )

    return insights


def _renumber(matches: list[UniversityMatch]) -> list[UniversityMatch]:
    return [m.model_copy(update={"rank": i}) for i, m in enumerate(matches, start=1)]


def _non_null(data: Any) -> dict[str, Any]:
    if not isinstance(data, dict):
        return {}
    return {k: v for k, v in data.items() if v is not None}


class UniversityMatchingAgent:
    """Turns a normalized StudentProfile into ranked, cached university matches."""

    def __init__(
        self,
        completion_client: CompletionClient,
        web_search: Optional[WebSearchService] = None,
        cache: Optional[MatchCache] = None,
        params: Optional[SystemParams] = None,
        delay_policy: Optional[FixedDelayPolicy] = None,
        correlation_id: str = "matching",
    ):
        """Initialize matching agent.

        Args:
            completion_client: Completion capability for generation and verification
            web_search: Search service used by the verification pass
            cache: Result cache (built from params when omitted)
            params: System parameters (defaults when omitted)
            delay_policy: Pause between verification rounds
            correlation_id: Correlation ID for logging
        """
        self.params = params if params is not None else SystemParams()
        self.completion_client = completion_client
        if web_search is None:
            web_search = WebSearchService(config=self.params.search)
        self.web_search = web_search
        self.cache = cache if cache is not None else MatchCache(
            ttl_seconds=self.params.cache.ttl_seconds,
            max_size=self.params.cache.max_size,
            eviction_fraction=self.params.cache.eviction_fraction,
        )
        self.delay_policy = delay_policy if delay_policy is not None else FixedDelayPolicy(
            self.params.verification.delay_seconds
        )
        self.verification_enabled = self.params.verification.enabled
        self.correlation_id = correlation_id
        self.logger: Any = get_logger(
            correlation_id=correlation_id,
            phase="matching",
            component="university_matching_agent",
        )

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def find_matches(self, profile: StudentProfile) -> MatchResult:
        """Full pipeline: cache, generation, optional verification.

        Raises:
            ConfigurationError: Completion credential missing
            MatchingError: Completion call failed after the client's retries
        """
        cache_key = generate_cache_key(profile)
        cached = self.cache.get(cache_key)
        if cached is not None:
            self.logger.info("Cache hit", cache_key=cache_key)
            return cached.model_copy(update={"cached": True}, deep=True)

        self.logger.info("Cache miss, generating matches", cache_key=cache_key)

        matches = await self._generate_from_knowledge(profile)
        if not matches:
            return self._empty_result(profile, NO_MATCHES_MESSAGE)

        # Snapshot the toggle so a mid-request change cannot mix disclaimers
        verify = self.verification_enabled
        searches_used = 0
        if verify:
            matches, searches_used = await self._verify_top_matches(profile, matches)

        final_matches = _renumber(matches[: self.params.max_matches])
        result = MatchResult(
            matches=final_matches,
            profile_summary=self.create_profile_summary(profile),
            insights=derive_insights(final_matches, profile),
            disclaimer=VERIFIED_DISCLAIMER if verify else KNOWLEDGE_DISCLAIMER,
            generated_at=datetime.now(timezone.utc).isoformat(),
            searches_used=searches_used,
        )

        self.cache.set(cache_key, result.model_copy(deep=True))
        return result

    async def find_matches_quick(self, profile: StudentProfile) -> MatchResult:
        """Generation only, cached under a separate key. Never verifies.

        Raises:
            ConfigurationError: Completion credential missing
            MatchingError: Completion call failed after the client's retries
        """
        cache_key = generate_cache_key(profile) + QUICK_KEY_SUFFIX
        cached = self.cache.get(cache_key)
        if cached is not None:
            self.logger.info("Cache hit", cache_key=cache_key)
            return cached.model_copy(update={"cached": True}, deep=True)

        matches = await self._generate_from_knowledge(profile)
        if not matches:
            return self._empty_result(profile, NO_MATCHES_MESSAGE)

        result = MatchResult(
            matches=_renumber(matches[: self.params.max_matches]),
            profile_summary=self.create_profile_summary(profile),
            insights=[QUICK_INSIGHT],
            disclaimer=QUICK_DISCLAIMER,
            generated_at=datetime.now(timezone.utc).isoformat(),
            searches_used=0,
        )

        self.cache.set(cache_key, result.model_copy(deep=True))
        return result

    def get_cache_stats(self) -> dict[str, Any]:
        return self.cache.stats()

    def set_verification_enabled(self, enabled: bool) -> None:
        """Toggle verification for subsequent find_matches calls."""
        self.verification_enabled = bool(enabled)
        self.logger.info("Verification toggled", enabled=self.verification_enabled)

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    def _budget_line(self, profile: StudentProfile) -> str:
        if profile.budget_amount and profile.budget_currency:
            return (
                f"{profile.budget_currency} {profile.budget_amount:,.0f} "
                "MAXIMUM (user-specified constraint)"
            )
        return self._reference_budget_label(profile.budget, with_usd=True)

    def _reference_budget_label(self, amount: float, with_usd: bool = False) -> str:
        currency = self.params.currency
        reference = currency.reference_currency.upper()
        if reference in LAKH_CURRENCIES:
            label = f"{reference} {amount / LAKH:.1f} Lakhs"
        else:
            label = f"{reference} {amount:,.0f}"
        usd_rate = currency.rate_for("USD")
        if with_usd and usd_rate and reference != "USD":
            label += f" (~USD {amount / usd_rate:,.0f})"
        return label

    def _bands(self) -> list[dict[str, Any]]:
        bands = []
        upper = 100
        for name, lower in CATEGORY_BANDS:
            if lower <= 0:
                break
            bands.append({"name": name, "low": lower, "high": upper})
            upper = lower - 1
        return bands

    async def _generate_from_knowledge(self, profile: StudentProfile) -> list[UniversityMatch]:
        llm = self.params.llm
        system_prompt = render_prompt(
            "matching/knowledge_system.j2",
            correlation_id=self.correlation_id,
            match_count=self.params.max_matches,
            bands=self._bands(),
            rates=self.params.currency.rates,
            reference_currency=self.params.currency.reference_currency,
        )
        user_prompt = render_prompt(
            "matching/profile.j2",
            correlation_id=self.correlation_id,
            profile=profile,
            budget_line=self._budget_line(profile),
            match_count=self.params.max_matches,
        )

        self.logger.info("Requesting knowledge-based matches", model=llm.fast_model)
        response = await self.completion_client.complete(
            system_prompt=system_prompt,
            user_prompt=user_prompt,
            model=llm.fast_model,
            temperature=llm.generation_temperature,
            max_tokens=llm.generation_max_tokens,
            expect_json=True,
        )
        matches = self.parse_matches(response)
        self.logger.info("Knowledge-based matches parsed", match_count=len(matches))
        return matches

    def parse_matches(self, response_text: Optional[str]) -> list[UniversityMatch]:
        """Parse a generation response into ranked matches.

        Invalid JSON or a missing ``matches`` array yields []. Individual
        invalid entries are dropped. Ranks follow response order from 1.
        """
        payload = parse_json_object(response_text)
        raw_matches = payload.get("matches")
        if not isinstance(raw_matches, list):
            self.logger.warning("Generation response has no matches array")
            return []

        matches: list[UniversityMatch] = []
        for index, raw in enumerate(raw_matches):
            if not isinstance(raw, dict):
                self.logger.warning("Dropping non-object match entry", index=index)
                continue
            try:
                match = UniversityMatch.model_validate(self._prepare_entry(raw))
            except PydanticValidationError as e:
                self.logger.warning(
                    "Dropping invalid match entry", index=index, error_count=e.error_count()
                )
                continue
            matches.append(self._fill_conversion(match))

        return _renumber(matches)

    @staticmethod
    def _prepare_entry(raw: dict[str, Any]) -> dict[str, Any]:
        entry = dict(raw)
        tuition = entry.get("tuition")
        if isinstance(tuition, dict) and "convertedAmount" not in tuition:
            # Older prompt shape named the converted amount after the currency
            legacy = next((k for k in tuition if k.startswith("in") and k[2:].isupper()), None)
            if legacy:
                tuition = dict(tuition)
                tuition["convertedAmount"] = tuition.pop(legacy)
                entry["tuition"] = tuition
        return entry

    def _fill_conversion(self, match: UniversityMatch) -> UniversityMatch:
        if match.tuition.converted_amount is not None:
            return match
        converted = self.params.currency.to_reference(
            match.tuition.amount, match.tuition.currency
        )
        if converted is None:
            return match
        tuition = match.tuition.model_copy(update={"converted_amount": converted})
        return match.model_copy(update={"tuition": tuition})

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    async def _verify_top_matches(
        self, profile: StudentProfile, matches: list[UniversityMatch]
    ) -> tuple[list[UniversityMatch], int]:
        top = matches[: self.params.verification.top_n]
        searches = 0
        verified_matches: list[UniversityMatch] = []
        rounds = self.delay_policy.rounds()

        for match in top:
            await rounds.wait()
            try:
                tuition_results = await self.web_search.search_university_info(
                    match.university, match.program, "tuition"
                )
                searches += 1
                requirement_results = await self.web_search.search_university_info(
                    match.university, match.program, "requirements"
                )
                searches += 1
                verified_matches.append(
                    await self._verify_match(
                        match, profile, tuition_results, requirement_results
                    )
                )
            except Exception as e:
                self.logger.warning(
                    "Verification failed, keeping original match",
                    university=match.university,
                    error_type=type(e).__name__,
                    error=str(e),
                )
                verified_matches.append(match)

        return verified_matches + matches[len(top):], searches

    async def _verify_match(
        self,
        match: UniversityMatch,
        profile: StudentProfile,
        tuition_results: list[SearchResult],
        requirement_results: list[SearchResult],
    ) -> UniversityMatch:
        llm = self.params.llm
        model = (
            llm.smart_model if self.params.verification.use_smart_model else llm.fast_model
        )
        user_prompt = render_prompt(
            "matching/verification.j2",
            correlation_id=self.correlation_id,
            match=match,
            tuition_results=tuition_results,
            requirement_results=requirement_results,
            budget_line=self._reference_budget_label(profile.budget),
            reference_currency=self.params.currency.reference_currency,
        )
        response = await self.completion_client.complete(
            system_prompt=render_prompt(
                "matching/verification_system.j2", correlation_id=self.correlation_id
            ),
            user_prompt=user_prompt,
            model=model,
            temperature=llm.verification_temperature,
            max_tokens=llm.verification_max_tokens,
            expect_json=True,
        )

        verified = parse_json_object(response)
        if not verified:
            self.logger.warning("Empty verification response", university=match.university)
            return match
        return self.merge_verification(match, verified)

    def merge_verification(
        self, match: UniversityMatch, verified: dict[str, Any]
    ) -> UniversityMatch:
        """Overlay non-null verified fields onto a match.

        officialUrl, deadline and analysis keep their original values when
        the verification payload omits them. lastVerified is set to today.

        Raises:
            pydantic.ValidationError: If the merged data is not a valid match
        """
        original = match.model_dump(by_alias=True)

        verified_tuition = _non_null(
            self._prepare_entry({"tuition": verified.get("tuition")}).get("tuition")
        )
        tuition = {**original["tuition"], **verified_tuition}
        if "convertedAmount" not in verified_tuition and (
            "amount" in verified_tuition or "currency" in verified_tuition
        ):
            tuition["convertedAmount"] = None

        requirements = {
            **original["requirements"],
            **_non_null(verified.get("requirements")),
        }

        analysis = verified.get("updatedAnalysis") or verified.get("analysis")

        merged = {
            **original,
            "tuition": tuition,
            "requirements": requirements,
            "officialUrl": verified.get("officialUrl") or original["officialUrl"],
            "deadline": verified.get("deadline") or original["deadline"],
            "analysis": analysis if isinstance(analysis, dict) else original["analysis"],
            "lastVerified": date.today().isoformat(),
        }
        return self._fill_conversion(UniversityMatch.model_validate(merged))

    # ------------------------------------------------------------------
    # Result shaping
    # ------------------------------------------------------------------

    def create_profile_summary(self, profile: StudentProfile) -> dict[str, Any]:
        return {
            "studyLevel": profile.study_level,
            "field": profile.field_of_study,
            "countries": list(profile.preferred_countries),
            "academicScore": profile.academic_score_label,
            "englishTest": profile.language_test_label,
            "workExperience": f"{profile.work_experience_years:g} years",
            "budget": self._reference_budget_label(profile.budget),
            "careerGoal": profile.career_goal,
        }

    def _empty_result(self, profile: StudentProfile, message: str) -> MatchResult:
        """Empty-match result. Never cached."""
        return MatchResult(
            matches=[],
            profile_summary=self.create_profile_summary(profile),
            insights=[message],
            disclaimer=EMPTY_DISCLAIMER,
            generated_at=datetime.now(timezone.utc).isoformat(),
            searches_used=0,
        )
