"""
University Match Data Models

Field names serialize to camelCase (``matchScore``, ``prPathway``...), the
shape the completion model is asked to return and the API exposes.
"""

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

MatchCategory = Literal["SAFETY", "TARGET", "REACH", "DREAM"]

# Ordered by decreasing admission likelihood; lower bound of admission chance
CATEGORY_BANDS: list[tuple[str, int]] = [
    ("SAFETY", 75),
    ("TARGET", 50),
    ("REACH", 30),
    ("DREAM", 0),
]

MAX_NAMED_SCHOLARSHIPS = 2


def category_for_chance(admission_chance: float) -> str:
    """Map an admission chance (0-100) onto its category band."""
    for category, lower_bound in CATEGORY_BANDS:
        if admission_chance >= lower_bound:
            return category
    return "DREAM"


def _clamp_percent(value: Any) -> int:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    if number != number:  # NaN
        return 0
    return int(round(min(100.0, max(0.0, number))))


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Tuition(_CamelModel):
    """Annual tuition in native currency plus reference-currency conversion."""

    amount: float = 0
    currency: str = "USD"
    converted_amount: Optional[float] = None
    verified: bool = False
    source: Optional[str] = None

    @field_validator("amount", mode="before")
    @classmethod
    def default_amount(cls, v: Any) -> Any:
        return 0 if v is None else v

    @field_validator("currency", mode="before")
    @classmethod
    def normalize_currency(cls, v: Any) -> Any:
        if not v:
            return "USD"
        return str(v).strip().upper()


class Requirements(_CamelModel):
    """Admission minimums for international applicants."""

    min_percentage: Optional[float] = None
    min_gpa: Optional[float] = Field(default=None, alias="minGPA")
    ielts_min: Optional[float] = None
    pte_min: Optional[float] = None
    gmat_required: bool = False
    gmat_min: Optional[int] = None
    work_exp_years: float = 0
    verified: bool = False
    source: Optional[str] = None

    @field_validator("gmat_required", "verified", mode="before")
    @classmethod
    def none_is_false(cls, v: Any) -> Any:
        return False if v is None else v

    @field_validator("work_exp_years", mode="before")
    @classmethod
    def none_is_zero(cls, v: Any) -> Any:
        return 0 if v is None else v


class PRPathway(_CamelModel):
    """Permanent-residency pathway assessment."""

    strength: int = 0
    details: str = ""
    post_study_work: str = ""

    @field_validator("strength", mode="before")
    @classmethod
    def clamp_strength(cls, v: Any) -> int:
        return _clamp_percent(v)


class Scholarships(_CamelModel):
    available: bool = False
    top_scholarships: list[str] = Field(default_factory=list)

    @field_validator("top_scholarships", mode="before")
    @classmethod
    def cap_named(cls, v: Any) -> list[str]:
        if isinstance(v, str):
            v = [v] if v.strip() else []
        if not isinstance(v, (list, tuple)):
            return []
        return [str(item) for item in v if item is not None][:MAX_NAMED_SCHOLARSHIPS]


class MatchAnalysis(_CamelModel):
    strengths: list[str] = Field(default_factory=list)
    concerns: list[str] = Field(default_factory=list)
    budget_fit: str = ""
    recommendation: str = ""


class UniversityMatch(_CamelModel):
    """One ranked university recommendation."""

    rank: int = 0
    university: str
    country: str = ""
    city: str = ""
    program: str = ""
    level: str = ""
    duration: str = ""
    tuition: Tuition = Field(default_factory=Tuition)
    requirements: Requirements = Field(default_factory=Requirements)
    match_score: int = 0
    category: MatchCategory = "TARGET"
    admission_chance: int = 0
    pr_pathway: PRPathway = Field(default_factory=PRPathway)
    scholarships: Scholarships = Field(default_factory=Scholarships)
    analysis: Optional[MatchAnalysis] = None
    official_url: Optional[str] = None
    deadline: Optional[str] = None
    last_verified: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def resolve_category(cls, data: Any) -> Any:
        """Derive the category from admission chance when it is missing or unknown."""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        raw = data.get("category")
        category = str(raw).strip().upper() if raw else ""
        if category not in {band for band, _ in CATEGORY_BANDS}:
            chance = data.get("admissionChance", data.get("admission_chance"))
            category = category_for_chance(_clamp_percent(chance))
        data["category"] = category
        return data

    @field_validator("match_score", "admission_chance", mode="before")
    @classmethod
    def clamp_scores(cls, v: Any) -> int:
        return _clamp_percent(v)

    @field_validator("rank", mode="before")
    @classmethod
    def default_rank(cls, v: Any) -> Any:
        return 0 if v is None else v

    def to_api(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class MatchResult(_CamelModel):
    """Ranked matches plus derived insights for one profile."""

    matches: list[UniversityMatch] = Field(default_factory=list)
    profile_summary: dict[str, Any] = Field(default_factory=dict)
    insights: list[str] = Field(default_factory=list)
    disclaimer: str = ""
    generated_at: str
    searches_used: int = 0
    cached: bool = False

    def to_api(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)
