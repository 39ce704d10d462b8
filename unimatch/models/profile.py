"""
Student Profile Data Models
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

CAREER_GOALS = {"PR_PATHWAY", "WORK_RETURN", "DEGREE_ONLY", "FLEXIBLE"}

DEFAULT_COUNTRIES = ["CANADA", "AUSTRALIA", "UK"]


class LanguageTest(BaseModel):
    """Language proficiency test result with optional sub-scores."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    type: str
    overall_score: Optional[float] = None
    listening: Optional[float] = None
    reading: Optional[float] = None
    writing: Optional[float] = None
    speaking: Optional[float] = None


class StudentProfile(BaseModel):
    """Canonical student profile handed to the matching engine.

    Frozen: filters are applied with ``model_copy(update=...)`` so the profile
    derived from a stored conversation is never mutated in place.

    Attributes:
        study_level: Target level (BACHELORS, MASTERS, MBA, PHD, DIPLOMA)
        field_of_study: Target field (IT, BUSINESS, ENGINEERING, ...)
        percentage: Academic score as a percentage
        gpa: Academic score as a GPA numerator (scale unknown)
        language_test: Language test taken, None when not yet taken
        career_goal: One of CAREER_GOALS
        preferred_countries: Upper-cased country names, never empty
        budget: Total budget in the reference currency
        budget_amount: User-specified budget constraint in budget_currency
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    study_level: str = "MASTERS"
    field_of_study: Optional[str] = None
    current_degree: Optional[str] = None
    university: Optional[str] = None
    percentage: Optional[float] = None
    gpa: Optional[float] = None
    graduation_year: Optional[int] = None
    work_experience_years: float = 0
    work_experience_field: Optional[str] = None
    language_test: Optional[LanguageTest] = None
    gmat: Optional[int] = None
    gre: Optional[int] = None
    career_goal: str = "FLEXIBLE"
    preferred_countries: list[str] = Field(
        default_factory=lambda: list(DEFAULT_COUNTRIES), min_length=1
    )
    preferred_state: Optional[str] = None
    target_intake: str = "2026"
    budget: float = 3_000_000
    willing_to_loan: bool = True
    needs_scholarship: bool = False
    budget_amount: Optional[float] = None
    budget_currency: Optional[str] = None
    additional_info: Optional[str] = None

    @property
    def academic_score_label(self) -> str:
        """Human-readable academic score."""
        if self.percentage is not None:
            return f"{self.percentage:g}%"
        if self.gpa is not None:
            return f"{self.gpa:g} GPA"
        return "Not specified"

    @property
    def language_test_label(self) -> str:
        """Human-readable language test, e.g. "IELTS 7"."""
        if self.language_test is None:
            return "Not taken"
        if self.language_test.overall_score is None:
            return self.language_test.type
        return f"{self.language_test.type} {self.language_test.overall_score:g}"
