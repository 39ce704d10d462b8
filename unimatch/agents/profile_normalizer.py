"""Profile normalization: chat accumulator or API payload -> StudentProfile.

Resolution order for every field: canonical field (camelCase or snake_case)
-> chat-shape synonym -> numeric/string coercion -> hard default. The
normalizer never raises for malformed values; unparseable numbers become None.
"""

import math
import re
from typing import Any, Optional

from pydantic.alias_generators import to_snake

from unimatch.models.profile import (
    CAREER_GOALS,
    DEFAULT_COUNTRIES,
    LanguageTest,
    StudentProfile,
)

DEFAULT_BUDGET = 3_000_000
DEFAULT_STUDY_LEVEL = "MASTERS"
DEFAULT_CAREER_GOAL = "FLEXIBLE"
DEFAULT_INTAKE = "2026"

# Quick-reply labels from the dialogue -> canonical study levels
STUDY_LEVEL_LABELS = {
    "bachelor's": "BACHELORS",
    "bachelors": "BACHELORS",
    "bachelor": "BACHELORS",
    "master's": "MASTERS",
    "masters": "MASTERS",
    "master": "MASTERS",
    "mba": "MBA",
    "phd": "PHD",
    "doctorate": "PHD",
    "diploma/certificate": "DIPLOMA",
    "diploma": "DIPLOMA",
    "certificate": "DIPLOMA",
}

KNOWN_TEST_TYPES = {"IELTS", "TOEFL", "PTE", "DUOLINGO"}
NO_TEST_ANSWERS = {"not yet", "none", "no", ""}
OTHER_TEST_LABEL = "other"

_NUMBER_RE = re.compile(r"-?\d+(?:\.\d+)?")
_TRUE_STRINGS = {"true", "yes", "y", "1"}
_FALSE_STRINGS = {"false", "no", "n", "0"}


def _field(data: dict[str, Any], canonical: str, *synonyms: str) -> Any:
    """First non-empty value among canonical (camel, snake) and synonym keys."""
    for key in (canonical, to_snake(canonical), *synonyms):
        value = data.get(key)
        if value is not None and value != "":
            return value
    return None


def _to_float(value: Any) -> Optional[float]:
    """Coerce to float; strings yield their first number ("85%" -> 85, "3.5/4" -> 3.5)."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        match = _NUMBER_RE.search(value.replace(",", ""))
        if not match:
            return None
        number = float(match.group())
    else:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def _to_int(value: Any) -> Optional[int]:
    number = _to_float(value)
    return None if number is None else int(number)


def _to_bool(value: Any, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    return default


def _to_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _study_level(data: dict[str, Any]) -> str:
    raw = _to_text(_field(data, "studyLevel", "degreeLevel"))
    if raw is None:
        return DEFAULT_STUDY_LEVEL
    return STUDY_LEVEL_LABELS.get(raw.lower(), raw.upper())


def _academic_scores(data: dict[str, Any]) -> tuple[Optional[float], Optional[float]]:
    """Resolve (percentage, gpa) from canonical fields or the chat gpaScore answer."""
    percentage = _to_float(_field(data, "percentage"))
    gpa = _to_float(_field(data, "gpa"))

    chat_score = _to_text(_field(data, "gpaScore"))
    if chat_score is not None and percentage is None and gpa is None:
        value = _to_float(chat_score)
        if value is not None:
            # "85%" or a bare "85" is a percentage; "3.5/4.0" keeps the numerator
            if chat_score.endswith("%") or ("/" not in chat_score and value > 10):
                percentage = value
            else:
                gpa = value

    return percentage, gpa


def _language_test(data: dict[str, Any]) -> Optional[LanguageTest]:
    tests = _field(data, "tests", "languageTest", "language_test")

    if isinstance(tests, dict):
        test_type = _to_text(tests.get("type"))
        if test_type is None or test_type.lower() in NO_TEST_ANSWERS:
            return None
        return LanguageTest(
            type=test_type.upper() if test_type.upper() in KNOWN_TEST_TYPES else test_type,
            overall_score=_to_float(tests.get("overallScore", tests.get("overall_score"))),
            listening=_to_float(tests.get("listening")),
            reading=_to_float(tests.get("reading")),
            writing=_to_float(tests.get("writing")),
            speaking=_to_float(tests.get("speaking")),
        )

    test_type = _to_text(tests)
    if test_type is None or test_type.lower() in NO_TEST_ANSWERS:
        return None

    score_answer = _to_text(_field(data, "languageScore"))
    if test_type.lower() == OTHER_TEST_LABEL:
        # Free-text "French DELF B2": the answer names the test itself
        return LanguageTest(type=score_answer or test_type)

    return LanguageTest(
        type=test_type.upper() if test_type.upper() in KNOWN_TEST_TYPES else test_type,
        overall_score=_to_float(score_answer),
    )


def _named_test_score(data: dict[str, Any], name: str) -> Optional[int]:
    score = _to_int(_field(data, name.lower()))
    if score is not None:
        return score
    free_text = _to_text(_field(data, "standardizedTests"))
    if free_text is None:
        return None
    match = re.search(rf"{name}\D{{0,5}}(\d{{2,3}})", free_text, re.IGNORECASE)
    return int(match.group(1)) if match else None


def _preferred_countries(data: dict[str, Any]) -> list[str]:
    raw = _field(data, "preferredCountries")
    if isinstance(raw, str):
        raw = raw.split(",")
    countries: list[str] = []
    if isinstance(raw, (list, tuple)):
        countries = [str(c).strip().upper() for c in raw if str(c).strip()]
    if not countries:
        country = _to_text(_field(data, "country"))
        if country:
            countries = [country.upper()]
    return countries or list(DEFAULT_COUNTRIES)


def _career_goal(data: dict[str, Any]) -> str:
    raw = _to_text(_field(data, "careerGoal"))
    if raw is None:
        return DEFAULT_CAREER_GOAL
    goal = re.sub(r"[\s\-]+", "_", raw.upper())
    return goal if goal in CAREER_GOALS else DEFAULT_CAREER_GOAL


def normalize_profile(data: Any, default_budget: float = DEFAULT_BUDGET) -> StudentProfile:
    """Map a loosely-typed profile record onto a fully-populated StudentProfile.

    Args:
        data: Chat accumulator (country, degreeLevel, gpaScore, ...) or a
            direct API payload (studyLevel, percentage, tests, ...). Anything
            that is not a dict is treated as an empty record.
        default_budget: Budget used when none is declared (reference currency)

    Returns:
        StudentProfile with every field either taken from input or defaulted
    """
    if not isinstance(data, dict):
        data = {}

    percentage, gpa = _academic_scores(data)

    budget = _to_float(_field(data, "budget", "budgetNPR"))
    if budget is None or budget <= 0:
        budget = default_budget

    work_years = _to_float(_field(data, "workExperienceYears", "workExp"))

    return StudentProfile(
        study_level=_study_level(data),
        field_of_study=_to_text(_field(data, "fieldOfStudy", "field")),
        current_degree=_to_text(_field(data, "currentDegree", "currentEducation")),
        university=_to_text(_field(data, "university")),
        percentage=percentage,
        gpa=gpa,
        graduation_year=_to_int(_field(data, "graduationYear")),
        work_experience_years=work_years if work_years is not None and work_years >= 0 else 0,
        work_experience_field=_to_text(_field(data, "workExperienceField")),
        language_test=_language_test(data),
        gmat=_named_test_score(data, "GMAT"),
        gre=_named_test_score(data, "GRE"),
        career_goal=_career_goal(data),
        preferred_countries=_preferred_countries(data),
        preferred_state=_to_text(_field(data, "preferredState")),
        target_intake=_to_text(_field(data, "targetIntake", "timeline")) or DEFAULT_INTAKE,
        budget=budget,
        willing_to_loan=_to_bool(_field(data, "willingToLoan"), default=True),
        needs_scholarship=_to_bool(_field(data, "needsScholarship"), default=False),
        budget_amount=_to_float(_field(data, "budgetAmount")),
        budget_currency=_to_text(_field(data, "budgetCurrency")),
        additional_info=_to_text(_field(data, "additionalInfo")),
    )
