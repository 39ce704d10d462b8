"""Slot-filling conversation agent that builds a student profile one question per turn."""

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from unimatch.models.conversation import (
    ConversationRecord,
    ConversationStage,
    ConversationStep,
    Message,
    StartConversationResult,
    TurnResult,
)
from unimatch.utils.conversation_store import ConversationStore
from unimatch.utils.errors import NotFoundError, ValidationError
from unimatch.utils.logger import get_logger

MAX_MESSAGE_LENGTH = 1000
MIN_CONVERSATION_ID_LENGTH = 20

OTHER_COUNTRY = "Other Country"
NO_TEST_YET = "Not yet"
OTHER_TEST = "Other"

# Regional-indicator flag pairs plus the globe glyphs used on the country buttons
_FLAG_EMOJI_RE = re.compile("[\U0001F1E6-\U0001F1FF\U0001F30D\U0001F30E\U0001F30F]")
_CONVERSATION_ID_RE = re.compile(r"^[A-Za-z0-9]+$")


@dataclass(frozen=True)
class Question:
    text: str
    options: list[str] = field(default_factory=list)


QUESTION_FLOW: dict[ConversationStep, Question] = {
    ConversationStep.COUNTRY: Question(
        "Which country would you like to study in?",
        [
            "🇨🇦 Canada",
            "🇦🇺 Australia",
            "🇬🇧 UK",
            "🇺🇸 USA",
            "🇩🇪 Germany",
            "🇳🇿 New Zealand",
            "🌍 Other Country",
        ],
    ),
    ConversationStep.COUNTRY_OTHER: Question(
        "Which country would you like to study in? (Please type the country name)"
    ),
    ConversationStep.DEGREE_LEVEL: Question(
        "What degree level are you applying for?",
        ["Bachelor's", "Master's", "PhD", "Diploma/Certificate"],
    ),
    ConversationStep.CURRENT_EDUCATION: Question(
        "What is your current/highest education level?",
        ["High School (12th)", "Bachelor's Degree", "Master's Degree", "Other"],
    ),
    ConversationStep.GPA_SCORE: Question(
        "What is your GPA/CGPA or Percentage? (e.g., 3.5/4.0 or 85% or 7.5/10)"
    ),
    ConversationStep.LANGUAGE_TEST: Question(
        "Have you taken any language proficiency test?",
        [
            "IELTS",
            "TOEFL",
            "PTE",
            "Duolingo",
            "German (TestDaF/Goethe)",
            "Japanese (JLPT)",
            "Other",
            "Not yet",
        ],
    ),
    ConversationStep.STANDARDIZED_TESTS: Question(
        "Have you taken any standardized tests? "
        "(e.g., GRE 320, GMAT 680, SAT 1400, or type 'None')"
    ),
    ConversationStep.ADDITIONAL_INFO: Question(
        "Is there anything else you'd like to mention about your academic "
        "background, work experience, or goals? (Or type 'No' to finish)"
    ),
    ConversationStep.COMPLETE: Question(
        "Perfect! I have all the information I need. Let me analyze your "
        "profile and find the best university matches for you..."
    ),
}

OTHER_LANGUAGE_SCORE_QUESTION = (
    "Please specify the test name and your score (e.g., French DELF B2)"
)


def strip_flag_emoji(text: str) -> str:
    """Remove flag and globe decorations from a quick-reply answer."""
    return _FLAG_EMOJI_RE.sub("", text).strip()


def _to_step(step: Any) -> Optional[ConversationStep]:
    try:
        return ConversationStep(step)
    except ValueError:
        return None


def process_answer(
    accumulator: dict[str, Any], step: Any, answer: str
) -> tuple[dict[str, Any], ConversationStep]:
    """Apply one answer to the profile accumulator.

    Pure: the input accumulator is never mutated and the same
    (accumulator, step, answer) always yields the same result.

    Args:
        accumulator: Partial profile answers collected so far
        step: Current step cursor (ConversationStep or its string value)
        answer: Raw answer text

    Returns:
        Tuple of (updated accumulator copy, next step). An unrecognized
        step resets the cursor to COUNTRY.
    """
    updated = dict(accumulator)
    current = _to_step(step)

    if current == ConversationStep.COUNTRY:
        country = strip_flag_emoji(answer)
        if country == OTHER_COUNTRY:
            return updated, ConversationStep.COUNTRY_OTHER
        updated["country"] = country
        return updated, ConversationStep.DEGREE_LEVEL

    if current == ConversationStep.COUNTRY_OTHER:
        updated["country"] = answer
        return updated, ConversationStep.DEGREE_LEVEL

    if current == ConversationStep.DEGREE_LEVEL:
        updated["degreeLevel"] = answer
        return updated, ConversationStep.CURRENT_EDUCATION

    if current == ConversationStep.CURRENT_EDUCATION:
        updated["currentEducation"] = answer
        return updated, ConversationStep.GPA_SCORE

    if current == ConversationStep.GPA_SCORE:
        updated["gpaScore"] = answer
        return updated, ConversationStep.LANGUAGE_TEST

    if current == ConversationStep.LANGUAGE_TEST:
        updated["languageTest"] = answer
        if answer.strip() == NO_TEST_YET:
            return updated, ConversationStep.STANDARDIZED_TESTS
        return updated, ConversationStep.LANGUAGE_SCORE

    if current == ConversationStep.LANGUAGE_SCORE:
        updated["languageScore"] = answer
        return updated, ConversationStep.STANDARDIZED_TESTS

    if current == ConversationStep.STANDARDIZED_TESTS:
        if answer.strip().lower() != "none":
            updated["standardizedTests"] = answer
        return updated, ConversationStep.ADDITIONAL_INFO

    if current == ConversationStep.ADDITIONAL_INFO:
        if answer.strip().lower() != "no":
            updated["additionalInfo"] = answer
        return updated, ConversationStep.COMPLETE

    return updated, ConversationStep.COUNTRY


def build_assistant_turn(
    accumulator: dict[str, Any], next_step: ConversationStep
) -> tuple[str, list[str]]:
    """Question text and quick-reply options for the step about to be asked."""
    if next_step == ConversationStep.LANGUAGE_SCORE:
        test_name = str(accumulator.get("languageTest", "")).strip()
        if test_name == OTHER_TEST:
            return OTHER_LANGUAGE_SCORE_QUESTION, []
        return f"What is your {test_name} score?", []

    question = QUESTION_FLOW[next_step]
    return question.text, list(question.options)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ConversationAgent:
    """Runs the slot-filling dialogue on top of a ConversationStore.

    Each turn persists the user message, advances the step cursor through
    process_answer, persists the next assistant question and finally the
    updated conversation record.
    """

    def __init__(self, store: ConversationStore, correlation_id: str = "conversation"):
        self.store = store
        self.correlation_id = correlation_id
        self.logger: Any = get_logger(
            correlation_id=correlation_id,
            phase="conversation",
            component="conversation_agent",
        )

    def _validate_conversation_id(self, conversation_id: str) -> None:
        if (
            not isinstance(conversation_id, str)
            or len(conversation_id) < MIN_CONVERSATION_ID_LENGTH
            or not _CONVERSATION_ID_RE.match(conversation_id)
        ):
            raise ValidationError("Invalid conversation ID")

    def _load(self, conversation_id: str) -> ConversationRecord:
        self._validate_conversation_id(conversation_id)
        record = self.store.get(conversation_id)
        if record is None:
            raise NotFoundError("Conversation")
        return record

    def start_conversation(self, user_id: Optional[str] = None) -> StartConversationResult:
        """Create a conversation and emit the first question.

        Args:
            user_id: Optional owner of the conversation

        Returns:
            StartConversationResult with the new id, question and options
        """
        text, options = build_assistant_turn({}, ConversationStep.COUNTRY)
        record = ConversationRecord(
            user_id=user_id,
            stage=ConversationStage.GREETING,
            step=ConversationStep.COUNTRY,
        )
        self.store.create(record)
        self.store.append_message(
            record.id, Message(role="assistant", content=text, options=options)
        )

        self.logger.info("Conversation started", conversation_id=record.id, user_id=user_id)
        return StartConversationResult(
            conversation_id=record.id, message=text, options=options
        )

    def send_message(self, conversation_id: str, text: str) -> TurnResult:
        """Apply one user answer and return the next assistant question.

        Raises:
            ValidationError: Bad id, empty/oversized message, or the
                conversation is already complete
            NotFoundError: Unknown conversation id
        """
        if not isinstance(text, str) or not text.strip():
            raise ValidationError("Message cannot be empty")
        if len(text) > MAX_MESSAGE_LENGTH:
            raise ValidationError(
                f"Message cannot exceed {MAX_MESSAGE_LENGTH} characters"
            )

        record = self._load(conversation_id)
        if record.is_complete:
            raise ValidationError("Conversation is already complete")

        accumulator, next_step = process_answer(
            record.profile_accumulator, record.step, text
        )
        assistant_text, options = build_assistant_turn(accumulator, next_step)
        is_complete = next_step == ConversationStep.COMPLETE

        user_message = Message(role="user", content=text)
        assistant_message = Message(
            role="assistant", content=assistant_text, options=options
        )

        # Log the turn as one pair, then advance the cursor. A failed record
        # write leaves the step unchanged so the same question is asked again.
        self.store.append_messages(record.id, [user_message, assistant_message])

        updated = record.model_copy(
            update={
                "profile_accumulator": accumulator,
                "step": next_step,
                "stage": (
                    ConversationStage.COMPLETE
                    if is_complete
                    else ConversationStage.PROFILE_BUILDING
                ),
                "is_complete": is_complete,
                "updated_at": _utcnow(),
                "messages": [],
            }
        )
        self.store.update(updated)

        self.logger.info(
            "Conversation turn processed",
            conversation_id=record.id,
            step=record.step.value,
            next_step=next_step.value,
            is_complete=is_complete,
        )

        return TurnResult(
            user_message_id=user_message.id,
            assistant_message_id=assistant_message.id,
            assistant_message=assistant_text,
            options=options,
            is_complete=is_complete,
        )

    def get_conversation(self, conversation_id: str) -> dict[str, Any]:
        """Return the persisted conversation in its camelCase API shape.

        Raises:
            ValidationError: Bad id format
            NotFoundError: Unknown conversation id
        """
        return self._load(conversation_id).to_api()

    def get_record(self, conversation_id: str) -> ConversationRecord:
        """Return the persisted conversation as a model."""
        return self._load(conversation_id)
