"""Schemas for payloads coming back from the language model.

Model output is free-form text, so nothing is trusted until it validates here.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from language_test_api.models.records import QuestionType


class GeneratedQuestion(BaseModel):
    """One generated practice question; type and difficulty may be omitted."""

    model_config = ConfigDict(extra="ignore")

    question_text: str = Field(min_length=1)
    question_type: QuestionType | None = None
    difficulty_level: int | None = Field(default=None, ge=1)

    @field_validator("question_type", mode="before")
    @classmethod
    def _blank_type_is_missing(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class GeneratedQuestionSet(BaseModel):
    questions: list[GeneratedQuestion] = Field(min_length=1)


class EvaluationResult(BaseModel):
    """Grading of a single learner response (score on a 0-10 scale)."""

    model_config = ConfigDict(extra="ignore")

    score: float = Field(ge=0, le=10)
    feedback: str = ""
    metrics: dict[str, Any] = Field(default_factory=dict)
    confidence_score: float | None = None
