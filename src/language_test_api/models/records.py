"""Persistent record models returned by the repository."""

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class SessionStatus(StrEnum):
    """Test session lifecycle states.

    ``abandoned`` is reserved: no operation transitions into it.
    """

    ACTIVE = "active"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


class QuestionType(StrEnum):
    MULTIPLE_CHOICE = "multiple_choice"
    OPEN_ENDED = "open_ended"
    AUDIO_PROMPT = "audio_prompt"


class Record(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class User(Record):
    """Anonymous user identified by an opaque session token."""

    id: int
    session_id: str
    created_at: datetime
    last_active: datetime


class Language(Record):
    id: int
    code: str
    name: str
    is_active: bool = True


class TestType(Record):
    id: int
    name: str
    description: str | None = None
    is_active: bool = True


class TestSession(Record):
    id: int
    user_id: int
    language_id: int
    test_type_id: int
    started_at: datetime
    completed_at: datetime | None = None
    score: float | None = None
    status: SessionStatus = SessionStatus.ACTIVE

    @property
    def is_active(self) -> bool:
        return self.status == SessionStatus.ACTIVE


class Question(Record):
    id: int
    session_id: int
    question_text: str
    question_type: QuestionType
    difficulty_level: int = 1
    created_at: datetime


class QuestionDraft(BaseModel):
    """A question about to be inserted (no id yet)."""

    question_text: str
    question_type: QuestionType
    difficulty_level: int = 1


class Response(Record):
    id: int
    question_id: int
    response_text: str | None = None
    audio_file_path: str | None = None
    score: float | None = None
    feedback: str | None = None
    response_time: int | None = None
    created_at: datetime


class Evaluation(Record):
    id: int
    response_id: int
    evaluation_metrics: dict[str, Any] = Field(default_factory=dict)
    confidence_score: float | None = None
    evaluation_time: datetime


class ApiKeyRecord(Record):
    id: int
    user_id: int
    service_name: str
    api_key: str
    is_active: bool = True
    created_at: datetime
    last_used: datetime | None = None


class ApiKeySummary(BaseModel):
    """API key listing entry; never carries the key material."""

    id: int
    service_name: str
    is_active: bool
    created_at: datetime
    last_used: datetime | None = None
