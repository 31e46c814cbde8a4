"""Inputs and results of the test lifecycle operations, plus HTTP request bodies."""

from pathlib import Path

from pydantic import BaseModel, Field

from language_test_api.models.gateway import EvaluationResult
from language_test_api.models.records import Question, Response


class StartTestCommand(BaseModel):
    user_token: str | None = None
    language: str | None = None
    test_type: str | None = None
    difficulty: int = 1


class SubmitResponseCommand(BaseModel):
    user_token: str | None = None
    test_id: int
    question_id: int | None = None
    response_text: str | None = None
    response_time: int | None = None
    audio_path: Path | None = None
    transcription_required: bool = False


class StartedTest(BaseModel):
    test_id: int
    questions: list[Question]


class SubmittedResponse(BaseModel):
    response_id: int
    evaluation: EvaluationResult | None = None


class CompletedTest(BaseModel):
    score: float
    feedback: str
    questions: list[Question]
    responses: list[Response]


# Request bodies. Required fields are optional here so that a missing field is
# reported by the lifecycle layer as a 400 with the usual error body.


class SaveApiKeyRequest(BaseModel):
    session_id: str | None = None
    service_name: str | None = None
    api_key: str | None = None


class DeleteApiKeyRequest(BaseModel):
    session_id: str | None = None


class StartTestRequest(BaseModel):
    session_id: str | None = None
    language: str | None = None
    test_type: str | None = None
    difficulty: int | None = Field(default=None, ge=1)


class CompleteTestRequest(BaseModel):
    session_id: str | None = None


class GenerateContentRequest(StartTestRequest):
    pass


class EvaluateRequest(BaseModel):
    session_id: str | None = None
    question_id: int | None = None
    response: str | None = None
    type: str | None = None
