"""OpenAI-backed content generation, grading and transcription."""

import json
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pydantic
import structlog
from openai import AsyncOpenAI

from language_test_api.config import Settings
from language_test_api.errors import CredentialMissing, GatewayError
from language_test_api.gateway.prompts import (
    EVALUATION_SYSTEM_PROMPT,
    EVALUATION_USER_PROMPT,
    GENERATION_SYSTEM_PROMPT,
    GENERATION_USER_PROMPT,
)
from language_test_api.models.gateway import (
    EvaluationResult,
    GeneratedQuestion,
    GeneratedQuestionSet,
)
from language_test_api.models.records import User
from language_test_api.storage.repository import Repository

logger = structlog.get_logger()


def _parse_json(content: str | None, operation: str) -> Any:
    if not content:
        raise GatewayError(f"Empty response from language model during {operation}")
    try:
        return json.loads(content)
    except json.JSONDecodeError as e:
        raise GatewayError(
            f"Language model returned invalid JSON during {operation}", details=str(e)
        ) from e


def parse_generated_questions(payload: Any) -> list[GeneratedQuestion]:
    """Validate generated content; accepts ``{"questions": [...]}`` or a bare list."""
    if isinstance(payload, list):
        payload = {"questions": payload}
    try:
        return GeneratedQuestionSet.model_validate(payload).questions
    except pydantic.ValidationError as e:
        raise GatewayError("Generated content did not match the question schema", details=str(e)) from e


def parse_evaluation(payload: Any) -> EvaluationResult:
    try:
        return EvaluationResult.model_validate(payload)
    except pydantic.ValidationError as e:
        raise GatewayError("Evaluation did not match the expected schema", details=str(e)) from e


class OpenAIGateway:
    """Pass-through adapter to OpenAI using each user's stored API key.

    Args:
        repository: Used to look up the caller's credential.
        settings: Model names and sampling temperatures.
        client_factory: Builds a client from an API key.
    """

    def __init__(
        self,
        repository: Repository,
        settings: Settings,
        client_factory: Callable[[str], AsyncOpenAI] | None = None,
    ):
        self.repository = repository
        self.settings = settings
        self.client_factory = client_factory or (lambda api_key: AsyncOpenAI(api_key=api_key))

    async def _client_for(self, user: User) -> AsyncOpenAI:
        service = self.settings.credential_service
        record = await self.repository.get_active_api_key(user.id, service)
        if record is None:
            raise CredentialMissing("OpenAI API key not configured for this session")
        await self.repository.mark_api_key_used(record.id)
        return self.client_factory(record.api_key)

    async def _chat_json(
        self,
        client: AsyncOpenAI,
        model: str,
        system_prompt: str,
        user_prompt: str,
        temperature: float,
        operation: str,
    ) -> Any:
        try:
            response = await client.chat.completions.create(
                model=model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=temperature,
                response_format={"type": "json_object"},
            )
            content = response.choices[0].message.content
        except Exception as e:
            logger.error("openai_request_failed", operation=operation, error=str(e))
            raise GatewayError(f"OpenAI request failed during {operation}", details=str(e)) from e
        return _parse_json(content, operation)

    async def generate_content(
        self, user: User, language: str, test_type: str, difficulty: int
    ) -> list[GeneratedQuestion]:
        """Generate practice questions.

        Raises:
            CredentialMissing: No active key for the user.
            GatewayError: Any request, parse or schema failure.
        """
        client = await self._client_for(user)
        payload = await self._chat_json(
            client,
            model=self.settings.generation_model,
            system_prompt=GENERATION_SYSTEM_PROMPT,
            user_prompt=GENERATION_USER_PROMPT.format(
                test_type=test_type, language=language, difficulty=difficulty
            ),
            temperature=self.settings.generation_temperature,
            operation="content_generation",
        )
        questions = parse_generated_questions(payload)
        logger.info("content_generated", user_id=user.id, count=len(questions))
        return questions

    async def evaluate_response(
        self, user: User, response_text: str, question_text: str, test_type: str
    ) -> EvaluationResult:
        """Grade a learner response on a 0-10 scale."""
        client = await self._client_for(user)
        payload = await self._chat_json(
            client,
            model=self.settings.evaluation_model,
            system_prompt=EVALUATION_SYSTEM_PROMPT,
            user_prompt=EVALUATION_USER_PROMPT.format(
                test_type=test_type, question=question_text, response=response_text
            ),
            temperature=self.settings.evaluation_temperature,
            operation="evaluation",
        )
        result = parse_evaluation(payload)
        logger.info("response_evaluated", user_id=user.id, score=result.score)
        return result

    async def transcribe_audio(self, user: User, audio_path: Path) -> str:
        """Transcribe an uploaded audio file."""
        client = await self._client_for(user)
        try:
            with open(audio_path, "rb") as audio_file:
                transcription = await client.audio.transcriptions.create(
                    file=audio_file,
                    model=self.settings.transcription_model,
                )
        except Exception as e:
            logger.error("transcription_failed", user_id=user.id, error=str(e))
            raise GatewayError("Failed to transcribe audio", details=str(e)) from e
        return transcription.text
