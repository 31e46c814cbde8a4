"""Test session lifecycle: start, submit responses, complete."""

import structlog

from language_test_api.errors import NotFound, UnsupportedOption, ValidationError
from language_test_api.gateway.openai_gateway import OpenAIGateway
from language_test_api.lifecycle.scoring import COMPLETION_FEEDBACK, aggregate_score
from language_test_api.models.commands import (
    CompletedTest,
    StartedTest,
    StartTestCommand,
    SubmitResponseCommand,
    SubmittedResponse,
)
from language_test_api.models.gateway import EvaluationResult, GeneratedQuestion
from language_test_api.models.records import (
    Language,
    QuestionDraft,
    QuestionType,
    SessionStatus,
    TestSession,
    User,
)
from language_test_api.storage.repository import Repository

logger = structlog.get_logger()

SPEAKING = "speaking"
READING = "reading"
CUSTOM_PROMPT = "Custom prompt"


def fallback_questions(language: Language, test_type: str, difficulty: int) -> list[QuestionDraft]:
    """Single templated question used when generation fails. Never raises."""
    question_type = QuestionType.AUDIO_PROMPT if test_type == SPEAKING else QuestionType.OPEN_ENDED
    return [
        QuestionDraft(
            question_text=f"Describe your favourite activity in {language.name}.",
            question_type=question_type,
            difficulty_level=difficulty,
        )
    ]


def to_draft(generated: GeneratedQuestion, test_type: str, difficulty: int) -> QuestionDraft:
    """Fill in the type and difficulty the model left out."""
    default_type = QuestionType.MULTIPLE_CHOICE if test_type == READING else QuestionType.OPEN_ENDED
    return QuestionDraft(
        question_text=generated.question_text,
        question_type=generated.question_type or default_type,
        difficulty_level=generated.difficulty_level or difficulty,
    )


class TestLifecycle:
    """Coordinates test sessions between the repository and the gateway.

    Args:
        repository: Persistence access layer.
        gateway: Content generation / grading / transcription adapter.
    """

    __test__ = False

    def __init__(self, repository: Repository, gateway: OpenAIGateway):
        self.repository = repository
        self.gateway = gateway

    async def _resolve_user(self, user_token: str | None) -> User:
        if not user_token:
            raise ValidationError("Session ID is required")
        user = await self.repository.get_user(user_token)
        if user is None:
            raise NotFound("Session not found")
        return user

    async def _resolve_test_session(self, user: User, test_id: int) -> TestSession:
        test_session = await self.repository.get_test_session(test_id)
        if test_session is None or test_session.user_id != user.id:
            raise NotFound("Test session not found")
        return test_session

    async def start_test(self, command: StartTestCommand) -> StartedTest:
        if not command.user_token or not command.language or not command.test_type:
            raise ValidationError("Session ID, language, and test type are required")

        user = await self._resolve_user(command.user_token)

        language = await self.repository.get_language(command.language)
        test_type = await self.repository.get_test_type(command.test_type)
        if language is None or test_type is None:
            raise UnsupportedOption("Unsupported language or test type")

        test_session = await self.repository.create_test_session(user.id, language.id, test_type.id)
        difficulty = command.difficulty

        try:
            generated = await self.gateway.generate_content(
                user, language.name, test_type.name, difficulty
            )
            drafts = [to_draft(q, test_type.name, difficulty) for q in generated]
        except Exception as e:
            logger.warning(
                "content_generation_fallback",
                test_id=test_session.id,
                language=language.code,
                test_type=test_type.name,
                error=str(e),
            )
            drafts = fallback_questions(language, test_type.name, difficulty)

        questions = await self.repository.add_questions(test_session.id, drafts)
        logger.info("test_started", test_id=test_session.id, user_id=user.id, questions=len(questions))
        return StartedTest(test_id=test_session.id, questions=questions)

    async def submit_response(self, command: SubmitResponseCommand) -> SubmittedResponse:
        if not command.user_token or command.question_id is None:
            raise ValidationError("Session ID and question ID are required")

        user = await self._resolve_user(command.user_token)
        test_session = await self._resolve_test_session(user, command.test_id)
        if not test_session.is_active:
            raise ValidationError(f"Test session is {test_session.status.value}")

        questions = await self.repository.get_questions_by_session(test_session.id)
        question = next((q for q in questions if q.id == command.question_id), None)
        if question is None:
            raise NotFound("Question not found in test session")

        response_text = command.response_text or None
        if (
            question.question_type == QuestionType.AUDIO_PROMPT
            and command.transcription_required
            and command.audio_path is not None
        ):
            # Transcription errors propagate: nothing has been persisted yet.
            response_text = await self.gateway.transcribe_audio(user, command.audio_path)

        response = await self.repository.add_response(
            question.id,
            response_text,
            str(command.audio_path) if command.audio_path is not None else None,
            command.response_time,
        )

        evaluation: EvaluationResult | None = None
        if response_text:
            # Grading is best-effort; storage failures below still propagate.
            try:
                evaluation = await self.gateway.evaluate_response(
                    user, response_text, question.question_text, question.question_type.value
                )
            except Exception as e:
                logger.warning("evaluation_skipped", response_id=response.id, error=str(e))
            if evaluation is not None:
                await self.repository.update_response_score(
                    response.id, evaluation.score, evaluation.feedback
                )
                await self.repository.save_evaluation(
                    response.id, evaluation.metrics, evaluation.confidence_score
                )

        logger.info(
            "response_submitted",
            test_id=test_session.id,
            question_id=question.id,
            response_id=response.id,
            evaluated=evaluation is not None,
        )
        return SubmittedResponse(response_id=response.id, evaluation=evaluation)

    async def complete_test(self, user_token: str | None, test_id: int) -> CompletedTest:
        user = await self._resolve_user(user_token)
        test_session = await self._resolve_test_session(user, test_id)

        questions = await self.repository.get_questions_by_session(test_session.id)
        if not questions:
            raise ValidationError("No questions found for this test")
        if not test_session.is_active:
            raise ValidationError(f"Test session is already {test_session.status.value}")

        responses = await self.repository.get_responses_by_session(test_session.id)
        score = aggregate_score(responses)
        await self.repository.update_test_session_score(test_session.id, score, SessionStatus.COMPLETED)

        logger.info("test_completed", test_id=test_session.id, score=score, responses=len(responses))
        return CompletedTest(
            score=score,
            feedback=COMPLETION_FEEDBACK,
            questions=questions,
            responses=responses,
        )

    # Direct AI pass-through, no fallback

    async def generate_content(
        self,
        user_token: str | None,
        language: str | None,
        test_type: str | None,
        difficulty: int = 1,
    ) -> list[GeneratedQuestion]:
        if not user_token or not language or not test_type:
            raise ValidationError("Session ID, language, and test type are required")
        user = await self._resolve_user(user_token)
        return await self.gateway.generate_content(user, language, test_type, difficulty)

    async def evaluate(
        self,
        user_token: str | None,
        response_text: str | None,
        question_id: int | None = None,
        test_type: str | None = None,
    ) -> EvaluationResult:
        if not user_token or not response_text:
            raise ValidationError("Session ID and response are required")
        user = await self._resolve_user(user_token)

        question = await self.repository.get_question(question_id) if question_id else None
        question_text = question.question_text if question is not None else CUSTOM_PROMPT
        return await self.gateway.evaluate_response(
            user, response_text, question_text, test_type or QuestionType.OPEN_ENDED.value
        )
