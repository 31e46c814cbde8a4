"""Persistence access layer.

Every public method runs in its own session and commits before returning, so
each call is atomic on its own. Rows never leave this module: callers get
pydantic records.
"""

import functools
import json
from collections.abc import Awaitable, Callable, Iterable
from datetime import datetime
from typing import Any, ParamSpec, TypeVar

import structlog
from sqlalchemy import delete, select, update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from language_test_api.errors import NotFound, PersistenceError
from language_test_api.models.records import (
    ApiKeyRecord,
    Evaluation,
    Language,
    Question,
    QuestionDraft,
    Response,
    SessionStatus,
    TestSession,
    TestType,
    User,
)
from language_test_api.storage.database import (
    ApiKeyRow,
    EvaluationRow,
    LanguageRow,
    QuestionRow,
    ResponseRow,
    TestSessionRow,
    TestTypeRow,
    UserRow,
)

logger = structlog.get_logger()

P = ParamSpec("P")
R = TypeVar("R")


def _storage_operation(func: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
    """Translate SQLAlchemy failures into PersistenceError."""

    @functools.wraps(func)
    async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        try:
            return await func(*args, **kwargs)
        except SQLAlchemyError as e:
            logger.error("persistence_error", operation=func.__name__, error=str(e))
            raise PersistenceError("Database operation failed", details=str(e)) from e

    return wrapper


class Repository:
    """Async repository over the relational store.

    Args:
        session_factory: Factory producing ``AsyncSession`` objects.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    # Users

    @_storage_operation
    async def create_user(self, session_token: str) -> User:
        async with self._session_factory() as session:
            existing = await session.scalar(
                select(UserRow).where(UserRow.session_id == session_token)
            )
            if existing is not None:
                return User.model_validate(existing)
            row = UserRow(session_id=session_token)
            session.add(row)
            await session.commit()
            return User.model_validate(row)

    @_storage_operation
    async def get_user(self, session_token: str) -> User | None:
        async with self._session_factory() as session:
            row = await session.scalar(
                select(UserRow).where(UserRow.session_id == session_token)
            )
            return User.model_validate(row) if row is not None else None

    @_storage_operation
    async def touch_user(self, session_token: str) -> None:
        async with self._session_factory() as session:
            await session.execute(
                update(UserRow)
                .where(UserRow.session_id == session_token)
                .values(last_active=datetime.now())
            )
            await session.commit()

    # Reference data

    @_storage_operation
    async def get_language(self, code: str) -> Language | None:
        async with self._session_factory() as session:
            row = await session.scalar(
                select(LanguageRow).where(LanguageRow.code == code, LanguageRow.is_active.is_(True))
            )
            return Language.model_validate(row) if row is not None else None

    @_storage_operation
    async def get_test_type(self, name: str) -> TestType | None:
        async with self._session_factory() as session:
            row = await session.scalar(
                select(TestTypeRow).where(TestTypeRow.name == name, TestTypeRow.is_active.is_(True))
            )
            return TestType.model_validate(row) if row is not None else None

    # Test sessions

    @_storage_operation
    async def create_test_session(
        self, user_id: int, language_id: int, test_type_id: int
    ) -> TestSession:
        async with self._session_factory() as session:
            row = TestSessionRow(
                user_id=user_id,
                language_id=language_id,
                test_type_id=test_type_id,
                status=SessionStatus.ACTIVE.value,
            )
            session.add(row)
            await session.commit()
            return TestSession.model_validate(row)

    @_storage_operation
    async def get_test_session(self, test_id: int) -> TestSession | None:
        async with self._session_factory() as session:
            row = await session.get(TestSessionRow, test_id)
            return TestSession.model_validate(row) if row is not None else None

    @_storage_operation
    async def update_test_session_score(
        self, test_id: int, score: float, status: SessionStatus
    ) -> None:
        async with self._session_factory() as session:
            await session.execute(
                update(TestSessionRow)
                .where(TestSessionRow.id == test_id)
                .values(score=score, status=status.value, completed_at=datetime.now())
            )
            await session.commit()

    # Questions

    @_storage_operation
    async def add_questions(self, test_id: int, drafts: Iterable[QuestionDraft]) -> list[Question]:
        async with self._session_factory() as session:
            rows = [
                QuestionRow(
                    session_id=test_id,
                    question_text=draft.question_text,
                    question_type=draft.question_type.value,
                    difficulty_level=draft.difficulty_level,
                )
                for draft in drafts
            ]
            session.add_all(rows)
            await session.commit()
            return [Question.model_validate(row) for row in rows]

    @_storage_operation
    async def get_questions_by_session(self, test_id: int) -> list[Question]:
        async with self._session_factory() as session:
            rows = await session.scalars(
                select(QuestionRow)
                .where(QuestionRow.session_id == test_id)
                .order_by(QuestionRow.id)
            )
            return [Question.model_validate(row) for row in rows]

    @_storage_operation
    async def get_question(self, question_id: int) -> Question | None:
        async with self._session_factory() as session:
            row = await session.get(QuestionRow, question_id)
            return Question.model_validate(row) if row is not None else None

    # Responses

    @_storage_operation
    async def add_response(
        self,
        question_id: int,
        response_text: str | None,
        audio_file_path: str | None,
        response_time: int | None,
    ) -> Response:
        async with self._session_factory() as session:
            row = ResponseRow(
                question_id=question_id,
                response_text=response_text,
                audio_file_path=audio_file_path,
                response_time=response_time,
            )
            session.add(row)
            await session.commit()
            return Response.model_validate(row)

    @_storage_operation
    async def get_responses_by_session(self, test_id: int) -> list[Response]:
        async with self._session_factory() as session:
            rows = await session.scalars(
                select(ResponseRow)
                .join(QuestionRow, ResponseRow.question_id == QuestionRow.id)
                .where(QuestionRow.session_id == test_id)
                .order_by(ResponseRow.id)
            )
            return [Response.model_validate(row) for row in rows]

    @_storage_operation
    async def update_response_score(
        self, response_id: int, score: float, feedback: str | None
    ) -> None:
        async with self._session_factory() as session:
            await session.execute(
                update(ResponseRow)
                .where(ResponseRow.id == response_id)
                .values(score=score, feedback=feedback)
            )
            await session.commit()

    # Evaluations

    @_storage_operation
    async def save_evaluation(
        self, response_id: int, metrics: dict[str, Any], confidence_score: float | None
    ) -> Evaluation:
        async with self._session_factory() as session:
            row = EvaluationRow(
                response_id=response_id,
                evaluation_metrics=json.dumps(metrics, default=str),
                confidence_score=confidence_score,
            )
            session.add(row)
            await session.commit()
            return Evaluation(
                id=row.id,
                response_id=row.response_id,
                evaluation_metrics=metrics,
                confidence_score=row.confidence_score,
                evaluation_time=row.evaluation_time,
            )

    @_storage_operation
    async def get_evaluations(self, response_id: int) -> list[Evaluation]:
        async with self._session_factory() as session:
            rows = await session.scalars(
                select(EvaluationRow)
                .where(EvaluationRow.response_id == response_id)
                .order_by(EvaluationRow.id)
            )
            return [
                Evaluation(
                    id=row.id,
                    response_id=row.response_id,
                    evaluation_metrics=json.loads(row.evaluation_metrics or "{}"),
                    confidence_score=row.confidence_score,
                    evaluation_time=row.evaluation_time,
                )
                for row in rows
            ]

    # API keys

    @_storage_operation
    async def save_api_key(self, user_id: int, service_name: str, api_key: str) -> ApiKeyRecord:
        """Insert or replace the user's key for a service and reactivate it."""
        replacement = {"api_key": api_key, "is_active": True, "last_used": None}
        upsert = (
            sqlite_insert(ApiKeyRow)
            .values(user_id=user_id, service_name=service_name, **replacement)
            .on_conflict_do_update(
                index_elements=[ApiKeyRow.user_id, ApiKeyRow.service_name], set_=replacement
            )
        )
        async with self._session_factory() as session:
            await session.execute(upsert)
            await session.commit()
            row = await session.scalar(
                select(ApiKeyRow).where(
                    ApiKeyRow.user_id == user_id, ApiKeyRow.service_name == service_name
                )
            )
            return ApiKeyRecord.model_validate(row)

    @_storage_operation
    async def list_api_keys(self, user_id: int) -> list[ApiKeyRecord]:
        async with self._session_factory() as session:
            rows = await session.scalars(
                select(ApiKeyRow).where(ApiKeyRow.user_id == user_id).order_by(ApiKeyRow.id)
            )
            return [ApiKeyRecord.model_validate(row) for row in rows]

    @_storage_operation
    async def delete_api_key(self, key_id: int, user_id: int) -> None:
        async with self._session_factory() as session:
            result = await session.execute(
                delete(ApiKeyRow).where(ApiKeyRow.id == key_id, ApiKeyRow.user_id == user_id)
            )
            await session.commit()
        if not result.rowcount:
            raise NotFound("API key deletion failed")

    @_storage_operation
    async def get_active_api_key(self, user_id: int, service_name: str) -> ApiKeyRecord | None:
        async with self._session_factory() as session:
            row = await session.scalar(
                select(ApiKeyRow).where(
                    ApiKeyRow.user_id == user_id,
                    ApiKeyRow.service_name == service_name,
                    ApiKeyRow.is_active.is_(True),
                )
            )
            return ApiKeyRecord.model_validate(row) if row is not None else None

    @_storage_operation
    async def mark_api_key_used(self, key_id: int) -> None:
        async with self._session_factory() as session:
            await session.execute(
                update(ApiKeyRow).where(ApiKeyRow.id == key_id).values(last_used=datetime.now())
            )
            await session.commit()
