"""Relational schema, async engine setup and reference-data seeding."""

from datetime import datetime

import structlog
from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
    select,
)
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

logger = structlog.get_logger()

Base = declarative_base()


class UserRow(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(String(64), unique=True, nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.now, nullable=False)
    last_active = Column(DateTime, default=datetime.now, nullable=False)


class LanguageRow(Base):
    __tablename__ = "languages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    code = Column(String(16), unique=True, nullable=False)
    name = Column(String(64), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)


class TestTypeRow(Base):
    __tablename__ = "test_types"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(64), unique=True, nullable=False)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)


class TestSessionRow(Base):
    __tablename__ = "test_sessions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    language_id = Column(Integer, ForeignKey("languages.id"), nullable=False)
    test_type_id = Column(Integer, ForeignKey("test_types.id"), nullable=False)
    started_at = Column(DateTime, default=datetime.now, nullable=False)
    completed_at = Column(DateTime, nullable=True)
    score = Column(Float, nullable=True)
    status = Column(String(16), default="active", nullable=False)


class QuestionRow(Base):
    __tablename__ = "test_questions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(Integer, ForeignKey("test_sessions.id"), nullable=False, index=True)
    question_text = Column(Text, nullable=False)
    question_type = Column(String(32), nullable=False)
    difficulty_level = Column(Integer, default=1, nullable=False)
    created_at = Column(DateTime, default=datetime.now, nullable=False)


class ResponseRow(Base):
    __tablename__ = "user_responses"

    id = Column(Integer, primary_key=True, autoincrement=True)
    question_id = Column(Integer, ForeignKey("test_questions.id"), nullable=False, index=True)
    response_text = Column(Text, nullable=True)
    audio_file_path = Column(String(512), nullable=True)
    score = Column(Float, nullable=True)
    feedback = Column(Text, nullable=True)
    response_time = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=datetime.now, nullable=False)


class EvaluationRow(Base):
    __tablename__ = "ai_evaluations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    response_id = Column(Integer, ForeignKey("user_responses.id"), nullable=False, index=True)
    evaluation_metrics = Column(Text, nullable=False, default="{}")  # JSON string
    confidence_score = Column(Float, nullable=True)
    evaluation_time = Column(DateTime, default=datetime.now, nullable=False)


class ApiKeyRow(Base):
    __tablename__ = "user_api_keys"
    __table_args__ = (UniqueConstraint("user_id", "service_name", name="uq_user_service"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    service_name = Column(String(64), nullable=False)
    api_key = Column(Text, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.now, nullable=False)
    last_used = Column(DateTime, nullable=True)


def create_engine_and_sessionmaker(
    database_url: str,
) -> tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    """Build the async engine and a session factory bound to it."""
    connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
    engine = create_async_engine(database_url, connect_args=connect_args, future=True)
    session_factory = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    return engine, session_factory


async def init_database(
    engine: AsyncEngine,
    session_factory: async_sessionmaker[AsyncSession],
    reference_data: dict[str, list[dict[str, str]]],
) -> None:
    """Create tables and seed reference data into an empty store."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with session_factory() as session:
        language_count = await session.scalar(select(func.count()).select_from(LanguageRow))
        if not language_count:
            session.add_all(
                LanguageRow(code=lang["code"], name=lang["name"], is_active=True)
                for lang in reference_data["languages"]
            )
        test_type_count = await session.scalar(select(func.count()).select_from(TestTypeRow))
        if not test_type_count:
            session.add_all(
                TestTypeRow(name=t["name"], description=t.get("description"), is_active=True)
                for t in reference_data["test_types"]
            )
        await session.commit()

    logger.info(
        "database_initialized",
        url=engine.url.render_as_string(hide_password=True),
        seeded_languages=not language_count,
        seeded_test_types=not test_type_count,
    )
