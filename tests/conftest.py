"""Shared fixtures: a seeded SQLite repository and a stub gateway."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from language_test_api.config import DEFAULT_LANGUAGES, DEFAULT_TEST_TYPES
from language_test_api.errors import GatewayError
from language_test_api.storage.database import create_engine_and_sessionmaker, init_database
from language_test_api.storage.repository import Repository

REFERENCE_DATA = {"languages": DEFAULT_LANGUAGES, "test_types": DEFAULT_TEST_TYPES}


@pytest.fixture
async def repository(tmp_path):
    engine, session_factory = create_engine_and_sessionmaker(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}"
    )
    await init_database(engine, session_factory, REFERENCE_DATA)
    yield Repository(session_factory)
    await engine.dispose()


@pytest.fixture
def gateway():
    """Gateway stub; every call fails unless a test configures it."""
    stub = MagicMock()
    stub.generate_content = AsyncMock(side_effect=GatewayError("unreachable"))
    stub.evaluate_response = AsyncMock(side_effect=GatewayError("unreachable"))
    stub.transcribe_audio = AsyncMock(side_effect=GatewayError("unreachable"))
    return stub
