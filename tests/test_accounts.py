"""Tests for session tokens and API-key management."""

import uuid

import pytest

from language_test_api.errors import NotFound, ValidationError
from language_test_api.lifecycle.accounts import AccountService


@pytest.fixture
def accounts(repository):
    return AccountService(repository)


class TestSessions:
    async def test_create_session_issues_uuid(self, accounts):
        user = await accounts.create_session()
        uuid.UUID(user.session_id)
        assert user.id > 0

    async def test_get_session_touches(self, accounts):
        user = await accounts.create_session()
        fetched = await accounts.get_session(user.session_id)
        assert fetched.id == user.id
        assert fetched.last_active >= user.last_active

    async def test_get_unknown_session(self, accounts):
        with pytest.raises(NotFound):
            await accounts.get_session("missing")


class TestApiKeys:
    async def test_list_hides_key_material(self, accounts):
        user = await accounts.create_session()
        await accounts.save_api_key(user.session_id, "openai", "  sk-secret  ")
        [summary] = await accounts.list_api_keys(user.session_id)
        assert summary.service_name == "openai"
        assert not hasattr(summary, "api_key")

    async def test_save_requires_all_fields(self, accounts):
        user = await accounts.create_session()
        with pytest.raises(ValidationError):
            await accounts.save_api_key(user.session_id, "openai", None)

    async def test_delete_requires_session(self, accounts):
        with pytest.raises(ValidationError):
            await accounts.delete_api_key(None, 1)

    async def test_delete_unknown_key(self, accounts):
        user = await accounts.create_session()
        with pytest.raises(NotFound):
            await accounts.delete_api_key(user.session_id, 12345)
