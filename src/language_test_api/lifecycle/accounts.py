"""Anonymous sessions and per-user API keys."""

import re
import uuid

import structlog

from language_test_api.errors import NotFound, ValidationError
from language_test_api.models.records import ApiKeySummary, User
from language_test_api.storage.repository import Repository

logger = structlog.get_logger()

API_KEY_PATTERN = re.compile(r"^sk-[a-zA-Z0-9]{20,}$")


def is_valid_key_format(api_key: str) -> bool:
    """OpenAI-style key: ``sk-`` followed by at least 20 alphanumerics."""
    return bool(API_KEY_PATTERN.match(api_key.strip()))


class AccountService:
    """Session token and API-key operations.

    Args:
        repository: Persistence access layer.
    """

    def __init__(self, repository: Repository):
        self.repository = repository

    async def _require_user(self, session_token: str | None) -> User:
        if not session_token:
            raise ValidationError("Session ID is required")
        user = await self.repository.get_user(session_token)
        if user is None:
            raise NotFound("Session not found")
        return user

    async def create_session(self) -> User:
        user = await self.repository.create_user(str(uuid.uuid4()))
        logger.info("session_created", user_id=user.id)
        return user

    async def get_session(self, session_token: str | None) -> User:
        """Resolve a session token and refresh its last-active timestamp."""
        user = await self._require_user(session_token)
        await self.repository.touch_user(user.session_id)
        return await self.repository.get_user(user.session_id) or user

    async def save_api_key(
        self, session_token: str | None, service_name: str | None, api_key: str | None
    ) -> None:
        if not session_token or not service_name or not api_key:
            raise ValidationError("Session ID, service name, and API key are required")
        user = await self._require_user(session_token)
        await self.repository.save_api_key(user.id, service_name, api_key.strip())
        logger.info("api_key_saved", user_id=user.id, service=service_name)

    async def list_api_keys(self, session_token: str | None) -> list[ApiKeySummary]:
        user = await self._require_user(session_token)
        records = await self.repository.list_api_keys(user.id)
        return [
            ApiKeySummary(
                id=r.id,
                service_name=r.service_name,
                is_active=r.is_active,
                created_at=r.created_at,
                last_used=r.last_used,
            )
            for r in records
        ]

    async def delete_api_key(self, session_token: str | None, key_id: int) -> None:
        """Delete a key owned by the session's user; another user's key is NotFound."""
        user = await self._require_user(session_token)
        await self.repository.delete_api_key(key_id, user.id)
        logger.info("api_key_deleted", user_id=user.id, key_id=key_id)
