"""Async HTTP client for the Language Test API."""

from pathlib import Path
from typing import Any

import httpx
import structlog

from language_test_api.errors import ValidationError
from language_test_api.lifecycle.accounts import is_valid_key_format

logger = structlog.get_logger()

DEFAULT_TIMEOUT = 15.0


class ApiClientError(Exception):
    """Non-2xx response from the server, carrying the server's message."""

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


class LanguageTestClient:
    """Thin wrapper around the ``/api`` endpoints.

    Args:
        base_url: Server root, e.g. ``http://localhost:3001``.
        transport: Optional httpx transport (tests use ``httpx.MockTransport``).
    """

    def __init__(self, base_url: str, transport: httpx.AsyncBaseTransport | None = None):
        self._client = httpx.AsyncClient(
            base_url=f"{base_url.rstrip('/')}/api",
            timeout=DEFAULT_TIMEOUT,
            transport=transport,
        )

    async def __aenter__(self) -> "LanguageTestClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        response = await self._client.request(method, url, **kwargs)
        if response.is_error:
            try:
                message = response.json().get("message") or response.reason_phrase
            except ValueError:
                message = response.text or response.reason_phrase
            logger.warning("api_request_failed", url=url, status=response.status_code)
            raise ApiClientError(response.status_code, message)
        return response.json()

    # Sessions

    async def create_session(self) -> dict:
        return await self._request("POST", "/sessions")

    async def get_session(self, session_id: str) -> dict:
        return await self._request("GET", f"/sessions/{session_id}")

    # API keys

    async def save_api_key(self, session_id: str, service_name: str, api_key: str) -> dict:
        """Store a key; malformed keys are rejected before any request is made."""
        if not is_valid_key_format(api_key):
            raise ValidationError("API key format is invalid")
        return await self._request(
            "POST",
            "/api-keys",
            json={"session_id": session_id, "service_name": service_name, "api_key": api_key.strip()},
        )

    async def get_api_keys(self, session_id: str) -> list[dict]:
        data = await self._request("GET", f"/api-keys/{session_id}")
        return data["api_keys"]

    async def delete_api_key(self, key_id: int, session_id: str) -> dict:
        return await self._request("DELETE", f"/api-keys/{key_id}", json={"session_id": session_id})

    # Tests

    async def start_test(
        self, session_id: str, language: str, test_type: str, difficulty: int | None = None
    ) -> dict:
        payload: dict[str, Any] = {
            "session_id": session_id,
            "language": language,
            "test_type": test_type,
        }
        if difficulty is not None:
            payload["difficulty"] = difficulty
        return await self._request("POST", "/tests", json=payload)

    async def submit_response(
        self,
        test_id: int,
        session_id: str,
        question_id: int,
        response: str | None = None,
        response_time: int | None = None,
        audio_path: Path | None = None,
        audio_content_type: str = "audio/webm",
        transcription_required: bool = False,
    ) -> dict:
        data: dict[str, Any] = {"session_id": session_id, "question_id": str(question_id)}
        if response is not None:
            data["response"] = response
        if response_time is not None:
            data["response_time"] = str(response_time)
        if transcription_required:
            data["transcription_required"] = "true"

        if audio_path is None:
            return await self._request("POST", f"/tests/{test_id}/responses", data=data)
        with open(audio_path, "rb") as f:
            files = {"audio": (Path(audio_path).name, f, audio_content_type)}
            return await self._request(
                "POST", f"/tests/{test_id}/responses", data=data, files=files
            )

    async def complete_test(self, test_id: int, session_id: str) -> dict:
        return await self._request(
            "POST", f"/tests/{test_id}/complete", json={"session_id": session_id}
        )

    # AI

    async def generate_content(
        self, session_id: str, language: str, test_type: str, difficulty: int = 1
    ) -> list[dict]:
        data = await self._request(
            "POST",
            "/ai/generate-content",
            json={
                "session_id": session_id,
                "language": language,
                "test_type": test_type,
                "difficulty": difficulty,
            },
        )
        return data["questions"]

    async def evaluate(
        self,
        session_id: str,
        response: str,
        type: str = "open_ended",
        question_id: int | None = None,
    ) -> dict:
        payload: dict[str, Any] = {"session_id": session_id, "response": response, "type": type}
        if question_id is not None:
            payload["question_id"] = question_id
        return await self._request("POST", "/ai/evaluate", json=payload)
