"""REST API routes for sessions, API keys, tests and direct AI calls."""

from pathlib import Path

from fastapi import APIRouter, Body, Depends, File, Form, Request, UploadFile, status

from language_test_api.api.uploads import save_audio_upload
from language_test_api.config import Settings
from language_test_api.lifecycle.accounts import AccountService
from language_test_api.lifecycle.orchestrator import TestLifecycle
from language_test_api.models.commands import (
    CompleteTestRequest,
    DeleteApiKeyRequest,
    EvaluateRequest,
    GenerateContentRequest,
    SaveApiKeyRequest,
    StartTestCommand,
    StartTestRequest,
    SubmitResponseCommand,
)

router = APIRouter(prefix="/api")


def get_lifecycle(request: Request) -> TestLifecycle:
    return request.app.state.lifecycle


def get_accounts(request: Request) -> AccountService:
    return request.app.state.accounts


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


@router.get("/health")
async def health_check() -> dict:
    """Health check endpoint."""
    return {"status": "ok"}


# Sessions


@router.post("/sessions", status_code=status.HTTP_201_CREATED)
async def create_session(accounts: AccountService = Depends(get_accounts)) -> dict:
    user = await accounts.create_session()
    return {"session_id": user.session_id, "user_id": user.id}


@router.get("/sessions/{session_id}")
async def get_session(session_id: str, accounts: AccountService = Depends(get_accounts)) -> dict:
    user = await accounts.get_session(session_id)
    return {
        "session_id": user.session_id,
        "created_at": user.created_at,
        "last_active": user.last_active,
    }


# API keys


@router.post("/api-keys")
async def save_api_key(
    body: SaveApiKeyRequest, accounts: AccountService = Depends(get_accounts)
) -> dict:
    await accounts.save_api_key(body.session_id, body.service_name, body.api_key)
    return {"success": True, "message": "API key saved successfully"}


@router.get("/api-keys/{session_id}")
async def list_api_keys(session_id: str, accounts: AccountService = Depends(get_accounts)) -> dict:
    keys = await accounts.list_api_keys(session_id)
    return {"api_keys": [k.model_dump(mode="json") for k in keys]}


@router.delete("/api-keys/{key_id}")
async def delete_api_key(
    key_id: int,
    body: DeleteApiKeyRequest | None = Body(default=None),
    accounts: AccountService = Depends(get_accounts),
) -> dict:
    await accounts.delete_api_key(body.session_id if body else None, key_id)
    return {"success": True, "message": "API key deleted successfully"}


# Tests


@router.post("/tests", status_code=status.HTTP_201_CREATED)
async def start_test(
    body: StartTestRequest, lifecycle: TestLifecycle = Depends(get_lifecycle)
) -> dict:
    started = await lifecycle.start_test(
        StartTestCommand(
            user_token=body.session_id,
            language=body.language,
            test_type=body.test_type,
            difficulty=body.difficulty or 1,
        )
    )
    return started.model_dump(mode="json")


@router.post("/tests/{test_id}/responses", status_code=status.HTTP_201_CREATED)
async def submit_response(
    test_id: int,
    session_id: str | None = Form(None),
    question_id: int | None = Form(None),
    response: str | None = Form(None),
    response_time: int | None = Form(None),
    transcription_required: bool = Form(False),
    audio: UploadFile | None = File(None),
    lifecycle: TestLifecycle = Depends(get_lifecycle),
    settings: Settings = Depends(get_app_settings),
) -> dict:
    audio_path: Path | None = None
    if audio is not None:
        audio_path = await save_audio_upload(audio, settings.uploads_dir, settings.max_audio_bytes)

    try:
        submitted = await lifecycle.submit_response(
            SubmitResponseCommand(
                user_token=session_id,
                test_id=test_id,
                question_id=question_id,
                response_text=response,
                response_time=response_time,
                audio_path=audio_path,
                transcription_required=transcription_required,
            )
        )
    except Exception:
        # Rejected submissions must not leave their audio behind
        if audio_path is not None:
            audio_path.unlink(missing_ok=True)
        raise
    return submitted.model_dump(mode="json", exclude_none=True)


@router.post("/tests/{test_id}/complete")
async def complete_test(
    test_id: int,
    body: CompleteTestRequest,
    lifecycle: TestLifecycle = Depends(get_lifecycle),
) -> dict:
    completed = await lifecycle.complete_test(body.session_id, test_id)
    return completed.model_dump(mode="json")


# Direct AI calls


@router.post("/ai/generate-content")
async def generate_content(
    body: GenerateContentRequest, lifecycle: TestLifecycle = Depends(get_lifecycle)
) -> dict:
    questions = await lifecycle.generate_content(
        body.session_id, body.language, body.test_type, body.difficulty or 1
    )
    return {"questions": [q.model_dump(mode="json") for q in questions]}


@router.post("/ai/evaluate")
async def evaluate(body: EvaluateRequest, lifecycle: TestLifecycle = Depends(get_lifecycle)) -> dict:
    evaluation = await lifecycle.evaluate(
        body.session_id, body.response, body.question_id, body.type
    )
    return evaluation.model_dump(mode="json")
