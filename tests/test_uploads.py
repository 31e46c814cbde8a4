"""Tests for audio upload storage and cleanup."""

import pytest
from fastapi.testclient import TestClient

from language_test_api.api.uploads import upload_filename
from language_test_api.config import Settings
from language_test_api.main import create_app


class TestUploadFilename:
    def test_timestamp_prefix_and_sanitizing(self):
        assert upload_filename("my voice note.webm", now=1700000000.5) == "1700000000500-my_voice_note.webm"

    def test_strips_directories(self):
        assert upload_filename("../../etc/passwd", now=1.0) == "1000-passwd"

    def test_missing_name(self):
        assert upload_filename(None, now=2.0) == "2000-audio"


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'uploads.db'}",
        upload_dir=tmp_path / "uploads",
        max_audio_bytes=8,
    )


@pytest.fixture
def client(settings, gateway):
    app = create_app(settings)
    with TestClient(app) as c:
        app.state.lifecycle.gateway = gateway
        yield c


@pytest.fixture
def session_id(client):
    return client.post("/api/sessions").json()["session_id"]


@pytest.fixture
def speaking_test(client, session_id):
    return client.post(
        "/api/tests", json={"session_id": session_id, "language": "de", "test_type": "speaking"}
    ).json()


def _stored(settings):
    return list(settings.uploads_dir.iterdir())


class TestAudioUploads:
    def test_oversize_file_rejected_and_removed(self, client, settings, session_id, speaking_test):
        response = client.post(
            f"/api/tests/{speaking_test['test_id']}/responses",
            data={"session_id": session_id, "question_id": str(speaking_test["questions"][0]["id"])},
            files={"audio": ("long.webm", b"\x00" * 9, "audio/webm")},
        )
        assert response.status_code == 400
        assert response.json()["message"] == "Audio file exceeds 8 bytes"
        assert _stored(settings) == []

    def test_file_at_limit_is_kept(self, client, settings, session_id, speaking_test):
        response = client.post(
            f"/api/tests/{speaking_test['test_id']}/responses",
            data={"session_id": session_id, "question_id": str(speaking_test["questions"][0]["id"])},
            files={"audio": ("short.webm", b"\x00" * 8, "audio/webm")},
        )
        assert response.status_code == 201
        assert len(_stored(settings)) == 1

    def test_unknown_test_removes_upload(self, client, settings, session_id):
        response = client.post(
            "/api/tests/999/responses",
            data={"session_id": session_id, "question_id": "1"},
            files={"audio": ("a b.webm", b"\x00", "audio/webm")},
        )
        assert response.status_code == 404
        assert _stored(settings) == []

    def test_unknown_session_removes_upload(self, client, settings, speaking_test):
        response = client.post(
            f"/api/tests/{speaking_test['test_id']}/responses",
            data={"session_id": "nobody", "question_id": str(speaking_test["questions"][0]["id"])},
            files={"audio": ("a.webm", b"\x00", "audio/webm")},
        )
        assert response.status_code == 404
        assert _stored(settings) == []

    def test_failed_transcription_removes_upload(self, client, settings, session_id, speaking_test):
        response = client.post(
            f"/api/tests/{speaking_test['test_id']}/responses",
            data={
                "session_id": session_id,
                "question_id": str(speaking_test["questions"][0]["id"]),
                "transcription_required": "true",
            },
            files={"audio": ("a.webm", b"\x00", "audio/webm")},
        )
        assert response.status_code == 502
        assert _stored(settings) == []

    def test_completed_test_removes_upload(self, client, settings, session_id, speaking_test):
        test_id = speaking_test["test_id"]
        client.post(f"/api/tests/{test_id}/complete", json={"session_id": session_id})

        response = client.post(
            f"/api/tests/{test_id}/responses",
            data={"session_id": session_id, "question_id": str(speaking_test["questions"][0]["id"])},
            files={"audio": ("a.webm", b"\x00", "audio/webm")},
        )
        assert response.status_code == 400
        assert _stored(settings) == []
