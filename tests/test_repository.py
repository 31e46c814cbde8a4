"""Tests for the SQLite-backed repository."""

import asyncio

import pytest

from language_test_api.errors import NotFound
from language_test_api.models.records import QuestionDraft, QuestionType, SessionStatus


async def _make_test(repository, token="token-1"):
    user = await repository.create_user(token)
    language = await repository.get_language("de")
    test_type = await repository.get_test_type("speaking")
    test_session = await repository.create_test_session(user.id, language.id, test_type.id)
    return user, test_session


class TestUsers:
    async def test_create_and_get(self, repository):
        user = await repository.create_user("abc")
        fetched = await repository.get_user("abc")
        assert fetched.id == user.id
        assert fetched.session_id == "abc"

    async def test_create_is_idempotent(self, repository):
        first = await repository.create_user("abc")
        second = await repository.create_user("abc")
        assert first.id == second.id

    async def test_unknown_user(self, repository):
        assert await repository.get_user("missing") is None

    async def test_touch_updates_last_active(self, repository):
        user = await repository.create_user("abc")
        await repository.touch_user("abc")
        touched = await repository.get_user("abc")
        assert touched.last_active >= user.last_active


class TestReferenceData:
    async def test_seeded_languages(self, repository):
        german = await repository.get_language("de")
        assert german.name == "German"
        assert await repository.get_language("fr") is None

    async def test_seeded_test_types(self, repository):
        for name in ("reading", "writing", "speaking"):
            assert (await repository.get_test_type(name)) is not None
        assert await repository.get_test_type("listening") is None


class TestSessionsAndQuestions:
    async def test_new_session_is_active(self, repository):
        _, test_session = await _make_test(repository)
        assert test_session.status == SessionStatus.ACTIVE
        assert test_session.score is None
        assert test_session.completed_at is None

    async def test_questions_keep_insertion_order(self, repository):
        _, test_session = await _make_test(repository)
        drafts = [
            QuestionDraft(question_text=f"Q{i}", question_type=QuestionType.OPEN_ENDED)
            for i in range(3)
        ]
        created = await repository.add_questions(test_session.id, drafts)
        listed = await repository.get_questions_by_session(test_session.id)
        assert [q.question_text for q in listed] == ["Q0", "Q1", "Q2"]
        assert [q.id for q in listed] == [q.id for q in created]

    async def test_update_score_completes_session(self, repository):
        _, test_session = await _make_test(repository)
        await repository.update_test_session_score(test_session.id, 7.5, SessionStatus.COMPLETED)
        updated = await repository.get_test_session(test_session.id)
        assert updated.score == 7.5
        assert updated.status == SessionStatus.COMPLETED
        assert updated.completed_at is not None


class TestResponses:
    async def test_responses_joined_through_questions(self, repository):
        _, first = await _make_test(repository, "one")
        _, second = await _make_test(repository, "two")
        draft = QuestionDraft(question_text="Q", question_type=QuestionType.OPEN_ENDED)
        [q1] = await repository.add_questions(first.id, [draft])
        [q2] = await repository.add_questions(second.id, [draft])

        await repository.add_response(q1.id, "answer one", None, 12)
        await repository.add_response(q2.id, "answer two", None, None)

        responses = await repository.get_responses_by_session(first.id)
        assert len(responses) == 1
        assert responses[0].response_text == "answer one"
        assert responses[0].response_time == 12

    async def test_score_update_and_evaluation(self, repository):
        _, test_session = await _make_test(repository)
        draft = QuestionDraft(question_text="Q", question_type=QuestionType.OPEN_ENDED)
        [question] = await repository.add_questions(test_session.id, [draft])
        response = await repository.add_response(question.id, "hello", None, None)

        await repository.update_response_score(response.id, 8.0, "Good")
        await repository.save_evaluation(response.id, {"grammar": 7}, 0.9)

        [stored] = await repository.get_responses_by_session(test_session.id)
        assert stored.score == 8.0
        assert stored.feedback == "Good"
        [evaluation] = await repository.get_evaluations(response.id)
        assert evaluation.evaluation_metrics == {"grammar": 7}
        assert evaluation.confidence_score == 0.9


class TestApiKeys:
    async def test_upsert_replaces_key(self, repository):
        user = await repository.create_user("abc")
        first = await repository.save_api_key(user.id, "openai", "sk-old")
        second = await repository.save_api_key(user.id, "openai", "sk-new")
        assert first.id == second.id
        keys = await repository.list_api_keys(user.id)
        assert len(keys) == 1
        assert keys[0].api_key == "sk-new"

    async def test_active_key_lookup_and_last_used(self, repository):
        user = await repository.create_user("abc")
        saved = await repository.save_api_key(user.id, "openai", "sk-key")
        assert saved.last_used is None
        await repository.mark_api_key_used(saved.id)
        active = await repository.get_active_api_key(user.id, "openai")
        assert active.last_used is not None
        assert await repository.get_active_api_key(user.id, "other") is None

    async def test_resave_clears_last_used(self, repository):
        user = await repository.create_user("abc")
        saved = await repository.save_api_key(user.id, "openai", "sk-key")
        await repository.mark_api_key_used(saved.id)
        resaved = await repository.save_api_key(user.id, "openai", "sk-key-2")
        assert resaved.last_used is None
        assert resaved.is_active

    async def test_delete_own_key(self, repository):
        user = await repository.create_user("abc")
        saved = await repository.save_api_key(user.id, "openai", "sk-key")
        await repository.delete_api_key(saved.id, user.id)
        assert await repository.list_api_keys(user.id) == []

    async def test_delete_other_users_key_fails(self, repository):
        owner = await repository.create_user("owner")
        other = await repository.create_user("other")
        saved = await repository.save_api_key(owner.id, "openai", "sk-key")
        with pytest.raises(NotFound):
            await repository.delete_api_key(saved.id, other.id)
        assert len(await repository.list_api_keys(owner.id)) == 1

    async def test_concurrent_saves_keep_one_row(self, repository):
        user = await repository.create_user("abc")
        keys = [f"sk-key-{i}" for i in range(5)]
        saved = await asyncio.gather(
            *(repository.save_api_key(user.id, "openai", key) for key in keys)
        )
        assert len({record.id for record in saved}) == 1
        [stored] = await repository.list_api_keys(user.id)
        assert stored.api_key in keys
        assert stored.is_active
