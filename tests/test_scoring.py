"""Tests for aggregate session scoring."""

from datetime import datetime

import pytest

from language_test_api.lifecycle.scoring import aggregate_score
from language_test_api.models.records import Response


def _response(score, response_id=1):
    return Response(
        id=response_id,
        question_id=1,
        response_text="text",
        score=score,
        created_at=datetime(2026, 1, 1, 12, 0, 0),
    )


class TestAggregateScore:
    def test_ignores_unscored_responses(self):
        responses = [_response(8), _response(6, 2), _response(None, 3)]
        assert aggregate_score(responses) == 7.0

    def test_no_responses(self):
        assert aggregate_score([]) == 0

    def test_all_unscored(self):
        assert aggregate_score([_response(None), _response(None, 2)]) == 0

    def test_rounds_to_two_decimals(self):
        responses = [_response(7), _response(8, 2), _response(8, 3)]
        assert aggregate_score(responses) == pytest.approx(7.67)

    def test_zero_score_counts(self):
        assert aggregate_score([_response(0), _response(10, 2)]) == 5.0

    def test_repeated_attempts_each_count(self):
        first = _response(4, 1)
        retry = _response(9, 2)
        assert aggregate_score([first, retry]) == 6.5
