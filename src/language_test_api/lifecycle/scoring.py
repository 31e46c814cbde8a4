"""Aggregate scoring for completed test sessions."""

from collections.abc import Iterable
from numbers import Real

from language_test_api.models.records import Response

COMPLETION_FEEDBACK = "AI evaluation summary will appear here."


def _is_numeric(value: object) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool)


def aggregate_score(responses: Iterable[Response]) -> float:
    """Mean of all numeric response scores, rounded to 2 decimals.

    Unscored responses are ignored entirely; returns 0 when nothing is scored.
    Every attempt counts, so repeated answers to one question each contribute.
    """
    scores = [float(r.score) for r in responses if _is_numeric(r.score)]
    if not scores:
        return 0.0
    return round(sum(scores) / len(scores), 2)
