"""
Unit tests for learning signal construction.
"""

import re

import pytest

from adaptivity.models import SelectionResult, SelectionWhy
from adaptivity.signals import (
    Alternative,
    SignalFactory,
    alternatives_from_result,
    describe_reason,
)


def make_result(**why):
    return SelectionResult(
        slot_id="slot1",
        variant_id="A",
        why=SelectionWhy(policy_version="v1", **why),
    )


@pytest.fixture
def factory(now):
    return SignalFactory(clock=lambda: now)


class TestDescribeReason:
    def test_override(self):
        assert describe_reason(make_result(overrides_used=True)) == "Teacher/system override applied"

    def test_sticky(self):
        assert describe_reason(make_result(sticky_used=True)) == "Previous choice retained (sticky)"

    def test_untraced_is_fallback(self):
        assert describe_reason(make_result()) == "Fallback variant"

    def test_highest_score(self):
        result = make_result(guards={"A": True, "B": True}, score={"A": 0.53, "B": 0.05})

        assert describe_reason(result) == (
            "Highest score (0.53) - best match for learner context"
        )

    def test_not_top_scored(self):
        result = make_result(guards={"A": True, "B": True}, score={"A": 0.05, "B": 0.5})

        assert describe_reason(result) == "Selected by adaptivity engine"


class TestAlternatives:
    def test_from_traced_result(self):
        result = make_result(guards={"A": True, "B": False}, score={"A": 0.3})

        assert alternatives_from_result(result) == [
            Alternative(variant_id="A", score=0.3, guard_passed=True),
            Alternative(variant_id="B", score=None, guard_passed=False),
        ]

    def test_untraced_result(self):
        assert alternatives_from_result(make_result()) == []


class TestSignalFactory:
    def test_variant_selected(self, factory, session, now):
        result = make_result(guards={"A": True}, score={"A": 0.2})

        signal = factory.variant_selected(session, result)

        assert signal.type == "variant_selected"
        assert signal.timestamp == now
        assert re.fullmatch(r"sig_\d+_[0-9a-f]{9}", signal.id)
        assert signal.session_ids.user_id == "u1"
        assert signal.session_ids.page_id == "P1"
        assert signal.payload["slotId"] == "slot1"
        assert signal.payload["variantId"] == "A"
        assert signal.payload["selectionResult"]["why"]["policyVersion"] == "v1"
        assert signal.payload["alternatives"] == [
            {"variant_id": "A", "score": 0.2, "guard_passed": True}
        ]
        assert signal.synced is False
        assert signal.sync_attempts == 0

    def test_ids_are_unique(self, factory, session):
        result = make_result()

        ids = {factory.variant_selected(session, result).id for _ in range(20)}

        assert len(ids) == 20

    def test_answer_submitted(self, factory, session):
        signal = factory.answer_submitted(
            session, "slot1", "A", "q1", correct=True, time_taken_ms=1500, attempts=2, answer="42",
        )

        assert signal.type == "answer_submitted"
        assert signal.payload == {
            "slotId": "slot1",
            "variantId": "A",
            "questionId": "q1",
            "correct": True,
            "timeTakenMs": 1500,
            "attempts": 2,
            "answer": "42",
        }

    def test_page_navigated_uses_destination_page(self, factory, session):
        signal = factory.page_navigated(session, "P1", "P2", "next", time_on_page_ms=30_000)

        assert signal.session_ids.page_id == "P2"
        assert signal.payload["fromPageId"] == "P1"
        assert signal.payload["direction"] == "next"

    def test_generic(self, factory, session):
        signal = factory.generic("session_started", session, {"entry": "home"})

        assert signal.type == "session_started"
        assert signal.payload == {"entry": "home"}

    def test_to_dict(self, factory, session):
        data = factory.generic("session_ended", session, {}).to_dict()

        assert data["type"] == "session_ended"
        assert data["session_ids"]["course_id"] == "c1"
        assert data["synced"] is False
