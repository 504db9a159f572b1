"""
Learning Signals.

Typed records of learning events and decisions, handed to the analytics
collaborator that queues and syncs them. This module only builds the
records; it does not store, queue or send anything.

Signal Types:
    - variant_selected: A selection result with its rationale
    - answer_submitted: A learner answer on a shown variant
    - page_navigated: Movement between lesson pages
    - session_started / session_ended / preference_changed /
      override_applied / variant_shown / user_interaction / error_occurred:
      generic payloads
"""

from __future__ import annotations

import time
import uuid
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Literal, Optional

from adaptivity.models import SelectionResult, SessionState


SignalType = Literal[
    "variant_selected",
    "variant_shown",
    "user_interaction",
    "answer_submitted",
    "page_navigated",
    "session_started",
    "session_ended",
    "preference_changed",
    "override_applied",
    "error_occurred",
]


# =============================================================================
# Signal Schemas
# =============================================================================


@dataclass
class SignalSessionIds:
    """Identity keys copied from the session at signal time."""

    user_id: str
    course_id: str
    lesson_id: str
    page_id: str
    attempt_id: Optional[str] = None


@dataclass
class Alternative:
    """A variant considered by a traced selection."""

    variant_id: str
    score: Optional[float]
    guard_passed: bool


@dataclass
class Signal:
    """One learning event."""

    id: str
    type: SignalType
    timestamp: float  # epoch ms
    session_ids: SignalSessionIds
    payload: dict[str, Any] = field(default_factory=dict)
    synced: bool = False
    sync_attempts: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return asdict(self)


# =============================================================================
# Factory
# =============================================================================


def alternatives_from_result(result: SelectionResult) -> list[Alternative]:
    """
    List every variant a traced selection evaluated.

    Variants that failed their guard have no score. Untraced or shortcut
    selections yield an empty list.
    """
    alternatives = []
    for variant_id, passed in result.why.guards.items():
        alternatives.append(
            Alternative(
                variant_id=variant_id,
                score=result.why.score.get(variant_id),
                guard_passed=passed,
            )
        )
    return alternatives


def describe_reason(result: SelectionResult) -> str:
    """Human-readable explanation of which path produced a selection."""
    why = result.why
    if why.overrides_used:
        return "Teacher/system override applied"
    if why.sticky_used:
        return "Previous choice retained (sticky)"
    if not why.score:
        return "Fallback variant"

    top_score = max(why.score.values())
    top_variant = next(v for v, s in why.score.items() if s == top_score)
    if top_variant == result.variant_id:
        return f"Highest score ({top_score:.2f}) - best match for learner context"
    return "Selected by adaptivity engine"


class SignalFactory:
    """Create typed signals stamped with ids and timestamps."""

    def __init__(self, clock: Optional[Callable[[], float]] = None):
        self._clock = clock or (lambda: time.time() * 1000)

    def _new_id(self) -> str:
        return f"sig_{int(self._clock())}_{uuid.uuid4().hex[:9]}"

    def _signal(
        self,
        signal_type: SignalType,
        session: SessionState,
        payload: dict[str, Any],
        page_id: Optional[str] = None,
    ) -> Signal:
        ids = session.ids
        return Signal(
            id=self._new_id(),
            type=signal_type,
            timestamp=self._clock(),
            session_ids=SignalSessionIds(
                user_id=ids.user_id,
                course_id=ids.course_id,
                lesson_id=ids.lesson_id,
                page_id=page_id or ids.page_id,
                attempt_id=ids.attempt_id,
            ),
            payload=payload,
        )

    def variant_selected(
        self,
        session: SessionState,
        result: SelectionResult,
        alternatives: Optional[list[Alternative]] = None,
    ) -> Signal:
        """Record a selection; alternatives default to those in the trace."""
        if alternatives is None:
            alternatives = alternatives_from_result(result)
        return self._signal(
            "variant_selected",
            session,
            {
                "slotId": result.slot_id,
                "variantId": result.variant_id,
                "reason": describe_reason(result),
                "selectionResult": result.to_dict(),
                "alternatives": [asdict(a) for a in alternatives],
            },
        )

    def answer_submitted(
        self,
        session: SessionState,
        slot_id: str,
        variant_id: str,
        question_id: str,
        correct: bool,
        time_taken_ms: float,
        attempts: int,
        answer: Any,
    ) -> Signal:
        return self._signal(
            "answer_submitted",
            session,
            {
                "slotId": slot_id,
                "variantId": variant_id,
                "questionId": question_id,
                "correct": correct,
                "timeTakenMs": time_taken_ms,
                "attempts": attempts,
                "answer": answer,
            },
        )

    def page_navigated(
        self,
        session: SessionState,
        from_page_id: str,
        to_page_id: str,
        direction: Literal["next", "prev", "jump"],
        time_on_page_ms: float,
    ) -> Signal:
        """Record navigation; the signal is attributed to the destination page."""
        return self._signal(
            "page_navigated",
            session,
            {
                "fromPageId": from_page_id,
                "toPageId": to_page_id,
                "direction": direction,
                "timeOnPageMs": time_on_page_ms,
            },
            page_id=to_page_id,
        )

    def generic(
        self, signal_type: SignalType, session: SessionState, payload: dict[str, Any]
    ) -> Signal:
        return self._signal(signal_type, session, payload)
