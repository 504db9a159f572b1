"""
Session construction and metric updates.

All update helpers mutate the passed session in place, are synchronous,
and never raise for in-range numeric input.

EWMA update (alpha is the weight kept by the previous value):

    ewma <- alpha * ewma + (1 - alpha) * observation

With alpha=0.8, n consecutive correct answers from accuracy a0 give
1 - 0.8**n * (1 - a0); alpha=1.0 freezes the metric.
"""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from adaptivity.config import get_settings
from adaptivity.models import (
    Preference,
    PreferenceSource,
    SessionState,
    SkillStats,
    TraceEvent,
)


@dataclass(frozen=True)
class LatencyClip:
    """Bounds applied to an observed latency before blending."""

    min: float = 300
    max: float = 8000


def _now_ms() -> float:
    return time.time() * 1000


def create_session(init: Optional[Mapping[str, Any]] = None) -> SessionState:
    """
    Build a session snapshot with documented defaults.

    Caller-supplied partial values (camelCase or snake_case keys) are
    deep-merged over the defaults: `{"metrics": {"accEWMA": 0.4}}` keeps
    every other metric at its default.

    Args:
        init: Partial session mapping, or None for a blank session

    Returns:
        A fully populated SessionState
    """
    settings = get_settings()
    data: dict[str, Any] = dict(init or {})

    user = dict(data.get("user") or {})
    user.setdefault("lang", settings.default_lang)
    data["user"] = user

    env = dict(data.get("env") or {})
    env.setdefault("device", settings.default_device)
    data["env"] = env

    if data.get("policy") is None:
        data["policy"] = {"version": settings.default_policy_version}

    return SessionState.model_validate(data)


def update_accuracy_ewma(
    session: SessionState, correct: bool, alpha: Optional[float] = None
) -> None:
    """Blend one answer outcome into accuracy; bump streak and attempts."""
    if alpha is None:
        alpha = get_settings().ewma_alpha
    metrics = session.metrics
    x = 1.0 if correct else 0.0
    metrics.acc_ewma = alpha * metrics.acc_ewma + (1 - alpha) * x
    metrics.streak = metrics.streak + 1 if correct else 0
    metrics.attempts += 1


def update_latency_ewma(
    session: SessionState,
    observed_ms: float,
    alpha: Optional[float] = None,
    clip: Optional[LatencyClip] = None,
) -> None:
    """Clip an observed response latency, then blend it into latencyEWMA."""
    settings = get_settings()
    if alpha is None:
        alpha = settings.ewma_alpha
    if clip is None:
        clip = LatencyClip(settings.latency_clip_min_ms, settings.latency_clip_max_ms)
    x = max(clip.min, min(clip.max, observed_ms))
    session.metrics.latency_ewma = alpha * session.metrics.latency_ewma + (1 - alpha) * x


def bump_idle(session: SessionState, delta_sec: float) -> None:
    """Add to the idle counter, flooring at zero."""
    session.metrics.idle_sec = max(0, session.metrics.idle_sec + delta_sec)


def set_preference_theme(
    session: SessionState, theme: str, source: PreferenceSource = "student"
) -> None:
    """Upsert the theme preference; other preference slots are untouched."""
    session.user.preferences.theme = Preference(value=theme, source=source)


def update_skill_accuracy(
    session: SessionState,
    skill_id: str,
    correct: bool,
    alpha: Optional[float] = None,
    now: Optional[float] = None,
) -> SkillStats:
    """
    Blend one answer outcome into the per-skill stats.

    The selection pipeline does not read per-skill stats; this is the
    write surface for callers that track them.

    Returns:
        The updated SkillStats for the skill
    """
    if alpha is None:
        alpha = get_settings().ewma_alpha
    stats = session.per_skill.get(skill_id)
    if stats is None:
        stats = SkillStats()
        session.per_skill[skill_id] = stats
    x = 1.0 if correct else 0.0
    stats.acc_ewma = alpha * stats.acc_ewma + (1 - alpha) * x
    stats.attempts += 1
    stats.last_ts = _now_ms() if now is None else now
    return stats


def record_seen_variant(session: SessionState, slot_id: str, variant_id: str) -> None:
    """Append a shown variant to the slot history, skipping an immediate repeat."""
    history = session.seen_variants.setdefault(slot_id, [])
    if not history or history[-1] != variant_id:
        history.append(variant_id)


def record_trace_event(
    session: SessionState,
    event_type: str,
    data: Optional[dict[str, Any]] = None,
    now: Optional[float] = None,
) -> TraceEvent:
    """Append an audit event to the session trace."""
    event = TraceEvent(type=event_type, ts=_now_ms() if now is None else now, data=data)
    session.trace.append(event)
    return event
