"""
Adaptivity Engine.

Chooses which content variant a learner sees for a lesson slot, with a
machine-readable rationale for every decision.

Components:
- Session: Learner session model and EWMA metric updates
- GuardEvaluator: Compiles and caches eligibility guard expressions
- score_variant: Fixed weighted preference score for a variant
- Sticky: Remembered per-slot choices with scope and TTL
- VariantSelector: Ordered decision pipeline (policy, override, sticky, guards, score)
- SignalFactory: Typed learning-event records for analytics
"""
from adaptivity.exceptions import (
    AdaptivityError,
    GuardEvaluationError,
    GuardSyntaxError,
    NoVariantsError,
    PolicyDenialWithoutFallback,
)
from adaptivity.guard import (
    GUARD_TEMPLATES,
    GuardEvaluator,
    GuardValidation,
    preferred_modality_guard,
    preferred_theme_guard,
    validate_guard_expression,
)
from adaptivity.models import (
    GuardActivation,
    Overrides,
    Policy,
    SelectionResult,
    SelectionWhy,
    SessionState,
    Slot,
    StickyRecord,
    Variant,
    VariantMeta,
)
from adaptivity.scoring import score_variant
from adaptivity.selector import Decision, StickyWriteIntent, VariantSelector, select_variant
from adaptivity.session import (
    LatencyClip,
    bump_idle,
    create_session,
    record_seen_variant,
    record_trace_event,
    set_preference_theme,
    update_accuracy_ewma,
    update_latency_ewma,
    update_skill_accuracy,
)
from adaptivity.signals import Signal, SignalFactory
from adaptivity.sticky import clear_sticky_scope, is_sticky_valid, set_sticky

__all__ = [
    # Main engine
    "VariantSelector",
    "select_variant",
    "Decision",
    "StickyWriteIntent",
    # Components
    "GuardEvaluator",
    "GuardValidation",
    "validate_guard_expression",
    "preferred_theme_guard",
    "preferred_modality_guard",
    "GUARD_TEMPLATES",
    "score_variant",
    "is_sticky_valid",
    "set_sticky",
    "clear_sticky_scope",
    "SignalFactory",
    "Signal",
    # Session operations
    "create_session",
    "update_accuracy_ewma",
    "update_latency_ewma",
    "bump_idle",
    "set_preference_theme",
    "update_skill_accuracy",
    "record_seen_variant",
    "record_trace_event",
    "LatencyClip",
    # Data models
    "SessionState",
    "Slot",
    "Variant",
    "VariantMeta",
    "Policy",
    "Overrides",
    "StickyRecord",
    "GuardActivation",
    "SelectionResult",
    "SelectionWhy",
    # Errors
    "AdaptivityError",
    "NoVariantsError",
    "PolicyDenialWithoutFallback",
    "GuardEvaluationError",
    "GuardSyntaxError",
]
