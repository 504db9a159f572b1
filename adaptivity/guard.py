"""
Guard Evaluator.

Compiles variant guards into predicates over a GuardActivation:

- No guard (None or "")  -> predicate that always returns True
- Callable guard         -> returned unchanged, not cached
- Guard text             -> parsed once and cached by exact source text

Guards fail closed. Text that does not parse, or an expression that fails
while evaluating (missing property, incomparable values), makes the
predicate return False. A broken guard hides its variant instead of
aborting the decision.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional, Union

from loguru import logger

from adaptivity.exceptions import GuardEvaluationError, GuardSyntaxError
from adaptivity.guard_parser import Node, parse_guard, truthy
from adaptivity.models import GuardActivation, GuardFn


GuardSource = Optional[Union[str, GuardFn]]


def _always_true(activation: GuardActivation) -> bool:
    return True


class GuardEvaluator:
    """
    Compile and cache guard predicates.

    Each evaluator owns its cache; share one instance across selections to
    reuse compiled guards.
    """

    def __init__(self):
        self._cache: dict[str, GuardFn] = {}

    def __call__(self, guard: GuardSource) -> GuardFn:
        return self.compile(guard)

    def compile(self, guard: GuardSource) -> GuardFn:
        """
        Turn a guard into a predicate.

        Args:
            guard: Guard text, a precompiled predicate, or None

        Returns:
            Predicate taking a GuardActivation and returning bool
        """
        if guard is None or (isinstance(guard, str) and not guard.strip()):
            return _always_true
        if callable(guard):
            return guard

        cached = self._cache.get(guard)
        if cached is not None:
            return cached

        try:
            predicate = _make_predicate(guard, parse_guard(guard))
        except (GuardSyntaxError, RecursionError) as e:
            logger.warning(f"Guard does not parse, variant will be hidden: {guard!r} ({e})")
            predicate = _make_rejecting_predicate(guard)

        self._cache[guard] = predicate
        return predicate

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    def clear(self) -> None:
        self._cache.clear()


def _make_predicate(source: str, tree: Node) -> GuardFn:
    def predicate(activation: GuardActivation) -> bool:
        scope = {
            "session": activation.session,
            "slotId": activation.slot_id,
            "variant": activation.variant,
        }
        try:
            return truthy(tree.evaluate(scope))
        except (GuardEvaluationError, RecursionError) as e:
            logger.debug(f"Guard {source!r} failed on variant {activation.variant.id}: {e}")
            return False

    predicate.source = source  # type: ignore[attr-defined]
    return predicate


def _make_rejecting_predicate(source: str) -> GuardFn:
    def predicate(activation: GuardActivation) -> bool:
        return False

    predicate.source = source  # type: ignore[attr-defined]
    return predicate


# ========================================
# Authoring Helpers
# ========================================


@dataclass
class GuardValidation:
    """Outcome of validating guard text without evaluating it."""

    valid: bool
    error: Optional[str] = None


def validate_guard_expression(expression: str) -> GuardValidation:
    """
    Check that guard text parses.

    Empty text is valid (it means "no guard"). This is an authoring aid;
    the selection pipeline never calls it.
    """
    if not expression or not expression.strip():
        return GuardValidation(valid=True)
    try:
        parse_guard(expression)
    except GuardSyntaxError as e:
        return GuardValidation(valid=False, error=str(e))
    except RecursionError:
        return GuardValidation(valid=False, error="Expression is nested too deeply")
    return GuardValidation(valid=True)


GUARD_TEMPLATES: dict[str, str] = {
    # Performance-based
    "low_accuracy": "session.metrics.accEWMA < 0.7",
    "high_accuracy": "session.metrics.accEWMA >= 0.8",
    "struggling": "session.metrics.attempts > 2 && session.metrics.streak == 0",
    "on_streak": "session.metrics.streak >= 3",
    # Device-based
    "mobile_only": "session.env.device == 'mobile'",
    "desktop_only": "session.env.device == 'desktop'",
    # Language-based
    "hebrew": "session.user.lang == 'he'",
    "english": "session.user.lang == 'en'",
    # Accessibility
    "needs_captions": "session.user.a11y.captions == true",
    "needs_transcript": "session.user.a11y.transcript == true",
    # Combinations
    "struggling_mobile_user": "session.metrics.accEWMA < 0.6 && session.env.device == 'mobile'",
    "advanced_desktop_user": (
        "session.metrics.accEWMA > 0.9 && session.env.device == 'desktop' "
        "&& session.metrics.streak >= 5"
    ),
}


def _quote(value: str) -> str:
    return "'" + value.replace("\\", "\\\\").replace("'", "\\'") + "'"


def preferred_theme_guard(theme: str) -> str:
    """Guard text matching a learner's preferred theme."""
    return f"session.user.preferences.theme.value == {_quote(theme)}"


def preferred_modality_guard(modality: str) -> str:
    """Guard text matching a learner's inferred modality bias."""
    return f"session.user.preferences.modalityBias.value == {_quote(modality)}"


GuardFactory = Callable[[GuardSource], GuardFn]
