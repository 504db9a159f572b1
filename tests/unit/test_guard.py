"""
Unit tests for the guard evaluator.

Tests:
- Empty/None guards always pass, callables pass through
- Compiled guard caching by source text
- Comparison and logical operators over session, slotId and variant
- Fail-closed behaviour for malformed and failing guards
- Guard templates and authoring-time validation
"""

import pytest

from adaptivity.guard import (
    GUARD_TEMPLATES,
    GuardEvaluator,
    preferred_modality_guard,
    preferred_theme_guard,
    validate_guard_expression,
)
from adaptivity.models import GuardActivation, Preference, Variant, VariantMeta
from adaptivity.session import create_session


@pytest.fixture
def guard_session():
    return create_session({
        "ids": {"userId": "u1", "courseId": "c1", "lessonId": "L1", "pageId": "P1"},
        "metrics": {
            "accEWMA": 0.75,
            "latencyEWMA": 2000,
            "idleSec": 0,
            "streak": 3,
            "fatigue": 0.2,
            "attempts": 5,
        },
    })


@pytest.fixture
def activation(guard_session):
    variant = Variant(id="test_variant", meta=VariantMeta(difficulty="std"))
    return GuardActivation(session=guard_session, slot_id="test_slot", variant=variant)


@pytest.fixture
def evaluator():
    return GuardEvaluator()


class TestCompile:
    """Tests for guard compilation and caching."""

    @pytest.mark.parametrize("guard", [None, "", "   "])
    def test_missing_guard_always_passes(self, evaluator, activation, guard):
        assert evaluator(guard)(activation) is True

    def test_callable_passes_through_uncached(self, evaluator, activation):
        def guard_fn(a):
            return a.variant.id == "test_variant"

        compiled = evaluator(guard_fn)

        assert compiled is guard_fn
        assert compiled(activation) is True
        assert evaluator.cache_size == 0

    def test_same_text_returns_same_predicate(self, evaluator):
        guard = "session.metrics.accEWMA > 0.5"

        assert evaluator(guard) is evaluator(guard)
        assert evaluator.cache_size == 1

    def test_different_text_different_predicate(self, evaluator):
        assert evaluator("true") is not evaluator("true ")

    def test_evaluators_do_not_share_cache(self):
        assert GuardEvaluator()("true") is not GuardEvaluator()("true")

    def test_clear(self, evaluator):
        evaluator("true")
        evaluator.clear()

        assert evaluator.cache_size == 0

    def test_literals(self, evaluator, activation):
        assert evaluator("true")(activation) is True
        assert evaluator("false")(activation) is False


class TestExpressions:
    """Tests for guard expressions over the activation."""

    def test_accuracy_guard_tracks_session(self, evaluator, activation, guard_session):
        low_acc = evaluator("session.metrics.accEWMA < 0.7")

        assert low_acc(activation) is False  # Session has 0.75
        guard_session.metrics.acc_ewma = 0.5
        assert low_acc(activation) is True

    def test_streak_guard(self, evaluator, activation, guard_session):
        on_streak = evaluator("session.metrics.streak >= 3")

        assert on_streak(activation) is True
        guard_session.metrics.streak = 2
        assert on_streak(activation) is False

    def test_device_guard(self, evaluator, activation, guard_session):
        mobile = evaluator('session.env.device === "mobile"')

        assert mobile(activation) is False  # Default is desktop
        guard_session.env.device = "mobile"
        assert mobile(activation) is True

    def test_language_guard(self, evaluator, activation, guard_session):
        hebrew = evaluator('session.user.lang == "he"')

        assert hebrew(activation) is True
        guard_session.user.lang = "en"
        assert hebrew(activation) is False

    def test_and(self, evaluator, activation, guard_session):
        guard = evaluator("session.metrics.accEWMA > 0.7 && session.metrics.streak >= 3")

        assert guard(activation) is True
        guard_session.metrics.streak = 1
        assert guard(activation) is False

    def test_or(self, evaluator, activation, guard_session):
        guard = evaluator("session.metrics.accEWMA < 0.5 || session.metrics.attempts > 10")

        assert guard(activation) is False
        guard_session.metrics.attempts = 15
        assert guard(activation) is True

    def test_not(self, evaluator, activation):
        assert evaluator("!(session.metrics.streak >= 3)")(activation) is False

    def test_variant_properties(self, evaluator, activation):
        assert evaluator("variant.meta.difficulty === 'std'")(activation) is True
        assert evaluator("variant.id == 'test_variant'")(activation) is True

    def test_slot_id(self, evaluator, activation):
        assert evaluator('slotId === "test_slot"')(activation) is True

    def test_nested_preference(self, evaluator, activation, guard_session):
        guard_session.user.preferences.theme = Preference(value="soccer", source="student")

        assert evaluator("session.user.preferences.theme.value === 'soccer'")(activation) is True

    def test_all_comparison_operators(self, evaluator, activation):
        assert evaluator("session.metrics.accEWMA > 0.5")(activation) is True
        assert evaluator("session.metrics.accEWMA < 1.0")(activation) is True
        assert evaluator("session.metrics.accEWMA >= 0.75")(activation) is True
        assert evaluator("session.metrics.accEWMA <= 0.75")(activation) is True
        assert evaluator("session.metrics.attempts === 5")(activation) is True
        assert evaluator("session.metrics.attempts == 5")(activation) is True
        assert evaluator("session.metrics.attempts !== 10")(activation) is True
        assert evaluator("session.metrics.attempts != 10")(activation) is True

    def test_null_comparison(self, evaluator, activation):
        assert evaluator("session.overrides == null")(activation) is True

    def test_bare_path_truthiness(self, evaluator, activation, guard_session):
        online = evaluator("session.env.online")

        assert online(activation) is True
        guard_session.env.online = False
        assert online(activation) is False

    def test_deterministic(self, evaluator, activation):
        guard = evaluator("session.metrics.accEWMA > 0.7 && slotId == 'test_slot'")

        assert [guard(activation) for _ in range(3)] == [True, True, True]


class TestFailClosed:
    """Guards that cannot be parsed or evaluated hide their variant."""

    def test_malformed_expression(self, evaluator, activation):
        bad = evaluator("this is not valid javascript!")

        assert bad(activation) is False

    def test_malformed_expression_is_cached(self, evaluator):
        assert evaluator("((") is evaluator("((")

    def test_undefined_property(self, evaluator, activation):
        guard = evaluator('session.nonExistent.property === "value"')

        assert guard(activation) is False

    def test_property_of_unset_preference(self, evaluator, activation):
        assert evaluator(preferred_theme_guard("soccer"))(activation) is False

    def test_incomparable_values(self, evaluator, activation):
        assert evaluator("session.user.lang > 3")(activation) is False

    def test_unknown_identifier(self, evaluator, activation):
        assert evaluator("ctx.metrics.accEWMA < 2")(activation) is False

    def test_deep_nesting(self, evaluator, activation):
        guard = "(" * 5000 + "true" + ")" * 5000

        assert evaluator(guard)(activation) is False


class TestTemplates:
    def test_performance_templates(self):
        assert GUARD_TEMPLATES["low_accuracy"] == "session.metrics.accEWMA < 0.7"
        assert GUARD_TEMPLATES["high_accuracy"] == "session.metrics.accEWMA >= 0.8"
        assert GUARD_TEMPLATES["struggling"] == (
            "session.metrics.attempts > 2 && session.metrics.streak == 0"
        )
        assert GUARD_TEMPLATES["on_streak"] == "session.metrics.streak >= 3"

    def test_every_template_parses(self):
        for name, expression in GUARD_TEMPLATES.items():
            assert validate_guard_expression(expression).valid, name

    def test_preference_builders(self):
        assert preferred_theme_guard("soccer") == (
            "session.user.preferences.theme.value == 'soccer'"
        )
        assert preferred_modality_guard("video") == (
            "session.user.preferences.modalityBias.value == 'video'"
        )

    def test_builder_quotes_value(self, evaluator, activation, guard_session):
        guard_session.user.preferences.theme = Preference(value="it's", source="student")

        assert evaluator(preferred_theme_guard("it's"))(activation) is True

    def test_struggling_mobile_user(self, evaluator, activation, guard_session):
        guard_session.metrics.acc_ewma = 0.55
        guard_session.env.device = "mobile"

        assert evaluator(GUARD_TEMPLATES["struggling_mobile_user"])(activation) is True

    def test_advanced_desktop_user(self, evaluator, activation, guard_session):
        guard_session.metrics.acc_ewma = 0.95
        guard_session.metrics.streak = 7

        assert evaluator(GUARD_TEMPLATES["advanced_desktop_user"])(activation) is True

    def test_accessibility_templates(self, evaluator, activation):
        assert evaluator(GUARD_TEMPLATES["needs_captions"])(activation) is True
        assert evaluator(GUARD_TEMPLATES["needs_transcript"])(activation) is False

    def test_combined_conditions(self, evaluator, activation, guard_session):
        guard_session.metrics.acc_ewma = 0.6
        guard_session.metrics.attempts = 8
        guard_session.metrics.streak = 0
        guard_session.env.device = "mobile"

        guard = evaluator(
            "(session.metrics.accEWMA < 0.7 || session.metrics.attempts > 5) "
            "&& session.metrics.streak === 0 && session.env.device === 'mobile'"
        )

        assert guard(activation) is True


class TestValidation:
    def test_valid_expression(self):
        result = validate_guard_expression("session.metrics.accEWMA < 0.7")

        assert result.valid is True
        assert result.error is None

    def test_invalid_expression(self):
        result = validate_guard_expression("this is not valid!!!")

        assert result.valid is False
        assert result.error

    def test_empty_is_valid(self):
        assert validate_guard_expression("").valid is True

    def test_deep_nesting_reported(self):
        result = validate_guard_expression("(" * 5000 + "true" + ")" * 5000)

        assert result.valid is False
