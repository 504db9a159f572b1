"""
Variant Selector.

Resolves one variant per (slot, session, policy) call. Steps run strictly
in order and the first one that decides short-circuits the rest:

1. Policy constraint  - policy.allows(slot, session) is False -> fallback/first
2. Override           - session.overrides.forceVariant[slot] -> forced variant
3. Sticky             - valid sticky record -> remembered variant, no write
4. Label pre-filter   - drop variants whose language/deviceFit/track conflict
5. Guard filter       - drop variants whose guard is False
6. Score and rank     - descending score, declaration order breaks ties
7. Resolve            - top-ranked, else fallback, else first declared
8. Commit             - write the sticky record for the chosen variant

`decide` computes the result and a sticky write intent without touching
the session; `commit` applies the intent. `select` does both. Callers must
not run two selections for the same session and slot concurrently.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

from loguru import logger

from adaptivity.config import Settings, get_settings
from adaptivity.exceptions import NoVariantsError, PolicyDenialWithoutFallback
from adaptivity.guard import GuardEvaluator, GuardFactory
from adaptivity.models import (
    GuardActivation,
    Policy,
    SelectionResult,
    SelectionWhy,
    SessionState,
    Slot,
    StickyReason,
    StickyRecord,
    StickyScope,
    StickyStrength,
    Variant,
)
from adaptivity.scoring import score_variant
from adaptivity.sticky import is_sticky_valid, now_ms, read_sticky, set_sticky


@dataclass(frozen=True)
class StickyWriteIntent:
    """A sticky record the commit step should write."""

    slot_id: str
    variant_id: str
    reason: StickyReason
    strength: StickyStrength
    scope: StickyScope


@dataclass(frozen=True)
class Decision:
    """Outcome of `decide`: the result plus the pending sticky write."""

    result: SelectionResult
    intent: Optional[StickyWriteIntent]


def label_eligible(variant: Variant, session: SessionState) -> bool:
    """Cheap metadata checks run before any guard is compiled."""
    meta = variant.meta
    if meta.language and meta.language != session.user.lang:
        return False
    if meta.device_fit is not None and session.env.device not in meta.device_fit:
        return False
    if meta.track and session.ids.track_id and meta.track != session.ids.track_id:
        return False
    return True


class VariantSelector:
    """
    Selection engine.

    Holds its own guard cache, settings and clock, so independent selectors
    share no state.
    """

    def __init__(
        self,
        guard_evaluator: Optional[GuardFactory] = None,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self._guards = guard_evaluator or GuardEvaluator()
        self._settings = settings or get_settings()
        self._clock = clock or now_ms

    def select(
        self,
        slot: Slot,
        session: SessionState,
        policy: Policy,
        trace: Optional[bool] = None,
        now: Optional[float] = None,
    ) -> SelectionResult:
        """
        Decide and commit one selection.

        Args:
            slot: Slot to resolve
            session: Learner session (its sticky map is updated)
            policy: Active policy
            trace: Record per-variant guards and scores in why
            now: Epoch ms for sticky validity and the written record

        Returns:
            SelectionResult with the chosen variant and its rationale

        Raises:
            NoVariantsError: If the slot has no variants
            PolicyDenialWithoutFallback: If the policy denies a slot with no fallback
        """
        if now is None:
            now = self._clock()
        decision = self.decide(slot, session, policy, trace=trace, now=now)
        if decision.intent is not None:
            self.commit(session, decision.intent, now=now)
        return decision.result

    def commit(
        self, session: SessionState, intent: StickyWriteIntent, now: Optional[float] = None
    ) -> StickyRecord:
        """Write the sticky record described by a decision."""
        return set_sticky(
            session,
            intent.slot_id,
            intent.variant_id,
            intent.reason,
            strength=intent.strength,
            scope=intent.scope,
            now=self._clock() if now is None else now,
        )

    def decide(
        self,
        slot: Slot,
        session: SessionState,
        policy: Policy,
        trace: Optional[bool] = None,
        now: Optional[float] = None,
    ) -> Decision:
        """Run the selection pipeline without mutating the session."""
        if trace is None:
            trace = self._settings.trace_by_default
        if now is None:
            now = self._clock()
        if not slot.variants:
            raise NoVariantsError(slot.id)

        why = SelectionWhy(policy_version=policy.version)

        # 1) Hard policy constraint
        if policy.allows is not None and not policy.allows(slot, session):
            fallback = slot.fallback_variant_id or slot.variants[0].id
            if not fallback:
                raise PolicyDenialWithoutFallback(slot.id)
            logger.debug(f"Slot {slot.id}: policy {policy.version} denied, using {fallback}")
            return self._decision(
                slot, fallback, why, reason="first_pick", strength="weak",
                scope=self._settings.sticky_default_scope,
            )

        # 2) Administrative override
        forced = self._forced_variant(slot, session, now)
        if forced:
            why.overrides_used = True
            logger.debug(f"Slot {slot.id}: override forces {forced}")
            return self._decision(
                slot, forced, why, reason="teacher_choice", strength="strong",
                scope=self._settings.sticky_default_scope,
            )

        # 3) Sticky retained
        record = read_sticky(session, slot.id)
        if record is not None and is_sticky_valid(record, now):
            why.sticky_used = True
            logger.debug(f"Slot {slot.id}: sticky keeps {record.variant_id}")
            return Decision(
                result=SelectionResult(slot_id=slot.id, variant_id=record.variant_id, why=why),
                intent=None,
            )

        # 4) Label pre-filter
        eligible = [v for v in slot.variants if label_eligible(v, session)]

        # 5) Guard filter
        guarded = []
        for variant in eligible:
            predicate = self._guards(variant.guard)
            passed = bool(predicate(GuardActivation(session, slot.id, variant)))
            if trace:
                why.guards[variant.id] = passed
            if passed:
                guarded.append(variant)

        # 6) Scoring and ranking (sorted() is stable: first declared wins ties)
        scored = []
        for variant in guarded:
            score = score_variant(variant, session)
            if trace:
                why.score[variant.id] = score
            scored.append((variant, score))
        ranked = sorted(scored, key=lambda pair: pair[1], reverse=True)

        # 7) Choice resolution
        if ranked:
            chosen = ranked[0][0]
        else:
            chosen = slot.get_variant(slot.fallback_variant_id) or slot.variants[0]
            logger.debug(f"Slot {slot.id}: no candidate survived, falling back to {chosen.id}")

        # 8) Commit intent uses the variant's own sticky settings
        sticky_config = chosen.sticky
        strength = (sticky_config and sticky_config.strength) or self._settings.sticky_default_strength
        scope = (sticky_config and sticky_config.scope) or self._settings.sticky_default_scope

        logger.debug(
            f"Slot {slot.id}: chose {chosen.id} from {len(slot.variants)} variants "
            f"({len(eligible)} label-eligible, {len(guarded)} guarded)"
        )
        return self._decision(slot, chosen.id, why, reason="first_pick", strength=strength, scope=scope)

    def _forced_variant(self, slot: Slot, session: SessionState, now: float) -> Optional[str]:
        overrides = session.overrides
        if overrides is None:
            return None
        forced = overrides.force_variant.get(slot.id)
        if not forced:
            return None
        if (
            self._settings.honor_override_expiry
            and overrides.expires_at is not None
            and overrides.expires_at < now
        ):
            logger.debug(f"Slot {slot.id}: override for {forced} expired, ignoring")
            return None
        return forced

    @staticmethod
    def _decision(
        slot: Slot,
        variant_id: str,
        why: SelectionWhy,
        reason: StickyReason,
        strength: StickyStrength,
        scope: StickyScope,
    ) -> Decision:
        return Decision(
            result=SelectionResult(slot_id=slot.id, variant_id=variant_id, why=why),
            intent=StickyWriteIntent(
                slot_id=slot.id,
                variant_id=variant_id,
                reason=reason,
                strength=strength,
                scope=scope,
            ),
        )


def select_variant(
    slot: Slot,
    session: SessionState,
    policy: Policy,
    guard_factory: Optional[GuardFactory] = None,
    trace: bool = False,
    now: Optional[float] = None,
) -> SelectionResult:
    """Select and commit with a one-off selector."""
    return VariantSelector(guard_evaluator=guard_factory).select(
        slot, session, policy, trace=trace, now=now
    )
