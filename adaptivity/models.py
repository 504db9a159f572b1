"""
Data models for the adaptivity engine.

Every model is plain, serializable data. Python attributes are snake_case,
the wire (JSON) names are camelCase, and both are accepted on input:

    SessionState.model_validate({"metrics": {"accEWMA": 0.4}})
    session.metrics.acc_ewma  # 0.4
    session.model_dump(by_alias=True)["metrics"]["accEWMA"]  # 0.4

The only non-data members are caller-supplied callables: a precompiled
`Variant.guard` and `Policy.allows`. Neither is ever serialized.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Literal, Optional, Union

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_serializer, field_validator
from pydantic.alias_generators import to_camel


Language = Literal["he", "en"]
Device = Literal["mobile", "desktop", "tablet"]
NetType = Literal["slow-2g", "2g", "3g", "4g", "wifi"]
Difficulty = Literal["easy", "std", "hard"]
Modality = Literal["video", "quiz", "reading", "interactive", "simulation", "discussion"]
CognitiveLoad = Literal["low", "med", "high"]
PreferenceSource = Literal["student", "system"]
StickyScope = Literal["session", "lesson", "course"]
StickyStrength = Literal["weak", "strong"]
StickyReason = Literal[
    "first_pick",
    "teacher_choice",
    "student_preference",
    "copilot",
    "ab_bucket",
    "remediation_path",
]
OverrideSource = Literal["teacher", "policy", "copilot", "student"]

SlotId = str
VariantId = str
SkillId = str


class WireModel(BaseModel):
    """Base model: snake_case attributes, camelCase wire names."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_dict(self) -> dict[str, Any]:
        """Convert to the camelCase dictionary used on the wire."""
        return self.model_dump(by_alias=True, exclude_none=True)


# ========================================
# Session State
# ========================================


class SessionIds(WireModel):
    """Identity keys for one learner-lesson-page context."""

    user_id: str = ""
    course_id: str = ""
    track_id: Optional[str] = None
    lesson_id: str = ""
    page_id: str = ""
    attempt_id: Optional[str] = None
    enrollment_id: Optional[str] = None


class Accessibility(WireModel):
    captions: bool = True
    transcript: bool = False
    dyslexic_font: Optional[bool] = None
    font_scale: Optional[float] = None
    high_contrast: Optional[bool] = None


class Preference(WireModel):
    """
    One preference slot.

    `source` is the provenance tag: "student" when the learner set it,
    "system" when it was inferred.
    """

    value: str
    source: PreferenceSource = "student"
    confidence: Optional[float] = None


class UserPreferences(WireModel):
    theme: Optional[Preference] = None
    tone: Optional[Preference] = None
    modality_bias: Optional[Preference] = None


class UserContext(WireModel):
    name: Optional[str] = None
    given_name: Optional[str] = None
    family_name: Optional[str] = None
    gender: Optional[Literal["male", "female", "other"]] = None
    lang: Language = "he"
    a11y: Accessibility = Field(default_factory=Accessibility)
    preferences: UserPreferences = Field(default_factory=UserPreferences)


class Environment(WireModel):
    device: Device = "desktop"
    online: bool = True
    net_type: Optional[NetType] = None
    timezone: Optional[str] = None


class Affect(WireModel):
    frustration: Optional[float] = None
    confidence: Optional[float] = None
    engagement: Optional[float] = None


class Metrics(WireModel):
    """Rolling performance metrics. Initial accuracy is optimistic (1.0)."""

    acc_ewma: float = Field(default=1.0, alias="accEWMA")
    latency_ewma: float = Field(default=1000.0, alias="latencyEWMA")
    idle_sec: float = 0
    streak: int = 0
    fatigue: float = 0.0
    affect: Optional[Affect] = None
    attempts: int = 0


class SkillStats(WireModel):
    acc_ewma: float = Field(default=1.0, alias="accEWMA")
    attempts: int = 0
    last_ts: float = 0
    difficulty_gap: Optional[float] = None


class StickyRecord(WireModel):
    """A remembered choice for one slot."""

    variant_id: VariantId
    at: float  # epoch ms
    scope: StickyScope = "lesson"
    ttl_ms: Optional[float] = None
    strength: StickyStrength = "weak"
    reason: Optional[StickyReason] = None


class SoftOverrides(WireModel):
    preferred_theme: Optional[str] = None
    preferred_tone: Optional[Literal["funny", "serious"]] = None


class Overrides(WireModel):
    """Authoritative constraints. Applied before sticky."""

    force_variant: dict[SlotId, VariantId] = Field(default_factory=dict)
    force_difficulty: Optional[Difficulty] = None
    force_theme: Optional[str] = None
    disable_hints: Optional[bool] = None
    soft: Optional[SoftOverrides] = None
    source: Optional[OverrideSource] = None
    expires_at: Optional[float] = None  # epoch ms


class PolicyCaps(WireModel):
    hint_per_session: Optional[int] = None


class PolicyInfo(WireModel):
    """Last-known policy version/capability hash, kept for auditability."""

    version: str = "dev"
    caps: Optional[PolicyCaps] = None
    hash: Optional[str] = None


class TraceEvent(WireModel):
    type: str
    ts: float
    data: Optional[dict[str, Any]] = None


class SessionState(WireModel):
    """
    Mutable record of one learner's context.

    Owned by the caller and passed by reference into engine calls. Use
    `adaptivity.session.create_session` to build one with defaults.
    """

    ids: SessionIds = Field(default_factory=SessionIds)
    user: UserContext = Field(default_factory=UserContext)
    env: Environment = Field(default_factory=Environment)
    metrics: Metrics = Field(default_factory=Metrics)
    per_skill: dict[SkillId, SkillStats] = Field(default_factory=dict)
    sticky: dict[SlotId, Optional[StickyRecord]] = Field(default_factory=dict)
    overrides: Optional[Overrides] = None
    seen_variants: dict[SlotId, list[VariantId]] = Field(default_factory=dict)
    policy: PolicyInfo = Field(default_factory=PolicyInfo)
    trace: list[TraceEvent] = Field(default_factory=list)

    @field_validator("sticky", mode="before")
    @classmethod
    def _tolerate_corrupt_sticky(cls, value: Any) -> Any:
        """Keep unreadable sticky entries as None so they read as invalid."""
        if not isinstance(value, dict):
            return {}
        cleaned: dict[str, Any] = {}
        for slot_id, record in value.items():
            if record is None or isinstance(record, StickyRecord):
                cleaned[slot_id] = record
                continue
            try:
                cleaned[slot_id] = StickyRecord.model_validate(record)
            except ValidationError:
                logger.debug(f"Dropping unreadable sticky record for slot {slot_id}")
                cleaned[slot_id] = None
        return cleaned


# ========================================
# Slots, Variants and Policy
# ========================================


class VariantAccessibility(WireModel):
    captions: Optional[bool] = None
    transcript: Optional[bool] = None
    dyslexic_font: Optional[bool] = None


class VariantMeta(WireModel):
    """Variant metadata for quick filtering and scoring."""

    difficulty: Optional[Difficulty] = None
    modality: Optional[Modality] = None
    language: Optional[Language] = None
    duration_sec: Optional[float] = None
    theme: Optional[str] = None
    cognitive_load: Optional[CognitiveLoad] = None
    device_fit: Optional[list[Device]] = None
    accessibility: Optional[VariantAccessibility] = None
    skills: Optional[list[str]] = None
    knowledge_tag: Optional[str] = None
    prerequisites: Optional[list[str]] = None
    track: Optional[str] = None


class ScoreWeights(WireModel):
    prefer_low_acc: Optional[float] = None
    prefer_theme_match: Optional[float] = None
    prefer_modality: Optional[dict[str, float]] = None


class StickyConfig(WireModel):
    scope: Optional[StickyScope] = None
    strength: Optional[StickyStrength] = None


@dataclass(frozen=True)
class GuardActivation:
    """The three values a guard can see."""

    session: SessionState
    slot_id: SlotId
    variant: "Variant"


GuardFn = Callable[[GuardActivation], bool]


class Variant(WireModel):
    """
    One candidate piece of content for a slot.

    `guard` is either guard-expression text or a precompiled predicate
    taking a GuardActivation.
    """

    id: VariantId
    meta: VariantMeta = Field(default_factory=VariantMeta)
    guard: Optional[Union[str, Callable[..., Any]]] = None
    score_weights: Optional[ScoreWeights] = None
    sticky: Optional[StickyConfig] = None

    @field_serializer("guard")
    def _serialize_guard(self, guard: Any) -> Optional[str]:
        return guard if isinstance(guard, str) else None


class Slot(WireModel):
    """A named placeholder that resolves to exactly one variant per view."""

    id: SlotId
    variants: list[Variant] = Field(default_factory=list)
    fallback_variant_id: Optional[VariantId] = None

    def get_variant(self, variant_id: Optional[str]) -> Optional[Variant]:
        """Return the first variant with this id, if any."""
        if variant_id is None:
            return None
        for variant in self.variants:
            if variant.id == variant_id:
                return variant
        return None


class Policy(WireModel):
    """
    Versioned selection constraints published by the platform operator.

    `allows(slot, session)` is a hard constraint evaluated before anything
    else in the selection pipeline.
    """

    version: str = "dev"
    caps: Optional[PolicyCaps] = None
    hash: Optional[str] = None
    allows: Optional[Callable[..., Any]] = Field(default=None, exclude=True)


# ========================================
# Selection Results
# ========================================


class SelectionWhy(WireModel):
    """
    Machine-readable rationale of one decision.

    `guards` and `score` only hold variants that were actually evaluated
    with tracing on; shortcut paths leave them empty.
    """

    policy_version: str
    guards: dict[VariantId, bool] = Field(default_factory=dict)
    score: dict[VariantId, float] = Field(default_factory=dict)
    sticky_used: Optional[bool] = None
    overrides_used: Optional[bool] = None


class SelectionResult(WireModel):
    slot_id: SlotId
    variant_id: VariantId
    why: SelectionWhy


