"""
Variant scoring.

score = preferLowAcc * (1 - accEWMA)
      + preferThemeMatch * [variant theme == preferred theme]
      + preferModality[variant modality, default "reading"]
      + device term (+0.05 if the device fits or no fit is declared, -1 otherwise)

No normalization, clamping or randomness: identical inputs give
bit-identical scores. The device penalty can push a total below zero.
"""
from __future__ import annotations

from adaptivity.models import ScoreWeights, SessionState, Variant


DEFAULT_MODALITY = "reading"
DEVICE_FIT_BONUS = 0.05
DEVICE_MISFIT_PENALTY = -1.0


def score_variant(variant: Variant, session: SessionState) -> float:
    """Compute a variant's preference score for this session."""
    weights = variant.score_weights or ScoreWeights()
    meta = variant.meta

    acc = session.metrics.acc_ewma
    prefer_low_acc = (weights.prefer_low_acc or 0.0) * (1 - acc)

    theme_pref = session.user.preferences.theme
    preferred_theme = theme_pref.value if theme_pref is not None else None
    theme_match = 1 if preferred_theme and meta.theme == preferred_theme else 0
    prefer_theme = (weights.prefer_theme_match or 0.0) * theme_match

    modality = meta.modality or DEFAULT_MODALITY
    prefer_modality = (weights.prefer_modality or {}).get(modality) or 0.0

    device_bonus = device_term(variant, session)

    return prefer_low_acc + prefer_theme + prefer_modality + device_bonus


def device_term(variant: Variant, session: SessionState) -> float:
    """Small bonus for a fitting device, strong penalty for a misfit."""
    device_fit = variant.meta.device_fit
    if device_fit is None:
        return DEVICE_FIT_BONUS
    return DEVICE_FIT_BONUS if session.env.device in device_fit else DEVICE_MISFIT_PENALTY
