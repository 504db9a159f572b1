"""
Sticky decision store.

A sticky record remembers the variant chosen for a slot so repeated views
show the same content. Records expire lazily: validity is checked when a
decision reads the record, and nothing sweeps them in the background.

Strength ("weak"/"strong") and reason are audit metadata; validity only
depends on presence and TTL.
"""
from __future__ import annotations

import time
from typing import Any, Optional

from loguru import logger
from pydantic import ValidationError

from adaptivity.models import (
    SessionState,
    StickyReason,
    StickyRecord,
    StickyScope,
    StickyStrength,
)


def now_ms() -> float:
    """Current wall-clock time in epoch milliseconds."""
    return time.time() * 1000


def is_sticky_valid(record: Any, now: Optional[float] = None) -> bool:
    """
    Check whether a sticky record may still be honored.

    Args:
        record: StickyRecord, a raw mapping, or None
        now: Epoch ms to check against (defaults to the current time)

    Returns:
        False if there is no readable record or its TTL has passed
    """
    if record is None:
        return False
    if not isinstance(record, StickyRecord):
        try:
            record = StickyRecord.model_validate(record)
        except ValidationError:
            return False
    if now is None:
        now = now_ms()
    if record.ttl_ms and record.at + record.ttl_ms < now:
        return False
    return True


def read_sticky(session: SessionState, slot_id: str) -> Optional[StickyRecord]:
    """Return the slot's sticky record, or None if absent or unreadable."""
    record = session.sticky.get(slot_id)
    if record is None or isinstance(record, StickyRecord):
        return record
    try:
        return StickyRecord.model_validate(record)
    except ValidationError:
        logger.debug(f"Ignoring unreadable sticky record for slot {slot_id}")
        return None


def set_sticky(
    session: SessionState,
    slot_id: str,
    variant_id: str,
    reason: Optional[StickyReason],
    strength: StickyStrength = "weak",
    scope: StickyScope = "lesson",
    ttl_ms: Optional[float] = None,
    now: Optional[float] = None,
) -> StickyRecord:
    """Overwrite the slot's sticky record."""
    record = StickyRecord(
        variant_id=variant_id,
        at=now_ms() if now is None else now,
        scope=scope,
        ttl_ms=ttl_ms,
        strength=strength,
        reason=reason,
    )
    session.sticky[slot_id] = record
    return record


def clear_sticky_scope(session: SessionState, scope: StickyScope) -> list[str]:
    """
    Drop every sticky record of one scope.

    The engine never ends a scope on its own; callers invoke this when a
    lesson, course or session boundary is crossed.

    Returns:
        Slot ids whose records were removed
    """
    cleared = [
        slot_id
        for slot_id, record in session.sticky.items()
        if isinstance(record, StickyRecord) and record.scope == scope
    ]
    for slot_id in cleared:
        del session.sticky[slot_id]
    if cleared:
        logger.debug(f"Cleared {len(cleared)} {scope}-scoped sticky records")
    return cleared
