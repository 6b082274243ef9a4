"""
Requirements merging.

Pure functions over the `Requirements` value type. The session store and the
orchestrator only ever replace a session's requirements with the result of
`merge`, which keeps list fields append-only and scalars stable unless the
user explicitly corrects them.
"""
import re
from enum import Enum
from typing import Iterable, List, Optional

from agent_discovery.core.constants import Complexity, DiscoveryStep
from agent_discovery.schemas.api_models import Requirements, RequirementsUpdate


SCALAR_FIELDS = ("business_type", "objectives", "target_audience")
LIST_FIELDS = ("key_features", "integrations_needed", "answered_steps")

# Separators used when a free-text reply lists several items
_ITEM_SPLIT = re.compile(r"\s*(?:,|;|\n|\bet\b|\band\b|\bainsi que\b)\s*", re.IGNORECASE)
_BULLET = re.compile(r"^(?:[\-\*•]+|\d+[\.\)])\s*")
MAX_ITEM_LENGTH = 80


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = " ".join(str(value).split())
    return value or None


def union_preserving_order(existing: Iterable, incoming: Iterable) -> list:
    """
    Union of two sequences, first-seen order, exact duplicates removed.

    Args:
        existing: Items already accumulated
        incoming: New items

    Returns:
        New list starting with every existing item
    """
    result = []
    seen = set()
    for item in list(existing) + list(incoming):
        if isinstance(item, str) and not isinstance(item, Enum):
            item = _clean(item)
            if item is None:
                continue
        if item in seen:
            continue
        seen.add(item)
        result.append(item)
    return result


def merge(
    old: Requirements,
    update: RequirementsUpdate,
    is_correction: bool = False
) -> Requirements:
    """
    Merge a partial update into requirements.

    - Scalars are set only if currently unset, or if `is_correction` is True.
    - List fields are unioned, preserving first-seen order.
    - Complexity is taken from the first explicit answer, which also answers
      the technical step; afterwards only a correction changes it.

    Never mutates its arguments.

    Args:
        old: Current requirements
        update: Extracted partial requirements
        is_correction: Caller marks the update as an explicit correction

    Returns:
        New Requirements value
    """
    changes = {}

    for field in SCALAR_FIELDS:
        incoming = _clean(getattr(update, field))
        if incoming is None:
            continue
        current = getattr(old, field)
        if current is None or is_correction:
            changes[field] = incoming

    for field in LIST_FIELDS:
        incoming = getattr(update, field)
        if incoming:
            changes[field] = union_preserving_order(getattr(old, field), incoming)

    if update.complexity is not None:
        settled = DiscoveryStep.TECHNICAL_FEATURES in old.answered_steps
        if is_correction or not settled:
            changes["complexity"] = update.complexity
        changes["answered_steps"] = union_preserving_order(
            changes.get("answered_steps", old.answered_steps),
            [DiscoveryStep.TECHNICAL_FEATURES]
        )

    if not changes:
        return old.model_copy(deep=True)
    return old.model_copy(update=changes, deep=True)


def split_items(text: str) -> List[str]:
    """
    Split a free-text enumeration into items.

    "réservations, menu et horaires" -> ["réservations", "menu", "horaires"]
    """
    items = []
    for part in _ITEM_SPLIT.split(text or ""):
        part = _BULLET.sub("", part).strip(" .!?\"'")
        if part:
            items.append(part[:MAX_ITEM_LENGTH])
    return union_preserving_order([], items)


def slot_answer(step: DiscoveryStep, utterance: str) -> RequirementsUpdate:
    """
    Interpret a raw reply as the answer to the question asked for `step`.

    Used when classification could not structure a reply to a pending data
    question: the reply itself becomes the slot value. Informational steps
    are only recorded as answered.

    Args:
        step: Step whose question was asked last
        utterance: User reply

    Returns:
        Partial requirements for that step
    """
    text = _clean(utterance) or ""

    if step == DiscoveryStep.BUSINESS_TYPE:
        return RequirementsUpdate(business_type=text[:MAX_ITEM_LENGTH] or None)
    if step == DiscoveryStep.KEY_FEATURES:
        return RequirementsUpdate(key_features=split_items(text))
    if step == DiscoveryStep.TARGET_AUDIENCE:
        return RequirementsUpdate(target_audience=text[:200] or None)
    if step == DiscoveryStep.TECHNICAL_FEATURES:
        return RequirementsUpdate(
            complexity=complexity_from_text(text),
            answered_steps=[step]
        )
    if step in (DiscoveryStep.INTEGRATIONS, DiscoveryStep.VALIDATION, DiscoveryStep.SANDBOX_TEST):
        return RequirementsUpdate(answered_steps=[step])
    return RequirementsUpdate()


_COMPLEXITY_WORDS = {
    Complexity.SIMPLE: ("simple", "basique", "basic", "minimal", "léger", "leger"),
    Complexity.COMPLEX: ("complex", "complexe", "avancé", "avance", "advanced", "sophistiqué", "expert"),
    Complexity.MODERATE: ("moderate", "modéré", "modere", "intermédiaire", "intermediate", "standard"),
}


def complexity_from_text(text: str) -> Optional[Complexity]:
    """Detect an explicit complexity preference in free text"""
    lowered = (text or "").lower()
    for level, words in _COMPLEXITY_WORDS.items():
        if any(re.search(rf"\b{re.escape(w)}\b", lowered) for w in words):
            return level
    return None
