"""Normalisation of benefit target groups and profile categories."""

from __future__ import annotations

from typing import Dict, Iterable, List, Literal, Optional, Tuple, cast

TargetGroup = Literal[
    "pensioner",
    "disabled",
    "veteran",
    "large-family",
    "low-income",
    "child",
    "russia",
]

CANONICAL_TARGET_GROUPS: Tuple[TargetGroup, ...] = (
    "pensioner",
    "disabled",
    "veteran",
    "large-family",
    "low-income",
    "child",
    "russia",
)

TARGET_GROUP_ALIASES: Dict[str, TargetGroup] = {
    "pensioner": "pensioner",
    "woman_55_plus": "pensioner",
    "man_60_plus": "pensioner",
    "disabled": "disabled",
    "invalid_group_1": "disabled",
    "invalid_group_2": "disabled",
    "invalid_child": "disabled",
    "disabled_child_family": "disabled",
    "federal_beneficiary": "disabled",
    "indigenous_small_peoples_north": "disabled",
    "veteran": "veteran",
    "large-family": "large-family",
    "large_family": "large-family",
    "many_children_family": "large-family",
    "family-with-children": "large-family",
    "family_with_children": "large-family",
    "family_with_child_under_6": "large-family",
    "family_with_child_under6": "large-family",
    "young_family": "large-family",
    "low-income": "low-income",
    "low_income": "low-income",
    "dwfo_resident": "low-income",
    "teacher": "low-income",
    "doctor": "low-income",
    "child": "child",
    "child_0_3": "child",
    "child_0_6": "child",
    "child_0_17": "child",
    "youth_under_23": "child",
    "russia": "russia",
}


def normalize_target_group(value: Optional[str]) -> Optional[TargetGroup]:
    if not value:
        return None
    direct = TARGET_GROUP_ALIASES.get(value)
    if direct:
        return direct
    fallback = value.replace("_", "-")
    if fallback in CANONICAL_TARGET_GROUPS:
        return cast(TargetGroup, fallback)
    return None


def normalize_target_groups(values: Iterable[str] = ()) -> List[TargetGroup]:
    seen: Dict[TargetGroup, None] = {}
    for value in values:
        normalized = normalize_target_group(value)
        if normalized and normalized not in seen:
            seen[normalized] = None
    return list(seen.keys())


def is_same_target_group(a: Optional[str], b: Optional[str]) -> bool:
    norm_a = normalize_target_group(a)
    norm_b = normalize_target_group(b)
    return bool(norm_a and norm_b and norm_a == norm_b)


__all__ = [
    "CANONICAL_TARGET_GROUPS",
    "TARGET_GROUP_ALIASES",
    "TargetGroup",
    "is_same_target_group",
    "normalize_target_group",
    "normalize_target_groups",
]
