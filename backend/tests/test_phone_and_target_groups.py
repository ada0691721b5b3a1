from __future__ import annotations

import pytest

from support_plus.identity import is_verified_id
from support_plus.phone import is_valid_phone, normalize_phone_to_e164
from support_plus.target_groups import is_same_target_group, normalize_target_group, normalize_target_groups


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("+7 912 345 67 89", "+7 912 345 67 89"),
        ("8 912 345-67-89", "+79123456789"),
        ("912 345 67 89", "+79123456789"),
        ("7 (912) 345-67-89", "+79123456789"),
        ("", ""),
        ("abc", ""),
    ],
)
def test_normalize_phone_to_e164(raw: str, expected: str) -> None:
    assert normalize_phone_to_e164(raw) == expected


def test_is_valid_phone() -> None:
    assert is_valid_phone("8 912 345-67-89")
    assert not is_valid_phone("12345")
    assert not is_valid_phone("")


def test_target_group_aliases_collapse_to_canonical_groups() -> None:
    assert normalize_target_group("woman_55_plus") == "pensioner"
    assert normalize_target_group("low_income") == "low-income"
    assert normalize_target_group("large-family") == "large-family"
    assert normalize_target_group("astronaut") is None
    assert normalize_target_group(None) is None


def test_normalize_target_groups_dedupes_in_order() -> None:
    groups = ["man_60_plus", "child_0_3", "pensioner", "unknown", "youth_under_23"]
    assert normalize_target_groups(groups) == ["pensioner", "child"]


def test_is_same_target_group() -> None:
    assert is_same_target_group("invalid_group_1", "disabled")
    assert not is_same_target_group("veteran", "disabled")
    assert not is_same_target_group(None, None)


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("11111111-1111-1111-1111-111111111111", True),
        ("5F0C3A1E-2B4D-4C6E-8F90-123456789ABC", True),
        ("sms:+1234567890", False),
        ("manual-user", False),
        ("", False),
        (None, False),
    ],
)
def test_is_verified_id(value, expected: bool) -> None:
    assert is_verified_id(value) is expected
