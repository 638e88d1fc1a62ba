"""Tests for version string parsing and increment."""

import pytest

from casevault.core.exceptions import InvalidVersionFormatError
from casevault.services.version_numbering import (
    INITIAL_VERSION, bump, is_newer, next_version, parse_version, version_key,
)


@pytest.mark.parametrize("current, expected", [
    ("1.0.0", "1.0.1"),
    ("1.0.9", "1.0.10"),
    ("2.7", "2.8"),
    ("3.4.5.6", "3.4.5.7"),
    ("0.0.99", "0.0.100"),
])
def test_bump_increments_last_component_only(current, expected):
    assert bump(current) == expected


@pytest.mark.parametrize("bad", [
    "", "1", "1.", ".1", "1..0", "1.0.a", "v1.0.0", " 1.0.0", "1.0.0\n", "1.-1", None, 100,
])
def test_bump_rejects_malformed(bad):
    with pytest.raises(InvalidVersionFormatError):
        bump(bad)


def test_parse_version_returns_integers():
    assert parse_version("10.2.03") == (10, 2, 3)


def test_next_version_starts_at_initial():
    assert INITIAL_VERSION == "1.0.0"
    assert next_version(None) == "1.0.0"
    assert next_version("1.0.4") == "1.0.5"


def test_comparison_is_numeric_not_lexical():
    assert is_newer("1.0.10", "1.0.9")
    assert not is_newer("1.0.9", "1.0.10")
    assert not is_newer("1.0.3", "1.0.3")
    assert sorted(["1.0.10", "1.0.2", "1.0.9"], key=version_key) == ["1.0.2", "1.0.9", "1.0.10"]


def test_invalid_version_error_carries_value():
    with pytest.raises(InvalidVersionFormatError) as exc_info:
        parse_version("abc")
    assert exc_info.value.version == "abc"
    assert isinstance(exc_info.value, ValueError)
