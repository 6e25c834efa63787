"""
Tests for format_time.
"""
import pytest

from songdeck.lib.timefmt import format_time


@pytest.mark.parametrize("seconds,expected", [
    (0, "0:00"),
    (5, "0:05"),
    (59.99, "0:59"),
    (60, "1:00"),
    (65, "1:05"),
    (184.32, "3:04"),
    (4500, "75:00"),
])
def test_minutes_and_padded_seconds(seconds, expected):
    assert format_time(seconds) == expected


@pytest.mark.parametrize("value", [
    None, float("nan"), float("inf"), "abc", -3, object(),
])
def test_unknown_renders_zero(value):
    assert format_time(value) == "0:00"


def test_numeric_string():
    assert format_time("125") == "2:05"
