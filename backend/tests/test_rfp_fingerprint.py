from __future__ import annotations

import pytest

from rfp_workflow.modules.rfp.fingerprint import hash_string


@pytest.mark.parametrize(
    "text,expected",
    [
        ("", "0"),
        ("a", "61"),
        ("hello", "5e918d2"),
        # 32-bit wrap lands exactly on the minimum signed value.
        ("polygenelubricants", "-80000000"),
    ],
)
def test_hash_string_known_values(text, expected):
    assert hash_string(text) == expected


def test_hash_string_none_is_empty():
    assert hash_string(None) == hash_string("") == "0"


def test_hash_string_counts_utf16_code_units():
    # U+1F600 is a surrogate pair (0xD83D, 0xDE00) and hashes as two units.
    assert hash_string("\U0001F600") == format(0xD83D * 31 + 0xDE00, "x")


def test_hash_string_is_deterministic_but_not_collision_free():
    assert hash_string("Scope v1") == hash_string("Scope v1")
    assert hash_string("Scope v1") != hash_string("Scope v2")
    assert hash_string("Aa") == hash_string("BB")
