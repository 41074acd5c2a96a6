"""
Tests for free-text US address parsing used before property lookups.
"""

import pytest

from caselli.tools.address import ParsedAddress, parse_address


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("123 Main St, Austin TX", ParsedAddress("123 Main St", "Austin", "TX")),
        ("123 Main St, Austin, TX 78701", ParsedAddress("123 Main St", "Austin", "TX", "78701")),
        ("45 Elm Ave, Round Rock, tx", ParsedAddress("45 Elm Ave", "Round Rock", "TX")),
        ("9 Ocean Dr, Miami Beach, Florida", ParsedAddress("9 Ocean Dr", "Miami Beach", "FL")),
        ("77 Pine Rd, San Antonio TX 78205", ParsedAddress("77 Pine Rd", "San Antonio", "TX", "78205")),
    ],
)
def test_parses_city_and_state(raw, expected):
    assert parse_address(raw) == expected


@pytest.mark.parametrize(
    "raw",
    [
        "",
        "123 Main St",
        "the house on Main",
        "123 Main St, Austin",
        "123 Main St, Austin, Narnia",
    ],
)
def test_unparseable_addresses_return_none(raw):
    assert parse_address(raw) is None
