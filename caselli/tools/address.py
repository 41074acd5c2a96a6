"""
Address parsing heuristics for property enrichment.

Only city and state matter for the lookup. Anything that does not match
returns None and enrichment is skipped rather than guessed.

    >>> parse_address("123 Main St, Austin TX")
    ParsedAddress(street='123 Main St', city='Austin', state='TX', zip_code=None)
"""

import re
from dataclasses import dataclass
from typing import Optional

US_STATES = {
    "alabama": "AL", "alaska": "AK", "arizona": "AZ", "arkansas": "AR",
    "california": "CA", "colorado": "CO", "connecticut": "CT", "delaware": "DE",
    "district of columbia": "DC", "florida": "FL", "georgia": "GA", "hawaii": "HI",
    "idaho": "ID", "illinois": "IL", "indiana": "IN", "iowa": "IA", "kansas": "KS",
    "kentucky": "KY", "louisiana": "LA", "maine": "ME", "maryland": "MD",
    "massachusetts": "MA", "michigan": "MI", "minnesota": "MN", "mississippi": "MS",
    "missouri": "MO", "montana": "MT", "nebraska": "NE", "nevada": "NV",
    "new hampshire": "NH", "new jersey": "NJ", "new mexico": "NM", "new york": "NY",
    "north carolina": "NC", "north dakota": "ND", "ohio": "OH", "oklahoma": "OK",
    "oregon": "OR", "pennsylvania": "PA", "rhode island": "RI",
    "south carolina": "SC", "south dakota": "SD", "tennessee": "TN", "texas": "TX",
    "utah": "UT", "vermont": "VT", "virginia": "VA", "washington": "WA",
    "west virginia": "WV", "wisconsin": "WI", "wyoming": "WY",
}

STATE_CODES = frozenset(US_STATES.values())

_STATE_NAMES = "|".join(sorted((re.escape(n) for n in US_STATES), key=len, reverse=True))

# "<street>, <city>[,] <STATE>[ <zip>]"
_ADDRESS_RE = re.compile(
    rf"""^\s*(?P<street>[^,]+?)\s*,\s*
        (?P<city>[A-Za-z][A-Za-z .'\-]*?)\s*,?\s+
        (?P<state>[A-Za-z]{{2}}|{_STATE_NAMES})\.?
        (?:\s+(?P<zip>\d{{5}})(?:-\d{{4}})?)?\s*$""",
    re.IGNORECASE | re.VERBOSE,
)

# "<street>, <city>, <STATE>" where the city part has its own comma
_THREE_PART_RE = re.compile(
    r"^\s*(?P<street>[^,]+?)\s*,\s*(?P<city>[^,]+?)\s*,\s*(?P<state>[A-Za-z ]+?)(?:\s+(?P<zip>\d{5}))?\s*$"
)


@dataclass(frozen=True)
class ParsedAddress:
    street: str
    city: str
    state: str
    zip_code: Optional[str] = None


def _state_code(value: str) -> Optional[str]:
    value = value.strip().rstrip(".")
    if value.upper() in STATE_CODES:
        return value.upper()
    return US_STATES.get(value.lower())


def parse_address(address: str) -> Optional[ParsedAddress]:
    """Extract street/city/state (and zip when present), or None."""
    if not address or "," not in address:
        return None

    for pattern in (_THREE_PART_RE, _ADDRESS_RE):
        match = pattern.match(address)
        if not match:
            continue
        state = _state_code(match.group("state"))
        city = match.group("city").strip()
        if state and city:
            return ParsedAddress(
                street=match.group("street").strip(),
                city=city,
                state=state,
                zip_code=match.group("zip"),
            )
    return None
