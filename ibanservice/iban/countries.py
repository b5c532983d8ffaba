"""IBAN country registry — BBAN layout per country.

BBAN formats use the SWIFT IBAN registry notation: ``<length>!<type>``
where type is ``n`` (digits), ``a`` (upper-case letters) or ``c``
(alphanumeric). ``bank_code`` is the (start, end) slice of the BBAN that
holds the bank identifier.
"""

import re

COUNTRIES = {
    "AD": {"name": "Andorra", "bban": "4!n4!n12!c", "bank_code": (0, 4)},
    "AT": {"name": "Austria", "bban": "5!n11!n", "bank_code": (0, 5)},
    "BE": {"name": "Belgium", "bban": "3!n7!n2!n", "bank_code": (0, 3)},
    "BG": {"name": "Bulgaria", "bban": "4!a4!n2!n8!c", "bank_code": (0, 4)},
    "CH": {"name": "Switzerland", "bban": "5!n12!c", "bank_code": (0, 5)},
    "CY": {"name": "Cyprus", "bban": "3!n5!n16!c", "bank_code": (0, 3)},
    "CZ": {"name": "Czech Republic", "bban": "4!n6!n10!n", "bank_code": (0, 4)},
    "DE": {"name": "Germany", "bban": "8!n10!n", "bank_code": (0, 8)},
    "DK": {"name": "Denmark", "bban": "4!n9!n1!n", "bank_code": (0, 4)},
    "EE": {"name": "Estonia", "bban": "2!n2!n11!n1!n", "bank_code": (0, 2)},
    "ES": {"name": "Spain", "bban": "4!n4!n1!n1!n10!n", "bank_code": (0, 4)},
    "FI": {"name": "Finland", "bban": "3!n11!n", "bank_code": (0, 3)},
    "FR": {"name": "France", "bban": "5!n5!n11!c2!n", "bank_code": (0, 5)},
    "GB": {"name": "United Kingdom", "bban": "4!a6!n8!n", "bank_code": (0, 4)},
    "GR": {"name": "Greece", "bban": "3!n4!n16!c", "bank_code": (0, 3)},
    "HR": {"name": "Croatia", "bban": "7!n10!n", "bank_code": (0, 7)},
    "HU": {"name": "Hungary", "bban": "3!n4!n1!n15!n1!n", "bank_code": (0, 3)},
    "IE": {"name": "Ireland", "bban": "4!a6!n8!n", "bank_code": (0, 4)},
    "IT": {"name": "Italy", "bban": "1!a5!n5!n12!c", "bank_code": (1, 6)},
    "LI": {"name": "Liechtenstein", "bban": "5!n12!c", "bank_code": (0, 5)},
    "LT": {"name": "Lithuania", "bban": "5!n11!n", "bank_code": (0, 5)},
    "LU": {"name": "Luxembourg", "bban": "3!n13!c", "bank_code": (0, 3)},
    "LV": {"name": "Latvia", "bban": "4!a13!c", "bank_code": (0, 4)},
    "MC": {"name": "Monaco", "bban": "5!n5!n11!c2!n", "bank_code": (0, 5)},
    "MT": {"name": "Malta", "bban": "4!a5!n18!c", "bank_code": (0, 4)},
    "NL": {"name": "Netherlands", "bban": "4!a10!n", "bank_code": (0, 4)},
    "NO": {"name": "Norway", "bban": "4!n6!n1!n", "bank_code": (0, 4)},
    "PL": {"name": "Poland", "bban": "8!n16!n", "bank_code": (0, 8)},
    "PT": {"name": "Portugal", "bban": "4!n4!n11!n2!n", "bank_code": (0, 4)},
    "RO": {"name": "Romania", "bban": "4!a16!c", "bank_code": (0, 4)},
    "SE": {"name": "Sweden", "bban": "3!n16!n1!n", "bank_code": (0, 3)},
    "SI": {"name": "Slovenia", "bban": "5!n8!n2!n", "bank_code": (0, 5)},
    "SK": {"name": "Slovakia", "bban": "4!n6!n10!n", "bank_code": (0, 4)},
    "SM": {"name": "San Marino", "bban": "1!a5!n5!n12!c", "bank_code": (1, 6)},
    "TR": {"name": "Turkey", "bban": "5!n1!n16!c", "bank_code": (0, 5)},
}

_SEGMENT_RE = re.compile(r"(\d+)!([nac])")
_CHAR_CLASS = {"n": "[0-9]", "a": "[A-Z]", "c": "[A-Z0-9]"}


def parse_bban_format(fmt: str) -> list[tuple[int, str]]:
    """Split a registry format like ``8!n10!n`` into ``[(8, "n"), (10, "n")]``."""
    segments = [(int(length), kind) for length, kind in _SEGMENT_RE.findall(fmt)]
    if "".join(f"{n}!{k}" for n, k in segments) != fmt:
        raise ValueError(f"Malformed BBAN format: {fmt}")
    return segments


def bban_length(country_code: str) -> int:
    return sum(n for n, _ in parse_bban_format(COUNTRIES[country_code]["bban"]))


def iban_length(country_code: str) -> int:
    """Total IBAN length: country code + check digits + BBAN."""
    return 4 + bban_length(country_code)


def bban_regex(country_code: str) -> re.Pattern:
    segments = parse_bban_format(COUNTRIES[country_code]["bban"])
    pattern = "".join(f"{_CHAR_CLASS[kind]}{{{n}}}" for n, kind in segments)
    return re.compile(f"^{pattern}$")


def get_country_name(country_code: str) -> str:
    return COUNTRIES.get(country_code.upper(), {}).get("name", "")


def country_names() -> dict[str, str]:
    """Return ``{code: name}`` for every supported country, sorted by code."""
    return {code: COUNTRIES[code]["name"] for code in sorted(COUNTRIES)}
