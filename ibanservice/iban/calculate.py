"""IBAN calculation from country, bank code and account number.

Supported for countries whose BBAN is exactly ``<bank code><account number>``
(two registry segments, bank code first). Account numbers are left-padded
with zeros to the registry length.
"""

from ibanservice.iban.countries import COUNTRIES, bban_regex, parse_bban_format
from ibanservice.iban.parser import Iban, compute_check_digits


class CalculationError(ValueError):
    """Input cannot be turned into an IBAN for the given country."""


def supports_calculation(country_code: str) -> bool:
    spec = COUNTRIES.get(country_code.upper())
    if not spec:
        return False
    segments = parse_bban_format(spec["bban"])
    start, end = spec["bank_code"]
    return len(segments) == 2 and start == 0 and end == segments[0][0]


def calculate_iban(country_code: str, bank_code: str, account_number: str) -> Iban:
    """Build an IBAN with freshly computed check digits."""
    country_code = country_code.upper()
    if not supports_calculation(country_code):
        raise CalculationError(f"IBAN calculation not supported for {country_code}")

    bank_len, account_len = (n for n, _ in parse_bban_format(COUNTRIES[country_code]["bban"]))
    bank_code = bank_code.strip().upper()
    account_number = account_number.strip().upper()

    if len(bank_code) != bank_len:
        raise CalculationError(f"Bank code for {country_code} must have {bank_len} characters")
    if not account_number or len(account_number) > account_len:
        raise CalculationError(
            f"Account number for {country_code} must have 1 to {account_len} characters"
        )

    bban = bank_code + account_number.rjust(account_len, "0")
    if not bban_regex(country_code).match(bban):
        raise CalculationError(f"Bank code or account number do not match the format for {country_code}")

    return Iban(
        country_code=country_code,
        check_digits=compute_check_digits(country_code, bban),
        bban=bban,
    )
