"""IBAN parsing and validation (ISO 13616, MOD-97-10).

Two stages:
  - ``is_parseable`` decides whether a string can be read as an IBAN at all.
    Its verdict depends only on the input string.
  - ``parse_iban`` + ``Iban.validate`` check country, length, BBAN layout
    and checksum, producing a ``ValidationResult``.
"""

import re
from dataclasses import dataclass

from ibanservice.iban.countries import COUNTRIES, bban_regex, iban_length
from ibanservice.orchestrator.schemas import ValidationResult

MIN_IBAN_LENGTH = 5
MAX_IBAN_LENGTH = 34

_ALNUM_RE = re.compile(r"^[A-Z0-9]+$")
_WHITESPACE_RE = re.compile(r"\s+")


@dataclass(frozen=True)
class ParserResult:
    valid: bool
    message: str = ""
    data: str = ""


def normalize(raw: str) -> str:
    """Strip whitespace and upper-case."""
    return _WHITESPACE_RE.sub("", raw or "").upper()


def to_print_format(iban: str) -> str:
    """``DE89370400440532013000`` -> ``DE89 3704 0044 0532 0130 00``."""
    return " ".join(iban[i:i + 4] for i in range(0, len(iban), 4))


def is_parseable(raw: str) -> ParserResult:
    """Structural pre-check; the message is the parser diagnostic on failure."""
    value = normalize(raw)
    if len(value) < MIN_IBAN_LENGTH:
        return ParserResult(False, f"IBAN too short ({len(value)} characters)")
    if len(value) > MAX_IBAN_LENGTH:
        return ParserResult(False, f"IBAN too long ({len(value)} characters)")
    if not _ALNUM_RE.match(value):
        return ParserResult(False, "IBAN contains invalid characters")
    if not value[:2].isalpha():
        return ParserResult(False, "Country code must be two letters")
    if not value[2:4].isdigit():
        return ParserResult(False, "Check digits must be numeric")
    return ParserResult(True, "", value)


def mod97(value: str) -> int:
    """Remainder of the letter-expanded numeric string modulo 97 (A=10 … Z=35)."""
    digits = "".join(str(int(ch, 36)) for ch in value)
    return int(digits) % 97


def compute_check_digits(country_code: str, bban: str) -> str:
    return f"{98 - mod97(bban + country_code + '00'):02d}"


@dataclass(frozen=True)
class Iban:
    """Structured IBAN — country / check digits / BBAN breakdown."""

    country_code: str
    check_digits: str
    bban: str

    @property
    def value(self) -> str:
        return f"{self.country_code}{self.check_digits}{self.bban}"

    @property
    def print_format(self) -> str:
        return to_print_format(self.value)

    @property
    def is_supported_country(self) -> bool:
        return self.country_code in COUNTRIES

    @property
    def bank_code(self) -> str:
        """Bank identifier part of the BBAN, empty for unsupported countries."""
        if not self.is_supported_country:
            return ""
        start, end = COUNTRIES[self.country_code]["bank_code"]
        return self.bban[start:end]

    @property
    def account_number(self) -> str:
        if not self.is_supported_country:
            return self.bban
        _, end = COUNTRIES[self.country_code]["bank_code"]
        return self.bban[end:]

    def validate(self) -> ValidationResult:
        error = self._first_error()
        return ValidationResult(
            valid=not error,
            message=error or "Valid IBAN.",
            ibanPrintFormat=self.print_format,
        )

    def _first_error(self) -> str:
        if not self.is_supported_country:
            return f"Unsupported country code: {self.country_code}"
        expected = iban_length(self.country_code)
        if len(self.value) != expected:
            return (
                f"Invalid length for {self.country_code}: "
                f"expected {expected}, got {len(self.value)}"
            )
        if not bban_regex(self.country_code).match(self.bban):
            return f"BBAN does not match the format for {self.country_code}"
        if mod97(self.bban + self.country_code + self.check_digits) != 1:
            return "Invalid IBAN checksum"
        return ""


def parse_iban(raw: str) -> Iban:
    """Split a parseable string into its parts. Call ``is_parseable`` first."""
    value = normalize(raw)
    result = is_parseable(value)
    if not result.valid:
        raise ValueError(f"Cannot parse as IBAN: {result.message}")
    return Iban(country_code=value[:2], check_digits=value[2:4], bban=value[4:])
