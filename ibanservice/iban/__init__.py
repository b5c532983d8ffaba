"""IBAN validator — parseability check, structured parsing, validation, calculation."""

from ibanservice.iban.calculate import CalculationError, calculate_iban, supports_calculation
from ibanservice.iban.countries import country_names, get_country_name
from ibanservice.iban.parser import Iban, ParserResult, is_parseable, parse_iban, to_print_format

__all__ = [
    "CalculationError",
    "Iban",
    "ParserResult",
    "calculate_iban",
    "country_names",
    "get_country_name",
    "is_parseable",
    "parse_iban",
    "supports_calculation",
    "to_print_format",
]
