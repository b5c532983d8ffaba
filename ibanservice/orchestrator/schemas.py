"""Pydantic models for API input/output — shared by the pipeline, validator and metrics."""

from __future__ import annotations

import json

from pydantic import BaseModel

TRUTHY_OPTION_VALUES = ("1", "true")

UNPARSEABLE_PREFIX = "Cannot parse as IBAN: "


def parse_option(value: str | None) -> bool:
    """Only ``"1"`` and ``"true"`` switch an option on; anything else is false."""
    return value in TRUTHY_OPTION_VALUES


def _format_bool(value: bool) -> str:
    return "true" if value else "false"


# ═══════════════ REQUEST ═══════════════

class ValidationRequest(BaseModel):
    """One /validate call: the raw IBAN plus the two augmentation flags."""

    raw_iban: str = ""
    want_bank_code_check: bool = False
    want_bic: bool = False

    @classmethod
    def from_query(
        cls,
        raw_iban: str,
        validate_bank_code: str | None = None,
        get_bic: str | None = None,
    ) -> ValidationRequest:
        return cls(
            raw_iban=raw_iban,
            want_bank_code_check=parse_option(validate_bank_code),
            want_bic=parse_option(get_bic),
        )

    @property
    def cache_key(self) -> str:
        # IBAN, then BIC flag, then bank-code flag
        return (
            self.raw_iban
            + _format_bool(self.want_bic)
            + _format_bool(self.want_bank_code_check)
        )

    @property
    def wants_augmentation(self) -> bool:
        return self.want_bank_code_check or self.want_bic


# ═══════════════ RESULT ═══════════════

class ValidationResult(BaseModel):
    """Response payload. Field order here is the JSON field order."""

    valid: bool
    message: str = ""
    ibanPrintFormat: str = ""
    bankCode: str | None = None
    bankCodeValid: bool | None = None
    bic: str | None = None

    model_config = {"frozen": True}

    def to_json(self) -> str:
        """Canonical rendering: fixed field order, two-space indent, optional fields omitted."""
        return json.dumps(self.model_dump(exclude_none=True), indent=2, ensure_ascii=False)

    @classmethod
    def from_json(cls, body: str) -> ValidationResult:
        return cls.model_validate_json(body)


# ═══════════════ CALCULATION ═══════════════

class CalculationResponse(BaseModel):
    iban: str
    ibanPrintFormat: str = ""
    result: ValidationResult | None = None
