"""Augmenter — bank-code validation and BIC lookup against the bank_data table.

Each step opens its own short read-only session. Store errors are logged and
swallowed: the bank-code step reports ``bankCodeValid: false`` and the BIC
step leaves ``bic`` out. A failing database never fails a request.
"""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ibanservice.iban import Iban
from ibanservice.models.bank_data import BankData
from ibanservice.orchestrator.schemas import ValidationRequest, ValidationResult

logger = logging.getLogger(__name__)


class BankDataAugmenter:
    """Adds bankCode/bankCodeValid and bic to a base validation result."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def find_bank(self, country_code: str, bank_code: str) -> BankData | None:
        async with self._session_factory() as session:
            stmt = (
                select(BankData)
                .where(BankData.country_code == country_code, BankData.bank_code == bank_code)
                .limit(1)
            )
            result = await session.execute(stmt)
            return result.scalars().first()

    async def _lookup(self, iban: Iban, purpose: str) -> BankData | None:
        if not iban.bank_code:
            return None
        try:
            return await self.find_bank(iban.country_code, iban.bank_code)
        except Exception as e:
            logger.warning(
                "Bank data lookup failed | purpose=%s | country=%s | bank_code=%s | %s",
                purpose, iban.country_code, iban.bank_code, str(e)[:100],
            )
            return None

    async def validate_bank_code(self, iban: Iban, result: ValidationResult) -> ValidationResult:
        if not iban.bank_code:
            return result.model_copy(update={"bankCodeValid": False})
        bank = await self._lookup(iban, "bank_code")
        return result.model_copy(update={
            "bankCode": iban.bank_code,
            "bankCodeValid": bank is not None,
        })

    async def get_bic(self, iban: Iban, result: ValidationResult) -> ValidationResult:
        bank = await self._lookup(iban, "bic")
        if bank is None or not bank.bic:
            return result
        return result.model_copy(update={"bic": bank.bic})

    async def augment(
        self,
        iban: Iban,
        result: ValidationResult,
        request: ValidationRequest,
    ) -> ValidationResult:
        """Bank-code check first, then BIC lookup — each only if requested."""
        if request.want_bank_code_check:
            result = await self.validate_bank_code(iban, result)
        if request.want_bic:
            result = await self.get_bic(iban, result)
        return result
