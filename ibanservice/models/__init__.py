"""SQLAlchemy ORM models."""

from ibanservice.models.bank_data import BankData
from ibanservice.models.base import Base

__all__ = ["Base", "BankData"]
