"""BankData model — reference table of bank codes and BICs per country."""

from sqlalchemy import Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from ibanservice.models.base import Base


class BankData(Base):
    """One bank (or branch) identified by country + national bank code."""

    __tablename__ = "bank_data"
    __table_args__ = (
        Index("ix_bank_data_country_bank_code", "country_code", "bank_code"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    country_code: Mapped[str] = mapped_column(String(2), nullable=False)
    bank_code: Mapped[str] = mapped_column(String(16), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False, insert_default="")
    zip: Mapped[str] = mapped_column(String(16), nullable=False, insert_default="")
    city: Mapped[str] = mapped_column(String(128), nullable=False, insert_default="")
    bic: Mapped[str | None] = mapped_column(String(11), nullable=True)
