"""SQLAlchemy ORM models for PostgreSQL persistence.

Every table maps ``version`` as the mapper's version_id_col: inserts start at
1, each UPDATE bumps it in the same statement and an UPDATE against a stale
version raises StaleDataError.
"""

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    BigInteger,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from formalization.models.states import CreditContractState, NoteState, SaleContractState

# 64-bit ids everywhere; SQLite only autoincrements plain INTEGER keys.
BigId = BigInteger().with_variant(Integer, "sqlite")


class Base(DeclarativeBase):
    pass


class CreditContractRecord(Base):
    __tablename__ = "credit_contracts"

    id: Mapped[int] = mapped_column(BigId, primary_key=True, autoincrement=True)
    request_id: Mapped[int] = mapped_column(BigInteger, unique=True, index=True)
    contract_number: Mapped[str] = mapped_column(String(50), unique=True, index=True)

    generated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    signed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Financing terms
    approved_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    term_months: Mapped[int] = mapped_column(Integer)
    annual_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2))  # Percent, e.g. 12.00

    signed_file_ref: Mapped[str | None] = mapped_column(String(255), nullable=True)
    state: Mapped[CreditContractState] = mapped_column(
        Enum(CreditContractState, native_enum=False, length=20), index=True
    )

    # Audit only
    cancellation_reason: Mapped[str | None] = mapped_column(String(255), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    version: Mapped[int] = mapped_column(BigInteger, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return (
            f"CreditContractRecord(id={self.id}, contract_number={self.contract_number!r}, "
            f"state={self.state.value}, version={self.version})"
        )


class NoteRecord(Base):
    __tablename__ = "notes"
    __table_args__ = (
        UniqueConstraint("credit_contract_id", "installment_number", name="uq_note_installment"),
    )

    id: Mapped[int] = mapped_column(BigId, primary_key=True, autoincrement=True)
    credit_contract_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("credit_contracts.id"), index=True
    )
    installment_number: Mapped[int] = mapped_column(Integer)
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    due_date: Mapped[date] = mapped_column(Date, index=True)
    state: Mapped[NoteState] = mapped_column(
        Enum(NoteState, native_enum=False, length=20), index=True
    )
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    version: Mapped[int] = mapped_column(BigInteger, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return (
            f"NoteRecord(id={self.id}, contract={self.credit_contract_id}, "
            f"installment={self.installment_number}, state={self.state.value})"
        )


class SaleContractRecord(Base):
    __tablename__ = "sale_contracts"

    id: Mapped[int] = mapped_column(BigId, primary_key=True, autoincrement=True)
    request_id: Mapped[int] = mapped_column(BigInteger, unique=True, index=True)
    contract_number: Mapped[str] = mapped_column(String(50), unique=True, index=True)

    generated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    signed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    vehicle_price: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    signed_file_ref: Mapped[str | None] = mapped_column(String(255), nullable=True)
    state: Mapped[SaleContractState] = mapped_column(
        Enum(SaleContractState, native_enum=False, length=20), index=True
    )

    version: Mapped[int] = mapped_column(BigInteger, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return (
            f"SaleContractRecord(id={self.id}, contract_number={self.contract_number!r}, "
            f"state={self.state.value}, version={self.version})"
        )
