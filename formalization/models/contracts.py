from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal

from formalization.models.states import SaleContractState


@dataclass(frozen=True)
class CreditContractDraft:
    """Input for instrumenting a credit contract."""
    request_id: int
    contract_number: str
    approved_amount: Decimal
    term_months: int
    annual_rate: Decimal  # Nominal annual percent, e.g. Decimal("12.00")
    signed_file_ref: str | None = None

    def with_terms(self, summary: "RequestSummary") -> "CreditContractDraft":
        """Overwrite the financial terms with the origination service's values."""
        return replace(
            self,
            approved_amount=summary.approved_amount,
            term_months=summary.term_months,
            annual_rate=summary.annual_rate,
        )


@dataclass(frozen=True)
class SaleContractDraft:
    """Input for generating a sale contract."""
    request_id: int
    contract_number: str
    vehicle_price: Decimal
    signed_file_ref: str | None = None

    def with_terms(self, summary: "RequestSummary") -> "SaleContractDraft":
        return replace(self, vehicle_price=summary.vehicle_price)


@dataclass(frozen=True)
class SaleContractUpdate:
    """Full overwrite of a sale contract's mutable fields."""
    contract_number: str
    vehicle_price: Decimal
    state: SaleContractState
    signed_file_ref: str | None = None
    signed_at: datetime | None = None


@dataclass(frozen=True)
class RequestSummary:
    """Approved terms of a credit request, as held by the origination service."""
    request_id: int
    vehicle_price: Decimal
    approved_amount: Decimal
    term_months: int
    annual_rate: Decimal
