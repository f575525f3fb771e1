"""Pydantic schemas for API request/response models."""

from datetime import date, datetime
from decimal import Decimal
from typing import Generic, TypeVar

from pydantic import BaseModel, Field

from formalization.models.states import CreditContractState, NoteState, SaleContractState

T = TypeVar("T")


# ---- Request schemas ----

class CreditContractCreate(BaseModel):
    request_id: int = Field(..., gt=0, description="Credit request this contract formalizes")
    contract_number: str = Field(..., min_length=1, max_length=50)
    approved_amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    term_months: int = Field(..., ge=1, le=120)
    annual_rate: Decimal = Field(
        ..., ge=0, le=Decimal("99.99"), max_digits=5, decimal_places=2,
        description="Nominal annual rate in percent, e.g. 12.00",
    )
    signed_file_ref: str | None = Field(None, max_length=255)


class SignatureRequest(BaseModel):
    signed_file_ref: str = Field(..., min_length=1, max_length=255)


class CancelRequest(BaseModel):
    reason: str | None = Field(None, max_length=255)


class NoteScheduleRequest(BaseModel):
    """Manual schedule generation; the first note falls due on start_date."""
    credit_contract_id: int = Field(..., gt=0)
    principal: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    annual_rate: Decimal = Field(..., ge=0, le=Decimal("99.99"), max_digits=5, decimal_places=2)
    term_months: int = Field(..., ge=1, le=120)
    start_date: date
    adjust_weekends: bool | None = None


class SaleContractCreate(BaseModel):
    request_id: int = Field(..., gt=0)
    contract_number: str = Field(..., min_length=1, max_length=50)
    vehicle_price: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    signed_file_ref: str | None = Field(None, max_length=255)


class SaleContractUpdateRequest(BaseModel):
    contract_number: str = Field(..., min_length=1, max_length=50)
    vehicle_price: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    state: SaleContractState
    signed_file_ref: str | None = Field(None, max_length=255)
    signed_at: datetime | None = None
    version: int | None = Field(None, ge=1, description="Reject the update unless this is current")


# ---- Response schemas ----

class CreditContractResponse(BaseModel):
    id: int
    request_id: int
    contract_number: str
    generated_at: datetime
    signed_at: datetime | None = None
    approved_amount: Decimal
    term_months: int
    annual_rate: Decimal
    signed_file_ref: str | None = None
    state: CreditContractState
    cancellation_reason: str | None = None
    cancelled_at: datetime | None = None
    version: int


class NoteResponse(BaseModel):
    id: int
    credit_contract_id: int
    installment_number: int
    amount: Decimal
    due_date: date
    state: NoteState
    paid_at: datetime | None = None
    version: int


class SaleContractResponse(BaseModel):
    id: int
    request_id: int
    contract_number: str
    generated_at: datetime
    signed_at: datetime | None = None
    vehicle_price: Decimal
    signed_file_ref: str | None = None
    state: SaleContractState
    version: int


class AmortizationRowResponse(BaseModel):
    period: int
    payment: Decimal
    principal: Decimal
    interest: Decimal
    balance: Decimal


class AmortizationResponse(BaseModel):
    credit_contract_id: int
    installment: Decimal
    total_interest: Decimal
    total_paid: Decimal
    rows: list[AmortizationRowResponse]


class NoteCountsResponse(BaseModel):
    credit_contract_id: int
    pending: int
    overdue: int
    open: int


class ExistsResponse(BaseModel):
    request_id: int
    exists: bool


class PageResponse(BaseModel, Generic[T]):
    items: list[T]
    total: int
    page: int
    size: int
    pages: int
    has_next: bool


def to_page_response(page, schema: type[BaseModel]) -> dict:
    """Convert a service Page of ORM records into the PageResponse shape."""
    return {
        "items": [schema.model_validate(item, from_attributes=True) for item in page.items],
        "total": page.total,
        "page": page.page,
        "size": page.size,
        "pages": page.pages,
        "has_next": page.has_next,
    }
