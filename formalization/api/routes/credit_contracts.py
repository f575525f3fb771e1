"""Credit contract routes: instrumentation, activation, payoff and cancellation."""

from decimal import Decimal

from fastapi import APIRouter, Depends, Query

from formalization.api.deps import get_credit_contract_service, get_note_service
from formalization.api.schemas import (
    AmortizationResponse,
    AmortizationRowResponse,
    CancelRequest,
    CreditContractCreate,
    CreditContractResponse,
    ExistsResponse,
    NoteResponse,
    PageResponse,
    SignatureRequest,
    to_page_response,
)
from formalization.models.contracts import CreditContractDraft
from formalization.models.states import CreditContractState
from formalization.services.credit_contracts import CreditContractService
from formalization.services.filters import ContractFilters
from formalization.services.notes import NoteService

router = APIRouter(prefix="/api/v1/credit-contracts", tags=["credit-contracts"])


def _to_response(contract) -> CreditContractResponse:
    return CreditContractResponse.model_validate(contract, from_attributes=True)


@router.get("", response_model=PageResponse[CreditContractResponse])
async def list_credit_contracts(
    state: CreditContractState | None = None,
    contract_number: str | None = None,
    request_id: int | None = None,
    page: int = Query(0, ge=0),
    size: int | None = Query(None, ge=1),
    service: CreditContractService = Depends(get_credit_contract_service),
):
    """List credit contracts; any combination of filters narrows the result."""
    filters = ContractFilters(state=state, contract_number=contract_number, request_id=request_id)
    result = await service.search(filters, page, size)
    return to_page_response(result, CreditContractResponse)


@router.post("", response_model=CreditContractResponse, status_code=201)
async def instrument_credit_contract(
    req: CreditContractCreate,
    service: CreditContractService = Depends(get_credit_contract_service),
):
    """Create a credit contract together with its note schedule."""
    draft = CreditContractDraft(
        request_id=req.request_id,
        contract_number=req.contract_number,
        approved_amount=req.approved_amount,
        term_months=req.term_months,
        annual_rate=req.annual_rate,
        signed_file_ref=req.signed_file_ref,
    )
    return _to_response(await service.instrument(draft))


@router.get("/exists/{request_id}", response_model=ExistsResponse)
async def credit_contract_exists(
    request_id: int,
    service: CreditContractService = Depends(get_credit_contract_service),
):
    return ExistsResponse(request_id=request_id, exists=await service.exists_for_request(request_id))


@router.get("/by-request/{request_id}", response_model=CreditContractResponse)
async def get_by_request(
    request_id: int,
    service: CreditContractService = Depends(get_credit_contract_service),
):
    return _to_response(await service.get_by_request(request_id))


@router.get("/by-number/{contract_number}", response_model=CreditContractResponse)
async def get_by_number(
    contract_number: str,
    service: CreditContractService = Depends(get_credit_contract_service),
):
    return _to_response(await service.get_by_number(contract_number))


@router.get("/{contract_id}", response_model=CreditContractResponse)
async def get_credit_contract(
    contract_id: int,
    service: CreditContractService = Depends(get_credit_contract_service),
):
    return _to_response(await service.get(contract_id))


@router.post("/{contract_id}/sign", response_model=CreditContractResponse)
async def sign_credit_contract(
    contract_id: int,
    req: SignatureRequest,
    service: CreditContractService = Depends(get_credit_contract_service),
):
    """Record the signed document and activate the contract."""
    return _to_response(await service.register_signature(contract_id, req.signed_file_ref))


@router.post("/{contract_id}/approve-disbursement", response_model=CreditContractResponse)
async def approve_disbursement(
    contract_id: int,
    service: CreditContractService = Depends(get_credit_contract_service),
):
    """Activate a contract whose signed document arrived with instrumentation."""
    return _to_response(await service.approve_disbursement(contract_id))


@router.post("/{contract_id}/pay", response_model=CreditContractResponse)
async def pay_off_credit_contract(
    contract_id: int,
    service: CreditContractService = Depends(get_credit_contract_service),
):
    return _to_response(await service.mark_paid(contract_id))


@router.post("/{contract_id}/cancel", response_model=CreditContractResponse)
async def cancel_credit_contract(
    contract_id: int,
    req: CancelRequest | None = None,
    service: CreditContractService = Depends(get_credit_contract_service),
):
    reason = req.reason if req else None
    return _to_response(await service.cancel(contract_id, reason))


@router.get("/{contract_id}/notes", response_model=list[NoteResponse])
async def list_contract_notes(
    contract_id: int,
    service: CreditContractService = Depends(get_credit_contract_service),
    notes: NoteService = Depends(get_note_service),
):
    """Notes of a contract ordered by installment number."""
    await service.get(contract_id)
    return [
        NoteResponse.model_validate(note, from_attributes=True)
        for note in await notes.list_by_contract(contract_id)
    ]


@router.get("/{contract_id}/amortization", response_model=AmortizationResponse)
async def amortization_preview(
    contract_id: int,
    service: CreditContractService = Depends(get_credit_contract_service),
):
    """Principal/interest split of each installment at the contract's terms."""
    table = await service.amortization(contract_id)
    return AmortizationResponse(
        credit_contract_id=contract_id,
        installment=table.installment,
        total_interest=table.total_interest,
        total_paid=table.total_paid,
        rows=[
            AmortizationRowResponse(
                period=row.period,
                payment=row.payment,
                principal=row.principal,
                interest=row.interest,
                balance=row.balance.quantize(Decimal("0.01")),
            )
            for row in table.rows
        ],
    )
