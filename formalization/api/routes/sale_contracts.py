"""Vehicle sale contract routes."""

from fastapi import APIRouter, Depends, Query

from formalization.api.deps import get_sale_contract_service
from formalization.api.schemas import (
    ExistsResponse,
    PageResponse,
    SaleContractCreate,
    SaleContractResponse,
    SaleContractUpdateRequest,
    SignatureRequest,
    to_page_response,
)
from formalization.models.contracts import SaleContractDraft, SaleContractUpdate
from formalization.models.states import SaleContractState
from formalization.services.filters import ContractFilters
from formalization.services.sale_contracts import SaleContractService

router = APIRouter(prefix="/api/v1/sale-contracts", tags=["sale-contracts"])


def _to_response(contract) -> SaleContractResponse:
    return SaleContractResponse.model_validate(contract, from_attributes=True)


@router.get("", response_model=PageResponse[SaleContractResponse])
async def list_sale_contracts(
    state: SaleContractState | None = None,
    contract_number: str | None = None,
    request_id: int | None = None,
    page: int = Query(0, ge=0),
    size: int | None = Query(None, ge=1),
    service: SaleContractService = Depends(get_sale_contract_service),
):
    filters = ContractFilters(state=state, contract_number=contract_number, request_id=request_id)
    return to_page_response(await service.search(filters, page, size), SaleContractResponse)


@router.post("", response_model=SaleContractResponse, status_code=201)
async def generate_sale_contract(
    req: SaleContractCreate,
    service: SaleContractService = Depends(get_sale_contract_service),
):
    draft = SaleContractDraft(
        request_id=req.request_id,
        contract_number=req.contract_number,
        vehicle_price=req.vehicle_price,
        signed_file_ref=req.signed_file_ref,
    )
    return _to_response(await service.generate(draft))


@router.get("/exists/{request_id}", response_model=ExistsResponse)
async def sale_contract_exists(
    request_id: int,
    service: SaleContractService = Depends(get_sale_contract_service),
):
    return ExistsResponse(request_id=request_id, exists=await service.exists_for_request(request_id))


@router.get("/by-state/{state}", response_model=PageResponse[SaleContractResponse])
async def list_by_state(
    state: SaleContractState,
    page: int = Query(0, ge=0),
    size: int | None = Query(None, ge=1),
    service: SaleContractService = Depends(get_sale_contract_service),
):
    return to_page_response(await service.list_by_state(state, page, size), SaleContractResponse)


@router.get("/by-request/{request_id}", response_model=SaleContractResponse)
async def get_by_request(
    request_id: int,
    service: SaleContractService = Depends(get_sale_contract_service),
):
    return _to_response(await service.get_by_request(request_id))


@router.get("/by-number/{contract_number}", response_model=SaleContractResponse)
async def get_by_number(
    contract_number: str,
    service: SaleContractService = Depends(get_sale_contract_service),
):
    return _to_response(await service.get_by_number(contract_number))


@router.get("/{contract_id}", response_model=SaleContractResponse)
async def get_sale_contract(
    contract_id: int,
    service: SaleContractService = Depends(get_sale_contract_service),
):
    return _to_response(await service.get(contract_id))


@router.put("/{contract_id}", response_model=SaleContractResponse)
async def update_sale_contract(
    contract_id: int,
    req: SaleContractUpdateRequest,
    service: SaleContractService = Depends(get_sale_contract_service),
):
    """Overwrite the contract's mutable fields."""
    changes = SaleContractUpdate(
        contract_number=req.contract_number,
        vehicle_price=req.vehicle_price,
        state=req.state,
        signed_file_ref=req.signed_file_ref,
        signed_at=req.signed_at,
    )
    return _to_response(await service.update(contract_id, changes, expected_version=req.version))


@router.post("/{contract_id}/sign", response_model=SaleContractResponse)
async def sign_sale_contract(
    contract_id: int,
    req: SignatureRequest,
    service: SaleContractService = Depends(get_sale_contract_service),
):
    return _to_response(await service.register_signature(contract_id, req.signed_file_ref))
