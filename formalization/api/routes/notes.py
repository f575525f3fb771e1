"""Note routes: schedules, payments and the overdue sweep."""

from datetime import date

from fastapi import APIRouter, Depends, Query

from formalization.api.deps import get_note_service, get_schedule_service
from formalization.api.schemas import (
    NoteCountsResponse,
    NoteResponse,
    NoteScheduleRequest,
    PageResponse,
    to_page_response,
)
from formalization.config import settings
from formalization.models.states import NoteState
from formalization.services.notes import NoteService
from formalization.services.schedule import ScheduleService

router = APIRouter(prefix="/api/v1/notes", tags=["notes"])


def _to_response(note) -> NoteResponse:
    return NoteResponse.model_validate(note, from_attributes=True)


@router.post("/schedule", response_model=list[NoteResponse], status_code=201)
async def generate_schedule(
    req: NoteScheduleRequest,
    schedule: ScheduleService = Depends(get_schedule_service),
):
    """Generate the full schedule of an existing contract from explicit terms."""
    notes = await schedule.generate(
        req.credit_contract_id,
        req.principal,
        req.annual_rate,
        req.term_months,
        req.start_date,
        adjust_weekends=req.adjust_weekends,
    )
    return [_to_response(n) for n in notes]


@router.post("/mark-overdue", response_model=list[NoteResponse])
async def mark_overdue(
    as_of: date | None = None,
    service: NoteService = Depends(get_note_service),
):
    """Flip PENDING notes due before as_of (default today) to OVERDUE."""
    return [_to_response(n) for n in await service.mark_overdue(as_of)]


@router.get("/overdue", response_model=list[NoteResponse])
async def list_overdue(
    as_of: date | None = None,
    service: NoteService = Depends(get_note_service),
):
    """PENDING notes already past due that the next sweep would flip."""
    return [_to_response(n) for n in await service.list_overdue(as_of)]


@router.get("/due-soon", response_model=list[NoteResponse])
async def list_due_soon(
    days: int | None = Query(None, ge=0),
    as_of: date | None = None,
    service: NoteService = Depends(get_note_service),
):
    days = settings.due_soon_days if days is None else days
    return [_to_response(n) for n in await service.list_due_within(days, as_of)]


@router.get("/by-state/{state}", response_model=PageResponse[NoteResponse])
async def list_by_state(
    state: NoteState,
    page: int = Query(0, ge=0),
    size: int | None = Query(None, ge=1),
    service: NoteService = Depends(get_note_service),
):
    return to_page_response(await service.list_by_state(state, page, size), NoteResponse)


@router.get("/by-contract/{contract_id}", response_model=PageResponse[NoteResponse])
async def list_by_contract(
    contract_id: int,
    page: int = Query(0, ge=0),
    size: int | None = Query(None, ge=1),
    service: NoteService = Depends(get_note_service),
):
    return to_page_response(await service.list_by_contract_page(contract_id, page, size), NoteResponse)


@router.get(
    "/by-contract/{contract_id}/installment/{installment_number}",
    response_model=NoteResponse,
)
async def get_by_installment(
    contract_id: int,
    installment_number: int,
    service: NoteService = Depends(get_note_service),
):
    return _to_response(await service.get_by_installment(contract_id, installment_number))


@router.get("/counts/{contract_id}", response_model=NoteCountsResponse)
async def note_counts(
    contract_id: int,
    service: NoteService = Depends(get_note_service),
):
    return NoteCountsResponse(
        credit_contract_id=contract_id,
        pending=await service.count_pending(contract_id),
        overdue=await service.count_overdue(contract_id),
        open=await service.count_open(contract_id),
    )


@router.get("/{note_id}", response_model=NoteResponse)
async def get_note(
    note_id: int,
    service: NoteService = Depends(get_note_service),
):
    return _to_response(await service.get(note_id))


@router.post("/{note_id}/pay", response_model=NoteResponse)
async def pay_note(
    note_id: int,
    service: NoteService = Depends(get_note_service),
):
    """Register payment of a PENDING note; OVERDUE and PAID notes are rejected."""
    return _to_response(await service.register_payment(note_id))
