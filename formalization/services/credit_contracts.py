"""Credit contract lifecycle.

PENDING_SIGNATURE -> ACTIVE -> PAID, and CANCELLED from any non-terminal state.

Activation has two independent entry points, both only from
PENDING_SIGNATURE:

* register_signature: the signed document arrives now; it is recorded and the
  contract activates.
* approve_disbursement: the signed document came with the instrumentation
  request; approval activates the contract without a separate signing step.

Whichever runs first wins; the other then fails with InvalidStateError.
"""

import logging
from datetime import datetime
from typing import Callable

from sqlalchemy import exists, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from formalization.data.origination import OriginationClient
from formalization.engine.amortization import AmortizationTable, amortization_table
from formalization.errors import (
    AlreadyExistsError,
    InvalidStateError,
    InvalidTermsError,
    NotFoundError,
    NotSignedError,
    PendingNotesError,
    PersistenceError,
)
from formalization.models.contracts import CreditContractDraft
from formalization.models.db import CreditContractRecord
from formalization.models.pagination import Page
from formalization.models.states import CreditContractState
from formalization.services.base import transaction, utcnow
from formalization.services.filters import ContractFilters, search_contracts
from formalization.services.notes import NoteService
from formalization.services.schedule import ScheduleService

logger = logging.getLogger(__name__)

ENTITY = "CreditContract"


class CreditContractService:
    def __init__(
        self,
        session: AsyncSession,
        origination: OriginationClient | None = None,
        schedule: ScheduleService | None = None,
        notes: NoteService | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session = session
        self.origination = origination
        self.schedule = schedule or ScheduleService(session)
        self.notes = notes or NoteService(session, clock=clock)
        self.clock = clock

    # ---- Lookups ----

    async def get(self, contract_id: int) -> CreditContractRecord:
        contract = await self.session.get(CreditContractRecord, contract_id)
        if contract is None:
            raise NotFoundError(ENTITY, contract_id)
        return contract

    async def get_by_request(self, request_id: int) -> CreditContractRecord:
        contract = await self.session.scalar(
            select(CreditContractRecord).where(CreditContractRecord.request_id == request_id)
        )
        if contract is None:
            raise NotFoundError(ENTITY, f"request {request_id}")
        return contract

    async def get_by_number(self, contract_number: str) -> CreditContractRecord:
        contract = await self.session.scalar(
            select(CreditContractRecord).where(CreditContractRecord.contract_number == contract_number)
        )
        if contract is None:
            raise NotFoundError(ENTITY, contract_number)
        return contract

    async def exists_for_request(self, request_id: int) -> bool:
        stmt = select(exists().where(CreditContractRecord.request_id == request_id))
        return bool(await self.session.scalar(stmt))

    async def _number_taken(self, contract_number: str) -> bool:
        stmt = select(exists().where(CreditContractRecord.contract_number == contract_number))
        return bool(await self.session.scalar(stmt))

    async def _duplicate_error(self, draft: CreditContractDraft) -> AlreadyExistsError | None:
        if await self.exists_for_request(draft.request_id):
            return AlreadyExistsError(ENTITY, "request_id", draft.request_id)
        if await self._number_taken(draft.contract_number):
            return AlreadyExistsError(ENTITY, "contract_number", draft.contract_number)
        return None

    async def search(
        self, filters: ContractFilters | None = None, page: int = 0, size: int | None = None
    ) -> Page:
        return await search_contracts(
            self.session, CreditContractRecord, filters or ContractFilters(), page, size
        )

    async def amortization(self, contract_id: int) -> AmortizationTable:
        """Principal/interest breakdown implied by the contract's terms."""
        contract = await self.get(contract_id)
        try:
            return amortization_table(
                contract.approved_amount, contract.annual_rate, contract.term_months
            )
        except ValueError as e:
            raise InvalidTermsError(contract_id, str(e)) from e

    # ---- Creation ----

    async def instrument(self, draft: CreditContractDraft) -> CreditContractRecord:
        """Create the contract and its full note schedule as one unit.

        When an origination client is configured its approved amount, term and
        rate replace whatever the caller supplied.
        """
        if self.origination is not None:
            summary = await self.origination.get_summary(draft.request_id)
            if summary is None:
                raise NotFoundError("CreditRequest", draft.request_id)
            draft = draft.with_terms(summary)

        logger.info("Instrumenting credit contract %s for request %s",
                    draft.contract_number, draft.request_id)

        try:
            async with transaction(
                self.session, f"instrument credit contract for request {draft.request_id}", ENTITY
            ):
                duplicate = await self._duplicate_error(draft)
                if duplicate is not None:
                    raise duplicate

                contract = CreditContractRecord(
                    request_id=draft.request_id,
                    contract_number=draft.contract_number,
                    generated_at=self.clock(),
                    signed_at=None,
                    approved_amount=draft.approved_amount,
                    term_months=draft.term_months,
                    annual_rate=draft.annual_rate,
                    signed_file_ref=draft.signed_file_ref,
                    state=CreditContractState.PENDING_SIGNATURE,
                )
                self.session.add(contract)
                await self.session.flush()

                notes = await self.schedule.create_notes_for(contract)
        except PersistenceError as e:
            # A concurrent instrument committed between our check and our insert
            if not isinstance(e.__cause__, IntegrityError):
                raise
            duplicate = await self._duplicate_error(draft)
            if duplicate is None:
                raise
            logger.warning("Request %s was instrumented concurrently", draft.request_id)
            raise duplicate from e

        logger.info("Instrumented credit contract %s (id %s) with %d notes",
                    contract.contract_number, contract.id, len(notes))
        return contract

    # ---- Transitions ----

    async def register_signature(self, contract_id: int, signed_file_ref: str) -> CreditContractRecord:
        async with transaction(
            self.session, f"register signature of credit contract {contract_id}", ENTITY, contract_id
        ):
            contract = await self.get(contract_id)
            if contract.state is not CreditContractState.PENDING_SIGNATURE:
                raise InvalidStateError(
                    ENTITY, contract_id, contract.state.value, CreditContractState.ACTIVE.value
                )
            contract.signed_at = self.clock()
            contract.signed_file_ref = signed_file_ref
            contract.state = CreditContractState.ACTIVE
        logger.info("Credit contract %s signed and active", contract_id)
        return contract

    async def approve_disbursement(self, contract_id: int) -> CreditContractRecord:
        async with transaction(
            self.session, f"approve disbursement of credit contract {contract_id}", ENTITY, contract_id
        ):
            contract = await self.get(contract_id)
            if contract.state is not CreditContractState.PENDING_SIGNATURE:
                raise InvalidStateError(
                    ENTITY, contract_id, contract.state.value, CreditContractState.ACTIVE.value
                )
            if not (contract.signed_file_ref or "").strip():
                raise NotSignedError(ENTITY, contract_id)
            contract.state = CreditContractState.ACTIVE
        logger.info("Disbursement approved for credit contract %s", contract_id)
        return contract

    async def mark_paid(self, contract_id: int) -> CreditContractRecord:
        async with transaction(
            self.session, f"mark credit contract {contract_id} paid", ENTITY, contract_id
        ):
            contract = await self.get(contract_id)
            if contract.state is not CreditContractState.ACTIVE:
                raise InvalidStateError(
                    ENTITY, contract_id, contract.state.value, CreditContractState.PAID.value
                )
            open_notes = await self.notes.count_open(contract_id)
            if open_notes:
                raise PendingNotesError(contract_id, open_notes)
            contract.state = CreditContractState.PAID
        logger.info("Credit contract %s paid off", contract_id)
        return contract

    async def cancel(self, contract_id: int, reason: str | None = None) -> CreditContractRecord:
        async with transaction(
            self.session, f"cancel credit contract {contract_id}", ENTITY, contract_id
        ):
            contract = await self.get(contract_id)
            if contract.state.is_terminal:
                raise InvalidStateError(
                    ENTITY, contract_id, contract.state.value, CreditContractState.CANCELLED.value
                )
            contract.state = CreditContractState.CANCELLED
            contract.cancellation_reason = reason
            contract.cancelled_at = self.clock()
        logger.info("Credit contract %s cancelled: %s", contract_id, reason or "no reason given")
        return contract
