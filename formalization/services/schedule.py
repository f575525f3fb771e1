"""Note schedule generation for credit contracts.

Two entry points produce the same kind of schedule: one from explicit
parameters and one from a stored contract's terms. They differ only in the
start date and the weekend policy each applies by default.
"""

import logging
from datetime import date
from decimal import Decimal

from sqlalchemy import exists, select
from sqlalchemy.ext.asyncio import AsyncSession

from formalization.config import settings
from formalization.engine.amortization import build_schedule, first_due_date
from formalization.errors import InvalidTermsError, NotFoundError, ScheduleConflictError
from formalization.models.db import CreditContractRecord, NoteRecord
from formalization.models.states import NoteState
from formalization.services.base import transaction

logger = logging.getLogger(__name__)


class ScheduleService:
    def __init__(self, session: AsyncSession, absorb_remainder: bool | None = None):
        self.session = session
        self.absorb_remainder = (
            settings.absorb_rounding_remainder if absorb_remainder is None else absorb_remainder
        )

    async def has_notes(self, contract_id: int) -> bool:
        stmt = select(exists().where(NoteRecord.credit_contract_id == contract_id))
        return bool(await self.session.scalar(stmt))

    async def _require_contract(self, contract_id: int) -> CreditContractRecord:
        contract = await self.session.get(CreditContractRecord, contract_id)
        if contract is None:
            raise NotFoundError("CreditContract", contract_id)
        return contract

    async def create_notes(
        self,
        contract_id: int,
        principal: Decimal,
        annual_rate: Decimal | None,
        term_months: int,
        start_date: date,
        adjust_weekends: bool,
    ) -> list[NoteRecord]:
        """Stage one PENDING note per installment in the current transaction.

        Does not commit: callers own the transaction so the notes land
        together with whatever else the caller is writing, or not at all.
        """
        if await self.has_notes(contract_id):
            raise ScheduleConflictError(contract_id)

        try:
            drafts = build_schedule(
                principal,
                annual_rate,
                term_months,
                start_date,
                adjust_weekends=adjust_weekends,
                absorb_remainder=self.absorb_remainder,
            )
        except ValueError as e:
            raise InvalidTermsError(contract_id, str(e)) from e

        notes = [
            NoteRecord(
                credit_contract_id=contract_id,
                installment_number=draft.installment_number,
                amount=draft.amount,
                due_date=draft.due_date,
                state=NoteState.PENDING,
            )
            for draft in drafts
        ]
        self.session.add_all(notes)
        await self.session.flush()

        logger.info(
            "Staged %d notes of %s for credit contract %s (first due %s)",
            len(notes), drafts[0].amount, contract_id, drafts[0].due_date,
        )
        return notes

    async def create_notes_for(
        self, contract: CreditContractRecord, adjust_weekends: bool | None = None
    ) -> list[NoteRecord]:
        """Stage the schedule implied by a stored contract's own terms."""
        if adjust_weekends is None:
            adjust_weekends = settings.adjust_weekends_on_instrument
        return await self.create_notes(
            contract.id,
            contract.approved_amount,
            contract.annual_rate,
            contract.term_months,
            first_due_date(contract.generated_at.date()),
            adjust_weekends,
        )

    async def generate(
        self,
        contract_id: int,
        principal: Decimal,
        annual_rate: Decimal | None,
        term_months: int,
        start_date: date,
        adjust_weekends: bool | None = None,
    ) -> list[NoteRecord]:
        """Generate a schedule from explicit parameters; first note due on start_date."""
        if adjust_weekends is None:
            adjust_weekends = settings.adjust_weekends_manual

        async with transaction(
            self.session, f"generate notes for credit contract {contract_id}",
            "CreditContract", contract_id,
        ):
            await self._require_contract(contract_id)
            notes = await self.create_notes(
                contract_id, principal, annual_rate, term_months, start_date, adjust_weekends
            )
        return notes

    async def generate_for_contract(self, contract_id: int) -> list[NoteRecord]:
        """Generate a schedule from the contract's approved amount, rate and term."""
        async with transaction(
            self.session, f"generate notes for credit contract {contract_id}",
            "CreditContract", contract_id,
        ):
            contract = await self._require_contract(contract_id)
            notes = await self.create_notes_for(contract)
        return notes
