"""Note (pagaré) lifecycle: payment, overdue sweep and queries.

States: PENDING -> PAID, PENDING -> OVERDUE. PAID is terminal. Payment is
only accepted from PENDING, so an OVERDUE note stays open and keeps blocking
the contract payoff.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Callable

from sqlalchemy import exists, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from formalization.errors import InvalidStateError, NotFoundError
from formalization.models.db import NoteRecord
from formalization.models.pagination import Page
from formalization.models.states import OPEN_NOTE_STATES, NoteState
from formalization.services.base import paginate, transaction, utcnow

logger = logging.getLogger(__name__)

ENTITY = "Note"


class NoteService:
    def __init__(
        self,
        session: AsyncSession,
        today: Callable[[], date] = date.today,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session = session
        self.today = today
        self.clock = clock

    # ---- Lookups ----

    async def get(self, note_id: int) -> NoteRecord:
        note = await self.session.get(NoteRecord, note_id)
        if note is None:
            raise NotFoundError(ENTITY, note_id)
        return note

    async def get_by_installment(self, contract_id: int, installment_number: int) -> NoteRecord:
        note = await self.session.scalar(
            select(NoteRecord).where(
                NoteRecord.credit_contract_id == contract_id,
                NoteRecord.installment_number == installment_number,
            )
        )
        if note is None:
            raise NotFoundError(ENTITY, f"contract {contract_id} installment {installment_number}")
        return note

    async def list_by_contract(self, contract_id: int) -> list[NoteRecord]:
        rows = await self.session.scalars(
            select(NoteRecord)
            .where(NoteRecord.credit_contract_id == contract_id)
            .order_by(NoteRecord.installment_number)
        )
        return list(rows)

    async def list_by_contract_page(
        self, contract_id: int, page: int = 0, size: int | None = None
    ) -> Page:
        stmt = (
            select(NoteRecord)
            .where(NoteRecord.credit_contract_id == contract_id)
            .order_by(NoteRecord.installment_number)
        )
        return await paginate(self.session, stmt, page, size)

    async def list_by_state(self, state: NoteState, page: int = 0, size: int | None = None) -> Page:
        stmt = select(NoteRecord).where(NoteRecord.state == state).order_by(NoteRecord.id)
        return await paginate(self.session, stmt, page, size)

    async def list_overdue(self, as_of: date | None = None) -> list[NoteRecord]:
        """PENDING notes whose due date has passed: what the next sweep would flip."""
        as_of = as_of or self.today()
        rows = await self.session.scalars(
            select(NoteRecord)
            .where(NoteRecord.due_date < as_of, NoteRecord.state == NoteState.PENDING)
            .order_by(NoteRecord.due_date, NoteRecord.id)
        )
        return list(rows)

    async def list_due_within(self, days: int, as_of: date | None = None) -> list[NoteRecord]:
        """PENDING notes falling due between as_of and as_of + days, inclusive.

        Narrower than a plain due-date range: PAID and OVERDUE notes inside
        the window are left out.
        """
        start = as_of or self.today()
        end = start + timedelta(days=days)
        rows = await self.session.scalars(
            select(NoteRecord)
            .where(
                NoteRecord.due_date >= start,
                NoteRecord.due_date <= end,
                NoteRecord.state == NoteState.PENDING,
            )
            .order_by(NoteRecord.due_date, NoteRecord.id)
        )
        return list(rows)

    async def _count(self, contract_id: int, *states: NoteState) -> int:
        count = await self.session.scalar(
            select(func.count())
            .select_from(NoteRecord)
            .where(NoteRecord.credit_contract_id == contract_id, NoteRecord.state.in_(states))
        )
        return count or 0

    async def count_pending(self, contract_id: int) -> int:
        return await self._count(contract_id, NoteState.PENDING)

    async def count_overdue(self, contract_id: int) -> int:
        return await self._count(contract_id, NoteState.OVERDUE)

    async def count_open(self, contract_id: int) -> int:
        """Notes still owed (PENDING or OVERDUE)."""
        return await self._count(contract_id, *OPEN_NOTE_STATES)

    async def exists_for_contract(self, contract_id: int) -> bool:
        stmt = select(exists().where(NoteRecord.credit_contract_id == contract_id))
        return bool(await self.session.scalar(stmt))

    # ---- Transitions ----

    async def register_payment(self, note_id: int) -> NoteRecord:
        async with transaction(self.session, f"register payment of note {note_id}", ENTITY, note_id):
            note = await self.get(note_id)
            if note.state is not NoteState.PENDING:
                raise InvalidStateError(ENTITY, note_id, note.state.value, NoteState.PAID.value)
            note.state = NoteState.PAID
            note.paid_at = self.clock()
        logger.info("Registered payment of note %s (contract %s, installment %s)",
                    note.id, note.credit_contract_id, note.installment_number)
        return note

    async def mark_overdue(self, as_of: date | None = None) -> list[NoteRecord]:
        """Flip every PENDING note due before as_of to OVERDUE.

        Notes already OVERDUE are not selected, so running the sweep twice for
        the same date changes nothing the second time.
        """
        as_of = as_of or self.today()
        async with transaction(self.session, f"mark notes overdue as of {as_of}", ENTITY):
            notes = await self.list_overdue(as_of)
            for note in notes:
                note.state = NoteState.OVERDUE
        logger.info("Marked %d note(s) overdue as of %s", len(notes), as_of)
        return notes
