"""Vehicle sale contract lifecycle: PENDING_SIGNATURE -> SIGNED."""

import logging
from datetime import datetime
from typing import Callable, NoReturn

from sqlalchemy import exists, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import flag_modified

from formalization.data.origination import OriginationClient
from formalization.errors import (
    AlreadyExistsError,
    InvalidStateError,
    NotFoundError,
    PersistenceError,
    StaleVersionError,
)
from formalization.models.contracts import SaleContractDraft, SaleContractUpdate
from formalization.models.db import SaleContractRecord
from formalization.models.pagination import Page
from formalization.models.states import SaleContractState
from formalization.services.base import paginate, transaction, utcnow
from formalization.services.filters import ContractFilters, search_contracts

logger = logging.getLogger(__name__)

ENTITY = "SaleContract"


class SaleContractService:
    def __init__(
        self,
        session: AsyncSession,
        origination: OriginationClient | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session = session
        self.origination = origination
        self.clock = clock

    async def get(self, contract_id: int) -> SaleContractRecord:
        contract = await self.session.get(SaleContractRecord, contract_id)
        if contract is None:
            raise NotFoundError(ENTITY, contract_id)
        return contract

    async def get_by_request(self, request_id: int) -> SaleContractRecord:
        contract = await self.session.scalar(
            select(SaleContractRecord).where(SaleContractRecord.request_id == request_id)
        )
        if contract is None:
            raise NotFoundError(ENTITY, f"request {request_id}")
        return contract

    async def get_by_number(self, contract_number: str) -> SaleContractRecord:
        contract = await self.session.scalar(
            select(SaleContractRecord).where(SaleContractRecord.contract_number == contract_number)
        )
        if contract is None:
            raise NotFoundError(ENTITY, contract_number)
        return contract

    async def exists_for_request(self, request_id: int) -> bool:
        stmt = select(exists().where(SaleContractRecord.request_id == request_id))
        return bool(await self.session.scalar(stmt))

    async def _number_owner(self, contract_number: str) -> int | None:
        return await self.session.scalar(
            select(SaleContractRecord.id).where(SaleContractRecord.contract_number == contract_number)
        )

    async def list_by_state(
        self, state: SaleContractState, page: int = 0, size: int | None = None
    ) -> Page:
        stmt = (
            select(SaleContractRecord)
            .where(SaleContractRecord.state == state)
            .order_by(SaleContractRecord.id)
        )
        return await paginate(self.session, stmt, page, size)

    async def search(
        self, filters: ContractFilters | None = None, page: int = 0, size: int | None = None
    ) -> Page:
        return await search_contracts(
            self.session, SaleContractRecord, filters or ContractFilters(), page, size
        )

    async def _duplicate_error(
        self, request_id: int | None, contract_number: str, contract_id: int | None = None
    ) -> AlreadyExistsError | None:
        """Which business key is already held by another sale contract, if any."""
        if request_id is not None and await self.exists_for_request(request_id):
            return AlreadyExistsError(ENTITY, "request_id", request_id)
        owner = await self._number_owner(contract_number)
        if owner is not None and owner != contract_id:
            return AlreadyExistsError(ENTITY, "contract_number", contract_number)
        return None

    async def _raise_lost_race(
        self,
        error: PersistenceError,
        request_id: int | None,
        contract_number: str,
        contract_id: int | None = None,
    ) -> NoReturn:
        """Turn a unique-key violation from a concurrent writer into AlreadyExistsError."""
        if not isinstance(error.__cause__, IntegrityError):
            raise error
        duplicate = await self._duplicate_error(request_id, contract_number, contract_id)
        if duplicate is None:
            raise error
        logger.warning("Sale contract key %s=%s taken concurrently", duplicate.field, duplicate.value)
        raise duplicate from error

    async def generate(self, draft: SaleContractDraft) -> SaleContractRecord:
        """Persist a new sale contract.

        The origination lookup runs before the DB transaction opens; its
        vehicle price replaces the draft's.
        """
        if self.origination is not None:
            summary = await self.origination.get_summary(draft.request_id)
            if summary is None:
                raise NotFoundError("CreditRequest", draft.request_id)
            draft = draft.with_terms(summary)

        logger.info("Generating sale contract %s for request %s",
                    draft.contract_number, draft.request_id)

        try:
            async with transaction(
                self.session, f"generate sale contract for request {draft.request_id}", ENTITY
            ):
                duplicate = await self._duplicate_error(draft.request_id, draft.contract_number)
                if duplicate is not None:
                    raise duplicate

                contract = SaleContractRecord(
                    request_id=draft.request_id,
                    contract_number=draft.contract_number,
                    generated_at=self.clock(),
                    signed_at=None,
                    vehicle_price=draft.vehicle_price,
                    signed_file_ref=draft.signed_file_ref,
                    state=SaleContractState.PENDING_SIGNATURE,
                )
                self.session.add(contract)
        except PersistenceError as e:
            await self._raise_lost_race(e, draft.request_id, draft.contract_number)

        logger.info("Generated sale contract %s (id %s)", contract.contract_number, contract.id)
        return contract

    async def register_signature(self, contract_id: int, signed_file_ref: str) -> SaleContractRecord:
        async with transaction(
            self.session, f"register signature of sale contract {contract_id}", ENTITY, contract_id
        ):
            contract = await self.get(contract_id)
            if contract.state is not SaleContractState.PENDING_SIGNATURE:
                raise InvalidStateError(
                    ENTITY, contract_id, contract.state.value, SaleContractState.SIGNED.value
                )
            contract.signed_at = self.clock()
            contract.signed_file_ref = signed_file_ref
            contract.state = SaleContractState.SIGNED
        logger.info("Sale contract %s signed", contract_id)
        return contract

    async def update(
        self,
        contract_id: int,
        changes: SaleContractUpdate,
        expected_version: int | None = None,
    ) -> SaleContractRecord:
        """Overwrite every mutable field; no transition guard.

        The version is bumped even when nothing actually changed. Passing
        expected_version rejects the write if someone else got there first.
        """
        try:
            async with transaction(
                self.session, f"update sale contract {contract_id}", ENTITY, contract_id
            ):
                contract = await self.get(contract_id)
                if expected_version is not None and contract.version != expected_version:
                    raise StaleVersionError(ENTITY, contract_id)

                duplicate = await self._duplicate_error(None, changes.contract_number, contract_id)
                if duplicate is not None:
                    raise duplicate

                contract.contract_number = changes.contract_number
                contract.vehicle_price = changes.vehicle_price
                contract.state = changes.state
                contract.signed_file_ref = changes.signed_file_ref
                contract.signed_at = changes.signed_at
                flag_modified(contract, "state")
        except PersistenceError as e:
            await self._raise_lost_race(e, None, changes.contract_number, contract_id)
        logger.info("Sale contract %s updated to version %s", contract_id, contract.version)
        return contract
