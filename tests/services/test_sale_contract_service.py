from datetime import datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError

from formalization.errors import (
    AlreadyExistsError,
    InvalidStateError,
    NotFoundError,
    StaleVersionError,
)
from formalization.models.contracts import RequestSummary, SaleContractDraft, SaleContractUpdate
from formalization.models.states import SaleContractState
from formalization.services.sale_contracts import SaleContractService


class StubOrigination:
    def __init__(self, summary: RequestSummary | None, session=None):
        self.summary = summary
        self.session = session
        self.calls = 0
        self.in_transaction: list[bool] = []

    async def get_summary(self, request_id: int) -> RequestSummary | None:
        self.calls += 1
        if self.session is not None:
            self.in_transaction.append(self.session.in_transaction())
        return self.summary


class RacingService(SaleContractService):
    """Finds every business key free on its first check, as if another writer
    committed the same keys right after that check."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.checks = 0

    async def _duplicate_error(self, request_id, contract_number, contract_id=None):
        self.checks += 1
        if self.checks == 1:
            return None
        return await super()._duplicate_error(request_id, contract_number, contract_id)


def update_for(contract, **changes) -> SaleContractUpdate:
    fields = {
        "contract_number": contract.contract_number,
        "vehicle_price": contract.vehicle_price,
        "state": contract.state,
        "signed_file_ref": contract.signed_file_ref,
        "signed_at": contract.signed_at,
    }
    fields.update(changes)
    return SaleContractUpdate(**fields)


@pytest.mark.asyncio
async def test_generate(db_session, sale_draft, clock):
    service = SaleContractService(db_session, clock=clock)
    contract = await service.generate(sale_draft)

    assert contract.id is not None
    assert contract.state is SaleContractState.PENDING_SIGNATURE
    assert contract.version == 1
    assert contract.generated_at == clock()
    assert contract.vehicle_price == Decimal("18500.00")


@pytest.mark.asyncio
async def test_duplicate_request_and_number(db_session, sale_draft, clock):
    service = SaleContractService(db_session, clock=clock)
    await service.generate(sale_draft)

    with pytest.raises(AlreadyExistsError) as exc_info:
        await service.generate(SaleContractDraft(sale_draft.request_id, "SC-OTHER", Decimal("1.00")))
    assert exc_info.value.field == "request_id"

    with pytest.raises(AlreadyExistsError) as exc_info:
        await service.generate(SaleContractDraft(9009, sale_draft.contract_number, Decimal("1.00")))
    assert exc_info.value.field == "contract_number"
    assert not await service.exists_for_request(9009)


@pytest.mark.asyncio
async def test_origination_consulted_outside_transaction(db_session, sale_draft, clock):
    summary = RequestSummary(
        request_id=sale_draft.request_id,
        vehicle_price=Decimal("21990.00"),
        approved_amount=Decimal("15000.00"),
        term_months=48,
        annual_rate=Decimal("11.50"),
    )
    origination = StubOrigination(summary, session=db_session)
    service = SaleContractService(db_session, origination=origination, clock=clock)
    await service.generate(sale_draft)

    with pytest.raises(AlreadyExistsError):
        await service.generate(sale_draft)
    assert origination.calls == 2
    assert origination.in_transaction == [False, False]


@pytest.mark.asyncio
async def test_origination_price_overrides_draft(db_session, sale_draft, clock):
    summary = RequestSummary(
        request_id=sale_draft.request_id,
        vehicle_price=Decimal("21990.00"),
        approved_amount=Decimal("15000.00"),
        term_months=48,
        annual_rate=Decimal("11.50"),
    )
    service = SaleContractService(db_session, origination=StubOrigination(summary), clock=clock)
    contract = await service.generate(sale_draft)
    assert contract.vehicle_price == Decimal("21990.00")


@pytest.mark.asyncio
async def test_unknown_request_upstream(db_session, sale_draft, clock):
    service = SaleContractService(db_session, origination=StubOrigination(None), clock=clock)
    with pytest.raises(NotFoundError):
        await service.generate(sale_draft)
    assert not await service.exists_for_request(sale_draft.request_id)


@pytest.mark.asyncio
async def test_register_signature(db_session, sale_draft, clock):
    service = SaleContractService(db_session, clock=clock)
    contract = await service.generate(sale_draft)
    contract_id = contract.id

    signed = await service.register_signature(contract_id, "s3://sales/sc-1.pdf")
    assert signed.state is SaleContractState.SIGNED
    assert signed.signed_at == clock()
    assert signed.version == 2

    with pytest.raises(InvalidStateError) as exc_info:
        await service.register_signature(contract_id, "s3://sales/sc-1-v2.pdf")
    assert exc_info.value.current == "SIGNED"


@pytest.mark.asyncio
async def test_update_overwrites_fields(db_session, sale_draft, clock):
    service = SaleContractService(db_session, clock=clock)
    contract = await service.generate(sale_draft)
    signed_at = datetime(2025, 2, 1, 9, 30, tzinfo=timezone.utc)

    updated = await service.update(contract.id, update_for(
        contract,
        contract_number="SC-2025-0001-R",
        vehicle_price=Decimal("18250.00"),
        state=SaleContractState.SIGNED,
        signed_file_ref="s3://sales/sc-1.pdf",
        signed_at=signed_at,
    ))
    assert updated.contract_number == "SC-2025-0001-R"
    assert updated.vehicle_price == Decimal("18250.00")
    assert updated.state is SaleContractState.SIGNED
    assert updated.signed_at == signed_at
    assert updated.version == 2


@pytest.mark.asyncio
async def test_update_has_no_transition_guard(db_session, sale_draft, clock):
    service = SaleContractService(db_session, clock=clock)
    contract = await service.generate(sale_draft)
    await service.register_signature(contract.id, "s3://sales/sc-1.pdf")

    reverted = await service.update(contract.id, update_for(contract, state=SaleContractState.PENDING_SIGNATURE))
    assert reverted.state is SaleContractState.PENDING_SIGNATURE


@pytest.mark.asyncio
async def test_noop_update_still_bumps_version(db_session, sale_draft, clock):
    service = SaleContractService(db_session, clock=clock)
    contract = await service.generate(sale_draft)

    updated = await service.update(contract.id, update_for(contract))
    assert updated.version == 2


@pytest.mark.asyncio
async def test_update_with_stale_expected_version(db_session, sale_draft, clock):
    service = SaleContractService(db_session, clock=clock)
    contract = await service.generate(sale_draft)
    contract_id = contract.id
    changes = update_for(contract, vehicle_price=Decimal("1.00"))
    await service.update(contract_id, update_for(contract))

    with pytest.raises(StaleVersionError):
        await service.update(contract_id, changes, expected_version=1)
    assert (await service.get(contract_id)).vehicle_price == Decimal("18500.00")


@pytest.mark.asyncio
async def test_update_with_current_expected_version(db_session, sale_draft, clock):
    service = SaleContractService(db_session, clock=clock)
    contract = await service.generate(sale_draft)

    updated = await service.update(
        contract.id, update_for(contract, vehicle_price=Decimal("17999.99")), expected_version=1
    )
    assert updated.vehicle_price == Decimal("17999.99")


@pytest.mark.asyncio
async def test_update_number_collision(db_session, sale_draft, clock):
    service = SaleContractService(db_session, clock=clock)
    first = await service.generate(sale_draft)
    second = await service.generate(SaleContractDraft(2002, "SC-2025-0002", Decimal("9000.00")))
    changes = update_for(second, contract_number=first.contract_number)

    with pytest.raises(AlreadyExistsError):
        await service.update(second.id, changes)


@pytest.mark.asyncio
async def test_update_unknown(db_session, sale_draft, clock):
    service = SaleContractService(db_session, clock=clock)
    changes = SaleContractUpdate("SC-X", Decimal("1.00"), SaleContractState.PENDING_SIGNATURE)
    with pytest.raises(NotFoundError):
        await service.update(31337, changes)


@pytest.mark.asyncio
async def test_lookups_and_listing(db_session, sale_draft, clock):
    service = SaleContractService(db_session, clock=clock)
    first = await service.generate(sale_draft)
    await service.generate(SaleContractDraft(2002, "SC-2025-0002", Decimal("9000.00")))
    await service.register_signature(first.id, "s3://sales/sc-1.pdf")

    assert (await service.get_by_request(1001)).id == first.id
    assert (await service.get_by_number("SC-2025-0001")).id == first.id
    with pytest.raises(NotFoundError):
        await service.get_by_number("SC-MISSING")

    signed = await service.list_by_state(SaleContractState.SIGNED)
    assert [c.id for c in signed.items] == [first.id]
    pending = await service.list_by_state(SaleContractState.PENDING_SIGNATURE)
    assert pending.total == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("request_id,contract_number,field", [
    (1001, "SC-OTHER", "request_id"),
    (2002, "SC-2025-0001", "contract_number"),
])
async def test_lost_generation_race_reports_duplicate(
    session_factory, sale_draft, clock, request_id, contract_number, field
):
    async with session_factory() as first:
        await SaleContractService(first, clock=clock).generate(sale_draft)

    async with session_factory() as second:
        racing = RacingService(second, clock=clock)
        with pytest.raises(AlreadyExistsError) as exc_info:
            await racing.generate(SaleContractDraft(request_id, contract_number, Decimal("1.00")))

        assert exc_info.value.field == field
        assert isinstance(exc_info.value.__cause__.__cause__, IntegrityError)
        assert not await racing.exists_for_request(2002)


@pytest.mark.asyncio
async def test_lost_update_race_reports_duplicate(db_session, sale_draft, clock):
    service = SaleContractService(db_session, clock=clock)
    await service.generate(sale_draft)
    second = await service.generate(SaleContractDraft(2002, "SC-2025-0002", Decimal("9000.00")))
    second_id = second.id
    changes = update_for(second, contract_number=sale_draft.contract_number)

    racing = RacingService(db_session, clock=clock)
    with pytest.raises(AlreadyExistsError) as exc_info:
        await racing.update(second_id, changes)

    assert exc_info.value.field == "contract_number"
    assert (await racing.get(second_id)).contract_number == "SC-2025-0002"
