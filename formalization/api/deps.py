"""FastAPI dependency injection."""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from formalization.config import settings
from formalization.data.origination import OriginationClient
from formalization.services.credit_contracts import CreditContractService
from formalization.services.notes import NoteService
from formalization.services.sale_contracts import SaleContractService
from formalization.services.schedule import ScheduleService

engine = create_async_engine(settings.database_url, echo=settings.debug)
async_session = async_sessionmaker(engine, expire_on_commit=False)


async def get_db() -> AsyncSession:
    async with async_session() as session:
        yield session


def get_origination_client() -> OriginationClient | None:
    """None when no origination service is configured; drafts are then taken as given."""
    if not settings.origination_base_url:
        return None
    return OriginationClient()


def get_credit_contract_service(
    db: AsyncSession = Depends(get_db),
    origination: OriginationClient | None = Depends(get_origination_client),
) -> CreditContractService:
    return CreditContractService(db, origination=origination)


def get_sale_contract_service(
    db: AsyncSession = Depends(get_db),
    origination: OriginationClient | None = Depends(get_origination_client),
) -> SaleContractService:
    return SaleContractService(db, origination=origination)


def get_note_service(db: AsyncSession = Depends(get_db)) -> NoteService:
    return NoteService(db)


def get_schedule_service(db: AsyncSession = Depends(get_db)) -> ScheduleService:
    return ScheduleService(db)
