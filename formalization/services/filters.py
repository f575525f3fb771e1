"""Combined filters over contract listings.

Each of the eight combinations of (state, contract number, request id) maps to
its own fixed query shape instead of a predicate assembled at runtime, so every
query the listing can issue is visible here. Active filters always AND
together; the contract number is a case-insensitive substring match.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from formalization.models.pagination import Page
from formalization.services.base import paginate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ContractFilters:
    state: Enum | None = None
    contract_number: str | None = None
    request_id: int | None = None

    @property
    def shape(self) -> tuple[bool, bool, bool]:
        return (
            self.state is not None,
            self.contract_number is not None,
            self.request_id is not None,
        )


def _state(model, f: ContractFilters):
    return model.state == f.state


def _number(model, f: ContractFilters):
    return model.contract_number.icontains(f.contract_number, autoescape=True)


def _request(model, f: ContractFilters):
    return model.request_id == f.request_id


# (has_state, has_number, has_request) -> criteria
QUERY_SHAPES: dict[tuple[bool, bool, bool], Callable[[Any, ContractFilters], list]] = {
    (False, False, False): lambda m, f: [],
    (True, False, False): lambda m, f: [_state(m, f)],
    (False, True, False): lambda m, f: [_number(m, f)],
    (False, False, True): lambda m, f: [_request(m, f)],
    (True, True, False): lambda m, f: [_state(m, f), _number(m, f)],
    (True, False, True): lambda m, f: [_state(m, f), _request(m, f)],
    (False, True, True): lambda m, f: [_number(m, f), _request(m, f)],
    (True, True, True): lambda m, f: [_state(m, f), _number(m, f), _request(m, f)],
}


def build_query(model, filters: ContractFilters):
    """Select for the query shape matching the filters that are set."""
    criteria = QUERY_SHAPES[filters.shape](model, filters)
    stmt = select(model)
    if criteria:
        stmt = stmt.where(*criteria)
    return stmt.order_by(model.id)


async def search_contracts(
    session: AsyncSession,
    model,
    filters: ContractFilters,
    page: int = 0,
    size: int | None = None,
) -> Page:
    logger.debug(
        "Searching %s: state=%s number=%s request=%s page=%s size=%s",
        model.__tablename__, filters.state, filters.contract_number, filters.request_id, page, size,
    )
    return await paginate(session, build_query(model, filters), page, size)
