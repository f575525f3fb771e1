"""FastAPI application entry point."""

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from formalization.api.routes import credit_contracts, notes, sale_contracts
from formalization.config import settings
from formalization.errors import (
    AlreadyExistsError,
    FormalizationError,
    InvalidStateError,
    InvalidTermsError,
    NotFoundError,
    NotSignedError,
    OriginationError,
    PendingNotesError,
    PersistenceError,
    ScheduleConflictError,
    StaleVersionError,
)

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Most specific first; anything else derived from FormalizationError is a 500.
ERROR_STATUS: list[tuple[type[FormalizationError], int]] = [
    (NotFoundError, 404),
    (AlreadyExistsError, 400),
    (InvalidTermsError, 400),
    (InvalidStateError, 409),
    (NotSignedError, 409),
    (PendingNotesError, 409),
    (ScheduleConflictError, 409),
    (StaleVersionError, 409),
    (OriginationError, 502),
    (PersistenceError, 500),
]


def status_for(exc: FormalizationError) -> int:
    for error_type, status in ERROR_STATUS:
        if isinstance(exc, error_type):
            return status
    return 500


app = FastAPI(
    title="Credit Formalization",
    description="Vehicle credit contracts, promissory note schedules and sale contracts",
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(credit_contracts.router)
app.include_router(notes.router)
app.include_router(sale_contracts.router)


@app.exception_handler(FormalizationError)
async def formalization_error_handler(request: Request, exc: FormalizationError):
    status = status_for(exc)
    if status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.info("%s %s rejected (%d): %s", request.method, request.url.path, status, exc.message)
    return JSONResponse(status_code=status, content={"detail": exc.message, "error": exc.to_dict()})


@app.get("/health")
async def health():
    return {"status": "ok"}
