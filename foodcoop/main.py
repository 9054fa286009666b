from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from foodcoop.api.routes_orders import router as orders_router
from foodcoop.core.config import get_settings
from foodcoop.core.errors import (
    ConcurrencyConflictError,
    InvoiceMissingError,
    NotFoundError,
    OrderStateError,
)
from foodcoop.core.logging import configure_logging
from foodcoop.persistence.pg import init_db

configure_logging()
logger = logging.getLogger(__name__)
settings = get_settings()

app = FastAPI(title=settings.app_name)


@app.on_event("startup")
def on_startup() -> None:
    init_db()
    logger.info("database ready: %s", settings.database_url.split("://", 1)[0])


@app.exception_handler(NotFoundError)
async def not_found_handler(_: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc), "error": "not_found"})


@app.exception_handler(OrderStateError)
async def order_state_handler(_: Request, exc: OrderStateError):
    return JSONResponse(status_code=409, content={"detail": str(exc), "error": "order_state"})


@app.exception_handler(InvoiceMissingError)
async def invoice_missing_handler(_: Request, exc: InvoiceMissingError):
    return JSONResponse(status_code=409, content={"detail": str(exc), "error": "invoice_missing"})


@app.exception_handler(ConcurrencyConflictError)
async def concurrency_conflict_handler(_: Request, exc: ConcurrencyConflictError):
    return JSONResponse(
        status_code=409,
        content={"detail": str(exc), "error": "concurrency_conflict", "retryable": exc.retryable},
    )


@app.get("/healthz")
def healthz() -> dict:
    return {"status": "ok", "env": settings.env}


app.include_router(orders_router)
