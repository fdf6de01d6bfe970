import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from carrier_ledger.core.config import settings
from carrier_ledger.core.errors import SettlementError
from carrier_ledger.routers import (
    carrier_accounts,
    carriers,
    dispatch_sessions,
    orders,
    settlements,
)

logger = logging.getLogger(__name__)

OPENAPI_TAGS = [
    {"name": "Carriers", "description": "Manage carriers and their delivery rates."},
    {"name": "Orders", "description": "Create orders, record delivery outcomes and status changes."},
    {"name": "Dispatch Sessions", "description": "Hand order batches to carriers and import outcomes."},
    {"name": "Settlements", "description": "Reconcile deliveries and record carrier payments."},
    {"name": "Carrier Accounts", "description": "Carrier ledger balances, movements and repairs."},
]

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.version,
    description=(
        "Carrier settlement and account reconciliation API. "
        "Dispatch orders to carriers, record delivery outcomes, compute "
        "settlements and track what each carrier owes the store."
    ),
    openapi_tags=OPENAPI_TAGS,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Total-Count"],
)


@app.exception_handler(SettlementError)
async def settlement_error_handler(request: Request, exc: SettlementError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.to_dict()})


app.include_router(carriers.router, prefix="/v1/carriers", tags=["Carriers"])
app.include_router(orders.router, prefix="/v1/orders", tags=["Orders"])
app.include_router(
    dispatch_sessions.router,
    prefix="/v1/dispatch_sessions",
    tags=["Dispatch Sessions"],
)
app.include_router(settlements.router, prefix="/v1/settlements", tags=["Settlements"])
app.include_router(
    carrier_accounts.router,
    prefix="/v1/carrier_accounts",
    tags=["Carrier Accounts"],
)


@app.get("/")
async def root() -> dict[str, str]:
    return {
        "app": settings.APP_NAME,
        "version": settings.version,
        "status": "running",
    }
