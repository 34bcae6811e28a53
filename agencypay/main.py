"""AgencyPay commissions - FastAPI entrypoint."""
import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from pymongo.errors import ServerSelectionTimeoutError

from agencypay.config import settings
from agencypay.db import db_shutdown, db_startup
from agencypay.errors import (
    ConcurrentUpdateError,
    InvalidRateError,
    PaymentValidationError,
    ScheduleInvariantError,
)
from agencypay.api import payment_plans, installments, reports, dashboard
from agencypay.api.deps import require_module_permission

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        await db_startup()
    except ServerSelectionTimeoutError as e:
        logger.error("MongoDB is not reachable at %s", settings.mongodb_url)
        raise RuntimeError("MongoDB connection failed. Start MongoDB (e.g. docker compose up -d).") from e
    yield
    await db_shutdown()


app = FastAPI(
    title=settings.app_name,
    description="Payment plans, installment schedules and commission tracking for education agencies",
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": errors},
    )


@app.exception_handler(ScheduleInvariantError)
async def schedule_invariant_handler(request: Request, exc: ScheduleInvariantError):
    content = {"detail": str(exc), "code": "schedule_invariant"}
    if exc.expected is not None:
        content["expected"] = str(exc.expected)
        content["actual"] = str(exc.actual)
    return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content=content)


@app.exception_handler(InvalidRateError)
async def invalid_rate_handler(request: Request, exc: InvalidRateError):
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": str(exc), "code": "invalid_rate", "field": exc.name},
    )


@app.exception_handler(PaymentValidationError)
async def payment_validation_handler(request: Request, exc: PaymentValidationError):
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": str(exc), "code": "invalid_payment", "field": exc.field},
    )


@app.exception_handler(ConcurrentUpdateError)
async def concurrent_update_handler(request: Request, exc: ConcurrentUpdateError):
    logger.error("Commission write-back gave up on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": str(exc)})


app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.cors_origins.split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# API routes
app.include_router(payment_plans.router, prefix="/api/payment-plans", tags=["Payment Plans"], dependencies=[Depends(require_module_permission("payment_plans"))])
app.include_router(installments.router, prefix="/api/installments", tags=["Installments"], dependencies=[Depends(require_module_permission("installments"))])
app.include_router(reports.router, prefix="/api/reports", tags=["Reports"], dependencies=[Depends(require_module_permission("reports"))])
app.include_router(dashboard.router, prefix="/api/dashboard", tags=["Dashboard"], dependencies=[Depends(require_module_permission("dashboard"))])


@app.get("/health")
def health():
    return {"status": "ok", "app": settings.app_name}
