from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from dotenv import load_dotenv
load_dotenv()

from tailfire.config import settings
from tailfire.logging_config import setup_logging
from tailfire.infra.db import engine
from tailfire.infra.models import Base

from tailfire.api.routers.health import router as health_router
from tailfire.api.routers.payment_templates import router as payment_templates_router
from tailfire.api.routers.payment_schedules import router as payment_schedules_router
from tailfire.api.routers.payment_transactions import router as payment_transactions_router
from tailfire.api.routers.payment_audit import router as payment_audit_router

setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


app = FastAPI(title="Tailfire Payments API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["*"],
)

logger.info("CORS allow_origins = %s", settings.allowed_origins)


@app.on_event("startup")
def _startup() -> None:
    logger.info("Creating tables...")
    Base.metadata.create_all(bind=engine)
    logger.info("Tables created/checked")


app.include_router(health_router, tags=["health"])
app.include_router(payment_templates_router, prefix="/payment-templates", tags=["payment-templates"])
app.include_router(payment_schedules_router, prefix="/payment-schedules", tags=["payment-schedules"])
app.include_router(payment_transactions_router, prefix="/payment-transactions", tags=["payment-transactions"])
app.include_router(payment_audit_router, prefix="/payment-audit", tags=["payment-audit"])
