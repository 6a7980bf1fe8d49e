"""
FastAPI application entry point.
"""
import logging
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from crm_billing.api import health, subscriptions, payments, plans, clients
from crm_billing.core.config import get_settings
from crm_billing.services.errors import BillingError
from crm_billing.services.scheduler import start_expiry_job, stop_scheduler

app_settings = get_settings()

logging.basicConfig(
    level=getattr(logging, str(app_settings.log_level).upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="CRM Billing API",
    description="Clients, plans, subscriptions and payments for the CRM/HRMS back office",
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=app_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health.router, tags=["health"])
app.include_router(subscriptions.router, prefix="/api/subscriptions", tags=["subscriptions"])
app.include_router(payments.router, prefix="/api/payments", tags=["payments"])
app.include_router(plans.router, prefix="/api/plans", tags=["plans"])
app.include_router(clients.router, prefix="/api/clients", tags=["clients"])


@app.exception_handler(BillingError)
async def billing_error_handler(request: Request, exc: BillingError):
    """Map service errors to their HTTP status with a machine-readable body."""
    logger.debug(f"{request.method} {request.url.path} rejected ({exc.code}): {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.on_event("startup")
async def startup_event():
    """Initialize services on startup."""
    if not app_settings.enable_expiry_scheduler:
        logger.info("Subscription expiry scheduler disabled by configuration")
        return
    try:
        start_expiry_job()
    except Exception as e:
        logger.error(f"Could not start subscription expiry scheduler: {e}", exc_info=True)
        raise


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on shutdown."""
    stop_scheduler()
