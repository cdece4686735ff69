# inklink/main.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy.exc import SQLAlchemyError

import inklink.models  # noqa: F401  registers every table on Base.metadata
from inklink.api.v1.api import api_router
from inklink.core.config import settings
from inklink.core.exceptions import AppError
from inklink.core.limiter import limiter
from inklink.middleware import (
    app_error_handler,
    database_error_handler,
    validation_error_handler,
)
from inklink.services.payment import PaymentProviderFactory

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("InkLink transactions service starting up...")
    # Tests install their own registry before startup
    if getattr(app.state, "payment_providers", None) is None:
        app.state.payment_providers = PaymentProviderFactory.from_settings(settings)
    logger.info(f"Payment processors available: {app.state.payment_providers.list_codes()}")
    yield
    logger.info("InkLink transactions service shutting down...")


app = FastAPI(
    title="InkLink Transactions Service",
    version="1.0.0",
    description="""
        **InkLink Transactions Service**

        Negotiation, scheduling and payment confirmation for the tattoo marketplace.

        ## Features

        * **Tattoo Requests**: Clients describe the tattoo they want
        * **Offers**: Artists and studios respond; accepting one closes the negotiation
        * **Appointments**: Conflict-free booking against an artist's calendar
        * **Payments**: Stripe and PayPal intents, captured or confirmed by webhook
        * **Notifications**: Exactly-once in-app notifications for every transition

        ## Authentication

        All endpoints except webhooks and health checks require a JWT issued by
        the identity gateway via the `Authorization: Bearer <token>` header.
        """,
    lifespan=lifespan,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_exception_handler(AppError, app_error_handler)
app.add_exception_handler(RequestValidationError, validation_error_handler)
app.add_exception_handler(SQLAlchemyError, database_error_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins() or [settings.APP_URL],
    allow_credentials=True,  # Allow cookies and authorization headers
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix="/api/v1")


@app.get("/")
def read_root():
    return {"status": "InkLink transactions service is running"}
