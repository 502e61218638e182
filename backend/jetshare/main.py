"""
JetShare Backend - FastAPI Application

Private-jet cost sharing: offers, matching, payments through card or crypto
providers, and tickets once a share is paid.
"""
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging

from .config import settings
from .exceptions import JetShareError
from .db.init_db import initialize_database
from .api.offers import router as offers_router
from .api.tickets import router as tickets_router
from .api.webhooks import router as webhooks_router
from .api.concierge import router as concierge_router


# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create the schema on startup; nothing to release on shutdown."""
    card = "stripe" if settings.stripe_secret_key and not settings.demo_mode else "mockpay"
    crypto = "coinbase" if settings.coinbase_api_key and not settings.demo_mode else "mockpay"
    logger.info(f"JetShare starting (demo_mode={settings.demo_mode}, card={card}, crypto={crypto})")

    initialize_database()

    yield

    logger.info("JetShare stopped")


app = FastAPI(
    title="JetShare API",
    description="Private jet flight cost sharing",
    version="0.1.0",
    lifespan=lifespan,
)


app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(JetShareError)
async def jetshare_error_handler(request: Request, exc: JetShareError):
    """
    Render JetShare errors as {"error_code", "message", "details"} with the
    status carried by the exception class.
    """
    if exc.status_code >= 500:
        logger.error(f"{exc.error_code}: {exc.message}", extra={"details": exc.details})
    else:
        logger.warning(f"{exc.error_code}: {exc.message}", extra={"details": exc.details})

    return JSONResponse(
        status_code=exc.status_code,
        content=jsonable_encoder(exc.to_dict()),
    )


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies and parameters, in the same error format."""
    logger.warning(f"Request validation error on {request.url.path}")

    return JSONResponse(
        status_code=400,
        content={
            "error_code": "validation_error",
            "message": "Invalid request",
            "details": {"errors": jsonable_encoder(exc.errors())}
        },
    )


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    # Store and library errors never reach the client verbatim
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=True)

    return JSONResponse(
        status_code=500,
        content={
            "error_code": "internal_error",
            "message": "Something went wrong on our side",
            "details": {},
        },
    )


@app.get("/api/health")
async def health_check():
    return {
        "status": "healthy",
        "version": app.version,
        "demo_mode": settings.demo_mode,
        "payments": {
            "card": settings.allow_card_payments,
            "crypto": settings.allow_crypto_payments,
            "handling_fee_percentage": settings.handling_fee_percentage,
        },
    }


app.include_router(offers_router, prefix="/api", tags=["Offers"])
app.include_router(tickets_router, prefix="/api", tags=["Tickets"])
app.include_router(concierge_router, prefix="/api", tags=["Concierge"])
app.include_router(webhooks_router, prefix="/webhooks", tags=["Webhooks"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "jetshare.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.demo_mode,
        log_level=settings.log_level.lower()
    )
