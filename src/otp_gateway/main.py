"""FastAPI application entry point."""

import logging
import re
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from otp_gateway.config import settings
from otp_gateway.database.engine import init_db
from otp_gateway.errors import OtpGatewayError
from otp_gateway.routes.accounts import router as accounts_router
from otp_gateway.routes.billing import router as billing_router
from otp_gateway.routes.deps import mask_key
from otp_gateway.routes.direct import router as direct_router
from otp_gateway.routes.otp import router as otp_router

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)

logger = logging.getLogger(__name__)

_KEY_IN_PATH = re.compile(r"[a-f0-9]{32}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle hook."""
    logger.info("Starting %s …", settings.app_name)
    await init_db()
    logger.info("Database initialised")
    yield
    logger.info("Shutting down %s …", settings.app_name)


app = FastAPI(
    title=settings.app_name,
    description="Multi-tenant one-time passcode issuing and verification API",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(accounts_router)
app.include_router(billing_router)
app.include_router(otp_router)
app.include_router(direct_router)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log each request with any path-embedded API key masked."""
    path = _KEY_IN_PATH.sub(lambda m: mask_key(m.group(0)), request.url.path)
    logger.info("%s %s", request.method, path)
    return await call_next(request)


@app.exception_handler(OtpGatewayError)
async def handle_gateway_error(request: Request, exc: OtpGatewayError) -> JSONResponse:
    """Classified failures → uniform ``{success, message, error}`` envelope."""
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


@app.exception_handler(StarletteHTTPException)
async def handle_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": str(exc.detail)},
    )


@app.exception_handler(RequestValidationError)
async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content={
            "success": False,
            "message": "Invalid request",
            "error": "validation_error",
            "details": [str(e.get("msg")) for e in exc.errors()],
        },
    )


@app.get("/health")
async def health_check():
    """Simple liveness check."""
    return {"status": "healthy", "app": settings.app_name}
