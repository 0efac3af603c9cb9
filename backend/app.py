"""
Geoshutoff Backend Application

FastAPI application: location checks, manual control and device state.
"""

import os
import sys
import traceback
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

import log_config  # noqa: F401
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

# Add core to Python path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

# Import API router
import api
from api import router as api_router

from core.geoshutoff.exceptions import (
    ComputationAnomalyError,
    ConfigurationError,
    DispatchFailure,
    GeoshutoffError,
    InvalidInputError,
    VendorConnectionError,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan manager for startup/shutdown."""
    # Startup
    logger.info("Geoshutoff starting")

    # Log registered routes
    routes = [
        f"{getattr(route, 'path', '?')} - {getattr(route, 'methods', ['MOUNT'])}"
        for route in app.routes
    ]
    logger.info(f"Registered routes: {routes}")

    if api.services is None:
        logger.warning(f"⚠️ Geofence control disabled until configured: {api.config_error}")
    else:
        logger.info(f"📍 Geofence control enabled ({api.services.settings.trigger_distance}m)")

    yield

    # Shutdown
    logger.info("Geoshutoff shutting down")
    if api.services is not None:
        api.services.client.session.close()


# Create FastAPI application
app = FastAPI(
    title="Geoshutoff API",
    description="Switches the air conditioner off when you leave home",
    version=api.VERSION,
    lifespan=lifespan,
)


def error_response(
    status_code: int,
    message: str,
    exc: Optional[Exception] = None,
    details=None,
    error_type: Optional[str] = None,
) -> JSONResponse:
    """Uniform error body: {success: false, error: {...}}."""
    error = {
        "message": message,
        "code": status_code,
        "type": error_type or (type(exc).__name__ if exc else "error"),
        "attempted": bool(getattr(exc, "attempted", False)),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if details is not None:
        error["details"] = details
    return JSONResponse(status_code=status_code, content={"success": False, "error": error})


def describe_dispatch_failure(exc: DispatchFailure) -> tuple[int, str, Optional[str]]:
    """Map a failed vendor call to (HTTP status, message, details)."""
    status = exc.http_status
    if status is None:
        if exc.timed_out:
            return 504, "SwitchBot API timed out", exc.vendor_message
        return 503, "Cannot reach SwitchBot API", exc.vendor_message

    known = {
        401: ("SwitchBot API authentication failed", "Check SWITCHBOT_TOKEN and SWITCHBOT_SECRET"),
        403: ("SwitchBot API access denied", "Check access rights for the device"),
        404: ("Device not found", "Check AIRCON_DEVICE_ID"),
        429: ("SwitchBot API rate limit reached", "Wait before retrying (10,000 requests/day)"),
    }
    if status in known:
        message, hint = known[status]
        return status, message, exc.vendor_message or hint
    if status >= 500:
        return 502, "SwitchBot API server error", exc.vendor_message
    return 502, f"SwitchBot API error ({status})", exc.vendor_message


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    logger.warning(f"Invalid request to {request.url.path}: {exc.errors()}")
    return error_response(400, "Invalid request body", exc, details=str(exc.errors()), error_type="invalid_input")


@app.exception_handler(InvalidInputError)
async def invalid_input_handler(request: Request, exc: InvalidInputError):
    logger.warning(f"Invalid input on {request.url.path}: {exc}")
    return error_response(400, str(exc), exc, error_type="invalid_input")


@app.exception_handler(ComputationAnomalyError)
async def computation_anomaly_handler(request: Request, exc: ComputationAnomalyError):
    logger.error(f"Distance computation anomaly: {exc}")
    return error_response(422, "Location processing error", exc, details=str(exc), error_type="computation_anomaly")


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError):
    logger.error(f"Configuration error on {request.url.path}: {exc}")
    return error_response(
        500,
        "Configuration error",
        exc,
        details={"reason": str(exc), "missing": exc.missing},
        error_type="configuration_error",
    )


@app.exception_handler(DispatchFailure)
async def dispatch_failure_handler(request: Request, exc: DispatchFailure):
    status, message, details = describe_dispatch_failure(exc)
    logger.error(f"Dispatch failure on {request.url.path}: {exc} (vendor: {exc.vendor_message})")
    return error_response(status, message, exc, details=details, error_type="transport_failure")


@app.exception_handler(VendorConnectionError)
async def vendor_connection_handler(request: Request, exc: VendorConnectionError):
    logger.error(f"SwitchBot API unreachable: {exc}")
    status = 504 if exc.timed_out else 503
    return error_response(status, "Cannot reach SwitchBot API", exc, details=str(exc), error_type="transport_failure")


@app.exception_handler(GeoshutoffError)
async def geoshutoff_error_handler(request: Request, exc: GeoshutoffError):
    logger.error(f"Unhandled Geoshutoff error: {exc}")
    return error_response(500, str(exc), exc)


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Handle all unhandled exceptions gracefully."""
    tb_str = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))

    logger.error(f"Unhandled exception: {exc}")
    logger.error(f"Request path: {request.url.path}")
    logger.error(f"Stack trace:\n{tb_str}")

    return error_response(500, "Internal server error", exc, details=str(exc))


# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # TODO: Restrict to the tracker app's origin once it has a fixed host
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)

# Include API router
app.include_router(api_router)


# For development
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8080)
