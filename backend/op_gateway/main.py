"""
Open Payments Gateway - FastAPI Application

Backend for the parking app's digital payment: coordinates a cross-currency
Open Payments transfer between the payer's and the payee's wallets through an
interactive grant.
"""
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from typing import Optional
import logging

from .config import settings
from .exceptions import OpenPaymentsError, UpstreamRequestError
from .services import PaymentOrchestrator, build_orchestrator, create_clients
from .api.open_payments import router as open_payments_router
from . import __version__

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown events:
    - Startup: Validate wallet configuration, load keys, build clients and
      the orchestrator (skipped when one was injected)
    - Shutdown: Close the HTTP clients
    """
    logger.info("Starting Open Payments gateway...")
    clients = ()

    if getattr(app.state, "orchestrator", None) is None:
        # ConfigurationError propagates: the process must not start
        sender, receiver = create_clients(settings)
        clients = (sender, receiver)
        app.state.orchestrator = build_orchestrator(settings, sender, receiver)

    logger.info(f"Finish redirect: {settings.finish_redirect_url}")
    logger.info("Server startup complete")

    yield

    logger.info("Shutting down Open Payments gateway...")
    for client in clients:
        try:
            await client.aclose()
        except Exception as e:
            logger.error(f"Error closing Open Payments client: {e}")


def _error_response(status_code: int, error: dict, upstream_status: Optional[int] = None) -> JSONResponse:
    content = {"ok": False, "error": error}
    if upstream_status:
        content["upstreamStatus"] = upstream_status
    return JSONResponse(status_code=status_code, content=content)


def create_app(orchestrator: Optional[PaymentOrchestrator] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        orchestrator: Pre-built orchestrator (tests); when omitted the
            lifespan builds one from settings
    """
    app = FastAPI(
        title="Open Payments Gateway",
        description="Interactive-grant Open Payments transfers for parking fees",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.orchestrator = orchestrator

    # Mobile client and its WebView call the gateway directly
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(OpenPaymentsError)
    async def open_payments_error_handler(request: Request, exc: OpenPaymentsError):
        """
        Render gateway errors in the failure envelope.

        The HTTP status is the upstream status when one is known.
        """
        logger.warning(
            f"{exc.error_code} - {exc.message}",
            extra={"details": exc.details}
        )
        upstream_status = exc.upstream_status if isinstance(exc, UpstreamRequestError) else exc.details.get("upstream_status")
        return _error_response(exc.status_code, exc.to_dict(), upstream_status)

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        """Missing or invalid request fields."""
        logger.warning(f"Validation error: {str(exc)}")
        return _error_response(400, {
            "error_code": "validation_error",
            "message": str(exc),
            "details": {}
        })

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        """Malformed request bodies use the same envelope as other errors."""
        logger.warning(f"Request validation error: {exc.errors()}")
        return _error_response(400, {
            "error_code": "validation_error",
            "message": "Invalid request body",
            "details": {"errors": [str(e.get("msg")) for e in exc.errors()]}
        })

    @app.exception_handler(Exception)
    async def general_error_handler(request: Request, exc: Exception):
        """
        Catch-all handler for unexpected errors.

        Logs full exception for debugging but returns generic message to client.
        """
        logger.error(f"Unexpected error: {str(exc)}", exc_info=True)
        return _error_response(500, {
            "error_code": "internal_error",
            "message": "An unexpected error occurred",
            "details": {"error_type": type(exc).__name__} if settings.expose_diagnostics else {}
        })

    @app.get("/health")
    async def health_check():
        """Liveness for monitoring and load balancers."""
        return {"ok": True, "status": "healthy", "version": __version__}

    app.include_router(open_payments_router, prefix="/op", tags=["Open Payments"])
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "op_gateway.main:app",
        host=settings.host,
        port=settings.port,
        reload=False,
        log_level=settings.log_level.lower()
    )
