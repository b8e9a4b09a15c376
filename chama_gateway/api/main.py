"""FastAPI application factory"""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from chama_gateway.api.middleware import RequestIDMiddleware, MetricsMiddleware
from chama_gateway.api.v1 import loans, payments
from chama_gateway.infrastructure.observability.logging import setup_logging
from chama_gateway.config import settings

# Setup structured logging
setup_logging(settings.log_level)


def describe_validation_errors(errors) -> str:
    """Flatten pydantic errors into one message such as memberId: Field required"""
    messages = []
    for error in errors:
        location = ".".join(str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path"))
        message = error.get("msg", "Invalid value")
        messages.append(f"{location}: {message}" if location else message)
    return "; ".join(messages) or "Invalid request"


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="Chama Gateway",
        description="M-Pesa contribution collection and member loan ledger",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    # Request validation failures share the {"error": ...} shape of domain errors
    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"error": describe_validation_errors(exc.errors())})

    # Health check endpoint
    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Register API routers
    app.include_router(payments.router, prefix="/v1", tags=["payments"])
    app.include_router(loans.router, prefix="/v1", tags=["loans"])

    return app


app = create_app()
