"""
DDx Gateway: FastAPI Backend
"""
import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ddx_gateway.api import diagnose, health
from ddx_gateway.config import GatewayConfig, Settings, build_gateway, mask_secret
from ddx_gateway.errors import BadRequestError, GatewayError

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )


def _log_configuration(settings: Settings, gateway: GatewayConfig) -> None:
    """Log effective configuration (mask secrets)."""
    logger.info(f"=== {settings.app_name} Starting ===")
    logger.info(f"  default_provider  : {gateway.default_provider}")
    logger.info(f"  enabled           : {gateway.registry.list_enabled()} of {len(gateway.registry)} registered")
    logger.info(f"  batch_concurrency : {gateway.batch_concurrency}")
    logger.info(f"  allow_phi         : {gateway.allow_phi}")
    logger.info(f"  isabel_api_key    : {mask_secret(settings.isabel_api_key)} (mock={settings.isabel_mock})")
    logger.info(f"  infermedica_key   : {mask_secret(settings.infermedica_app_key)} (mock={settings.infermedica_mock})")
    logger.info(f"  openai_api_key    : {mask_secret(settings.openai_api_key)}")
    logger.info(f"  openai_model      : {settings.openai_model}")

    for name in gateway.registry.list_enabled():
        if not gateway.registry.resolve(name).is_configured:
            logger.warning(f"Provider '{name}' is enabled but not configured -- its calls will fail!")


def create_app(
    settings: Optional[Settings] = None,
    gateway: Optional[GatewayConfig] = None,
) -> FastAPI:
    """
    Build the ASGI app.

    Settings are read once here; the resulting GatewayConfig lives on
    ``app.state.gateway`` for the lifetime of the process.
    """
    settings = settings or Settings()
    gateway = gateway or build_gateway(settings)

    app = FastAPI(
        title=settings.app_name,
        description="One diagnose contract over local, vendor and generative reasoning providers",
        version="0.1.0",
    )
    app.state.gateway = gateway

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routes
    app.include_router(health.router, tags=["health"])
    app.include_router(diagnose.router, prefix="/ai", tags=["diagnose"])

    @app.exception_handler(GatewayError)
    async def gateway_error_handler(_request: Request, exc: GatewayError):
        if exc.status_code >= 500:
            logger.error(f"{exc.code}: {exc.message} {exc.details}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(_request: Request, exc: RequestValidationError):
        err = BadRequestError.from_validation(exc)
        return JSONResponse(status_code=err.status_code, content=err.to_dict())

    @app.exception_handler(Exception)
    async def unhandled_error_handler(_request: Request, exc: Exception):
        logger.exception(f"Unhandled error: {exc}")
        return JSONResponse(
            status_code=500,
            content={"error": "internal_error", "code": "internal_error", "details": {}},
        )

    @app.on_event("startup")
    async def startup():
        _log_configuration(settings, gateway)

    @app.on_event("shutdown")
    async def shutdown():
        await gateway.registry.aclose()

    return app


def get_app() -> FastAPI:
    """Configure logging from settings, then build the app."""
    settings = Settings()
    configure_logging(settings.log_level)
    return create_app(settings)


app = get_app()
