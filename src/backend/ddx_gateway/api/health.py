"""Health check and provider listing endpoints."""
import logging

from fastapi import APIRouter, Depends

from ddx_gateway.api.deps import get_gateway
from ddx_gateway.config import GatewayConfig
from ddx_gateway.models.schemas import HealthResponse, ProvidersResponse

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health_check(gateway: GatewayConfig = Depends(get_gateway)):
    return HealthResponse(ok=True, provider_default=gateway.default_provider)


@router.get("/health/config")
async def config_check(gateway: GatewayConfig = Depends(get_gateway)):
    """Diagnostic endpoint: shows which providers are usable (no secrets)."""
    registry = gateway.registry
    return {
        "provider_default": gateway.default_provider,
        "batch_concurrency": gateway.batch_concurrency,
        "allow_phi": gateway.allow_phi,
        "providers": {
            name: {
                "enabled": registry.is_enabled(name),
                "configured": provider.is_configured,
                "mock": provider.is_mock,
            }
            for name, provider in registry.providers.items()
        },
    }


@router.get("/ai/providers", response_model=ProvidersResponse)
async def list_providers(gateway: GatewayConfig = Depends(get_gateway)):
    return ProvidersResponse(
        default=gateway.default_provider,
        enabled=gateway.registry.list_enabled(),
    )
