"""
Application configuration via environment variables.

Settings are read once at startup. ``build_gateway`` turns them into the
immutable GatewayConfig that routes and the batch dispatcher receive; nothing
re-reads the environment per request.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings

from ddx_gateway.errors import ConfigurationError
from ddx_gateway.services.retry import RetryPolicy

if TYPE_CHECKING:
    from ddx_gateway.providers.registry import ProviderRegistry

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment / .env file."""

    # App
    app_name: str = "DDx Gateway"
    host: str = "0.0.0.0"
    port: int = 8888
    log_level: str = "INFO"
    cors_origins: List[str] = ["*"]

    # Providers
    default_provider: str = "local_rules"
    providers_enabled: str = ""  # comma-separated; empty = all registered
    batch_concurrency: int = Field(3, ge=1)
    allow_phi: bool = False

    # Upstream calls
    provider_timeout_seconds: float = 30.0
    retry_max_retries: int = Field(2, ge=0)
    retry_base_delay: float = 1.0
    retry_max_jitter: float = 0.2

    # Isabel
    isabel_api_key: str = ""
    isabel_base: str = "https://api.isabelhealthcare.com"
    isabel_ddx_path: str = "/ddx/companion"
    isabel_auth_header: str = "Authorization"
    isabel_auth_prefix: str = "Bearer"
    isabel_mock: bool = False
    isabel_debug: bool = False

    # Infermedica
    infermedica_app_id: str = ""
    infermedica_app_key: str = ""
    infermedica_base: str = "https://api.infermedica.com/v3"
    infermedica_diagnosis_path: str = "/diagnosis"
    infermedica_auth_header: str = "App-Key"
    infermedica_auth_prefix: str = ""
    infermedica_mock: bool = False
    infermedica_debug: bool = False

    # OpenAI-compatible generative backend
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    openai_base: str = "https://api.openai.com/v1"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @property
    def enabled_providers(self) -> List[str]:
        return [p.strip() for p in self.providers_enabled.split(",") if p.strip()]

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_retries=self.retry_max_retries,
            base_delay=self.retry_base_delay,
            max_jitter=self.retry_max_jitter,
        )


@dataclass(frozen=True)
class VendorEndpoint:
    """Connection details for one HTTP vendor, resolved from Settings."""
    name: str
    base_url: str
    path: str
    api_key: str = ""
    auth_header: str = "Authorization"
    auth_prefix: str = "Bearer"
    mock: bool = False
    debug: bool = False
    timeout: float = 30.0

    @property
    def url(self) -> str:
        path = "/" + self.path.lstrip("/")
        return self.base_url.rstrip("/") + path

    def auth_headers(self) -> dict:
        value = f"{self.auth_prefix} {self.api_key}" if self.auth_prefix else self.api_key
        return {self.auth_header: value}


def isabel_endpoint(settings: Settings) -> VendorEndpoint:
    return VendorEndpoint(
        name="isabel",
        base_url=settings.isabel_base,
        path=settings.isabel_ddx_path,
        api_key=settings.isabel_api_key,
        auth_header=settings.isabel_auth_header,
        auth_prefix=settings.isabel_auth_prefix,
        mock=settings.isabel_mock,
        debug=settings.isabel_debug,
        timeout=settings.provider_timeout_seconds,
    )


def infermedica_endpoint(settings: Settings) -> VendorEndpoint:
    return VendorEndpoint(
        name="infermedica",
        base_url=settings.infermedica_base,
        path=settings.infermedica_diagnosis_path,
        api_key=settings.infermedica_app_key,
        auth_header=settings.infermedica_auth_header,
        auth_prefix=settings.infermedica_auth_prefix,
        mock=settings.infermedica_mock,
        debug=settings.infermedica_debug,
        timeout=settings.provider_timeout_seconds,
    )


@dataclass(frozen=True)
class GatewayConfig:
    """Everything a request handler needs, fixed at startup."""
    registry: "ProviderRegistry"
    default_provider: str
    batch_concurrency: int = 3
    allow_phi: bool = False


def mask_secret(val: str) -> str:
    if not val:
        return "(empty)"
    if len(val) <= 8:
        return "***"
    return val[:4] + "..." + val[-4:]


def build_gateway(settings: Optional[Settings] = None) -> GatewayConfig:
    """Instantiate every provider and freeze the result into a GatewayConfig."""
    from ddx_gateway.providers.registry import build_registry

    settings = settings or Settings()
    registry = build_registry(settings)

    if settings.default_provider not in registry:
        raise ConfigurationError(
            "default_provider_unknown",
            details={"provider": settings.default_provider, "registered": registry.names},
        )
    if not registry.is_enabled(settings.default_provider):
        logger.warning(
            f"Default provider '{settings.default_provider}' is not in PROVIDERS_ENABLED; "
            "requests without an explicit provider will be rejected"
        )

    return GatewayConfig(
        registry=registry,
        default_provider=settings.default_provider,
        batch_concurrency=settings.batch_concurrency,
        allow_phi=settings.allow_phi,
    )
