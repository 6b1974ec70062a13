"""
Provider registry.

Built once at startup from the static provider list and the enabled-set
configuration; read-only afterwards, so concurrent requests share it freely.
"""
from __future__ import annotations

import logging
from types import MappingProxyType
from typing import TYPE_CHECKING, Iterable, List, Mapping

from ddx_gateway.errors import ConfigurationError, ProviderDisabledError, UnknownProviderError
from ddx_gateway.providers.base import Provider

if TYPE_CHECKING:
    from ddx_gateway.config import Settings

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """Immutable name -> provider table plus the enabled subset."""

    def __init__(self, providers: Iterable[Provider], enabled: Iterable[str] = ()):
        table = {}
        for provider in providers:
            if provider.name in table:
                raise ConfigurationError(
                    "duplicate_provider", details={"provider": provider.name}
                )
            table[provider.name] = provider
        self._providers: Mapping[str, Provider] = MappingProxyType(table)

        enabled_set = frozenset(enabled)
        for name in sorted(enabled_set - set(table)):
            logger.warning(f"PROVIDERS_ENABLED names unregistered provider '{name}' (ignored)")
        # An empty allowlist enables everything
        self._enabled = enabled_set

    def __contains__(self, name: object) -> bool:
        return name in self._providers

    def __len__(self) -> int:
        return len(self._providers)

    @property
    def names(self) -> List[str]:
        return list(self._providers)

    @property
    def providers(self) -> Mapping[str, Provider]:
        return self._providers

    def resolve(self, name: str) -> Provider:
        try:
            return self._providers[name]
        except KeyError:
            raise UnknownProviderError(name) from None

    def is_enabled(self, name: str) -> bool:
        if name not in self._providers:
            return False
        return not self._enabled or name in self._enabled

    def list_enabled(self) -> List[str]:
        return [name for name in self._providers if self.is_enabled(name)]

    def require(self, name: str) -> Provider:
        """Resolve ``name`` and insist it is enabled."""
        provider = self.resolve(name)
        if not self.is_enabled(name):
            raise ProviderDisabledError(name)
        return provider

    async def aclose(self) -> None:
        for provider in self._providers.values():
            await provider.aclose()


def build_registry(settings: "Settings") -> ProviderRegistry:
    """Instantiate the built-in providers from settings."""
    from ddx_gateway.config import infermedica_endpoint, isabel_endpoint
    from ddx_gateway.providers.infermedica import InfermedicaProvider
    from ddx_gateway.providers.isabel import IsabelProvider
    from ddx_gateway.providers.local_rules import LocalRulesProvider
    from ddx_gateway.providers.openai_chat import OpenAIChatProvider

    policy = settings.retry_policy()
    providers: List[Provider] = [
        LocalRulesProvider(),
        IsabelProvider(isabel_endpoint(settings), retry_policy=policy),
        InfermedicaProvider(
            infermedica_endpoint(settings),
            app_id=settings.infermedica_app_id,
            retry_policy=policy,
        ),
        OpenAIChatProvider(
            api_key=settings.openai_api_key,
            default_model=settings.openai_model,
            base_url=settings.openai_base,
            timeout=settings.provider_timeout_seconds,
            retry_policy=policy,
        ),
    ]
    return ProviderRegistry(providers, enabled=settings.enabled_providers)
