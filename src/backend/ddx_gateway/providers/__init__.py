"""
Diagnostic reasoning providers.

Every provider implements ``Provider.diagnose`` and is registered by name in
the ProviderRegistry at startup.
"""
from ddx_gateway.providers.base import Provider
from ddx_gateway.providers.registry import ProviderRegistry, build_registry

__all__ = ["Provider", "ProviderRegistry", "build_registry"]
