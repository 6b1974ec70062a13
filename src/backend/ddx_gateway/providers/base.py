"""
Provider contract.

A provider turns a DiagnosticCase into a CanonicalResult or raises a
GatewayError. Local and remote engines implement the same interface and are
interchangeable behind the registry.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from ddx_gateway.models.schemas import CanonicalResult, DiagnoseOptions, DiagnosticCase


class Provider(ABC):
    """Base class for diagnostic reasoning providers."""

    name: str = ""

    @abstractmethod
    async def diagnose(
        self, case: DiagnosticCase, options: Optional[DiagnoseOptions] = None
    ) -> CanonicalResult:
        ...

    @property
    def is_configured(self) -> bool:
        """Whether the provider has what it needs to serve a request."""
        return True

    @property
    def is_mock(self) -> bool:
        return False

    async def aclose(self) -> None:
        """Release network resources. No-op for providers without any."""
        return None

    def __repr__(self) -> str:
        return f"<{type(self).__name__} name={self.name!r}>"
