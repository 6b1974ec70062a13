"""
Pytest Configuration and Fixtures

Shared fixtures for gateway tests: a scriptable fake provider, a recording
sleep for backoff, and settings isolated from any local .env file.
"""
import asyncio
from typing import Dict, List, Optional

import pytest

from ddx_gateway.config import GatewayConfig, Settings
from ddx_gateway.models.schemas import (
    CanonicalResult,
    DiagnoseOptions,
    DiagnosticCase,
    DifferentialEntry,
    EngineInfo,
    Provenance,
    Triage,
    TriageLevel,
)
from ddx_gateway.providers.base import Provider
from ddx_gateway.providers.local_rules import LocalRulesProvider
from ddx_gateway.providers.registry import ProviderRegistry


class FakeProvider(Provider):
    """
    Provider whose behaviour is keyed on the chief complaint.

    ``delays`` maps complaint -> seconds to wait; ``errors`` maps complaint
    -> exception to raise. Tracks calls and peak concurrency.
    """

    def __init__(
        self,
        name: str,
        delays: Optional[Dict[str, float]] = None,
        errors: Optional[Dict[str, Exception]] = None,
    ):
        self.name = name
        self.delays = delays or {}
        self.errors = errors or {}
        self.calls: List[tuple] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.completed: List[str] = []

    async def diagnose(self, case: DiagnosticCase, options: Optional[DiagnoseOptions] = None):
        self.calls.append((case, options))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delays.get(case.chief_complaint, 0))
            if case.chief_complaint in self.errors:
                raise self.errors[case.chief_complaint]
            self.completed.append(case.chief_complaint)
            return CanonicalResult(
                engine=EngineInfo(name=self.name, version="test"),
                differential=[DifferentialEntry(condition=case.chief_complaint)],
                triage=Triage(level=TriageLevel.LOW, why="test"),
                provenance=Provenance(model=options.model if options else None),
            )
        finally:
            self.in_flight -= 1


class RecordingSleep:
    """Stands in for asyncio.sleep; records requested delays without waiting."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def make_settings():
    """Build Settings without reading a .env file."""
    def _make(**overrides) -> Settings:
        return Settings(_env_file=None, **overrides)
    return _make


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider("fake")


@pytest.fixture
def gateway(fake_provider) -> GatewayConfig:
    """local_rules + fake enabled, a disabled 'isabel' stand-in registered."""
    registry = ProviderRegistry(
        [LocalRulesProvider(), fake_provider, FakeProvider("isabel")],
        enabled=["local_rules", "fake"],
    )
    return GatewayConfig(
        registry=registry,
        default_provider="local_rules",
        batch_concurrency=2,
        allow_phi=False,
    )


@pytest.fixture
def sample_case() -> DiagnosticCase:
    return DiagnosticCase(
        chief_complaint="fever, cough, pleuritic chest pain",
        demographics={"age": 54, "sex": "female"},
        symptoms=["fever", "productive cough"],
        notes="3 days",
        patient_id="P-001",
    )
