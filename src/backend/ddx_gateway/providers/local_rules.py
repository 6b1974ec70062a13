"""
Local rule engine.

A deterministic, network-free provider. It exists so the gateway always has
a working engine (development, demos, smoke tests) and obeys the same
contract as the remote ones.
"""
from __future__ import annotations

import re
from typing import Optional

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

CARDIAC_PATTERN = re.compile(r"chest|diaphoresis|pressure", re.IGNORECASE)


class LocalRulesProvider(Provider):
    name = "local_rules"
    version = "0.1"

    async def diagnose(
        self, case: DiagnosticCase, options: Optional[DiagnoseOptions] = None
    ) -> CanonicalResult:
        cardiac = bool(CARDIAC_PATTERN.search(case.chief_complaint))

        if cardiac:
            differential = [
                DifferentialEntry(
                    condition="Unstable angina",
                    confidence=0.6,
                    rationale="ischemic-sounding chest pain",
                ),
                DifferentialEntry(
                    condition="Myocardial infarction",
                    confidence=0.2,
                    rationale="consider ACS",
                ),
            ]
            triage = Triage(level=TriageLevel.HIGH, why="possible ACS")
            tests = ["ECG", "Troponin"]
            red_flags = ["ischemic-sounding chest pain"]
        else:
            differential = [
                DifferentialEntry(
                    condition="Viral URI",
                    confidence=0.4,
                    rationale="self-limited symptoms",
                ),
            ]
            triage = Triage(level=TriageLevel.LOW, why="no red flags")
            tests = ["Symptomatic care"]
            red_flags = []

        return CanonicalResult(
            engine=EngineInfo(name=self.name, version=self.version),
            patient_id=case.patient_id,
            differential=differential,
            triage=triage,
            recommended_tests=tests,
            red_flags=red_flags,
            provenance=Provenance(),
        )
