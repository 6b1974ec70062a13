"""
Isabel DDx Companion provider.

Isabel reports either a raw relative ``score`` or a ``probability`` per
condition, optional ICD-10 codes, and a free-form triage category. Mock mode
answers without credentials for local testing. NOT FOR CLINICAL USE.
"""
from __future__ import annotations

import re
from typing import Any, Dict

from ddx_gateway.models.schemas import (
    CanonicalResult,
    DiagnosticCase,
    DifferentialEntry,
    EngineInfo,
    Provenance,
    Triage,
    TriageLevel,
)
from ddx_gateway.providers.http_vendor import HTTPVendorProvider
from ddx_gateway.services.normalize import map_vendor_triage, normalize_differential

MAX_RESULTS = 12


def looks_like_pneumonia(complaint: str) -> bool:
    text = complaint.lower()
    return (
        "fever" in text
        and "cough" in text
        and re.search(r"pleuritic|chest pain", text) is not None
    )


class IsabelProvider(HTTPVendorProvider):

    def build_payload(self, case: DiagnosticCase) -> Dict[str, Any]:
        demographics = case.demographics
        return {
            "patient": {
                "age": demographics.age if demographics else None,
                "sex": demographics.sex if demographics else None,
                "region": "US",
            },
            "presentation": {"free_text": case.free_text()},
            "options": {"max_results": MAX_RESULTS},
        }

    def parse_response(self, data: Dict[str, Any]) -> CanonicalResult:
        engine = data.get("engine") or {}
        diffs = [d for d in (data.get("differential") or []) if isinstance(d, dict)]
        return CanonicalResult(
            engine=EngineInfo(name=self.name, version=str(engine.get("build") or "ddx")),
            differential=normalize_differential(diffs, code_keys={"icd10": "icd10"}),
            triage=map_vendor_triage(data.get("triage")),
            # Isabel does not prescribe tests
            recommended_tests=[],
            red_flags=[],
            provenance=Provenance(),
        )

    def mock_result(self, case: DiagnosticCase) -> CanonicalResult:
        pneumonia = looks_like_pneumonia(case.chief_complaint)
        if pneumonia:
            differential = [
                DifferentialEntry(condition="Community-acquired pneumonia", confidence=0.6),
                DifferentialEntry(condition="Viral bronchitis", confidence=0.3),
            ]
            triage = Triage(level=TriageLevel.MODERATE, why="mock: pneumonia-ish")
            tests = ["CXR", "CBC"]
        else:
            differential = [
                DifferentialEntry(condition="Viral URI", confidence=0.5),
                DifferentialEntry(condition="Influenza-like illness", confidence=0.2),
            ]
            triage = Triage(level=TriageLevel.LOW, why="mock")
            tests = ["Symptomatic care"]

        return CanonicalResult(
            engine=EngineInfo(name=self.name, version="mock-0.1"),
            patient_id=case.patient_id,
            differential=differential,
            triage=triage,
            recommended_tests=tests,
            red_flags=[],
            provenance=Provenance(mock=True),
        )
