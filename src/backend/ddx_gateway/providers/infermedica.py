"""
Infermedica provider.

Sends the case as free text with demographics and reads back ranked
conditions with probabilities plus an optional triage level. Condition ids
are kept under the ``infermedica`` code system. Requests carry ``App-Id``
when one is configured, alongside the configurable key header.
"""
from __future__ import annotations

from typing import Any, Dict, Optional

import httpx

from ddx_gateway.config import VendorEndpoint
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
from ddx_gateway.providers.isabel import looks_like_pneumonia
from ddx_gateway.services.normalize import map_vendor_triage, normalize_differential
from ddx_gateway.services.retry import RetryPolicy


class InfermedicaProvider(HTTPVendorProvider):

    def __init__(
        self,
        endpoint: VendorEndpoint,
        app_id: str = "",
        retry_policy: Optional[RetryPolicy] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep=None,
    ):
        super().__init__(endpoint, retry_policy=retry_policy, transport=transport, sleep=sleep)
        self.app_id = app_id

    def request_headers(self) -> Dict[str, str]:
        headers = super().request_headers()
        if self.app_id:
            headers["App-Id"] = self.app_id
        return headers

    def build_payload(self, case: DiagnosticCase) -> Dict[str, Any]:
        demographics = case.demographics
        payload: Dict[str, Any] = {
            "text": case.free_text(),
            "extras": {},
        }
        if demographics and demographics.sex:
            payload["sex"] = demographics.sex.lower()
        if demographics and demographics.age is not None:
            payload["age"] = {"value": demographics.age}
        return payload

    def parse_response(self, data: Dict[str, Any]) -> CanonicalResult:
        conditions = []
        for c in data.get("conditions") or []:
            if not isinstance(c, dict):
                continue
            conditions.append({**c, "name": c.get("common_name") or c.get("name")})

        return CanonicalResult(
            engine=EngineInfo(name=self.name, version=str(data.get("version") or "v3")),
            differential=normalize_differential(conditions, code_keys={"id": "infermedica"}),
            triage=map_vendor_triage(data.get("triage")),
            recommended_tests=[],
            red_flags=[
                str(e.get("common_name") or e.get("name"))
                for e in data.get("serious") or []
                if isinstance(e, dict) and (e.get("common_name") or e.get("name"))
            ],
            provenance=Provenance(has_emergency_evidence=bool(data.get("has_emergency_evidence"))),
        )

    def mock_result(self, case: DiagnosticCase) -> CanonicalResult:
        if looks_like_pneumonia(case.chief_complaint):
            differential = [
                DifferentialEntry(
                    condition="Pneumonia", confidence=0.55, codes={"infermedica": "c_mock_pna"}
                ),
                DifferentialEntry(
                    condition="Acute bronchitis", confidence=0.25, codes={"infermedica": "c_mock_bro"}
                ),
            ]
            triage = Triage(level=TriageLevel.MODERATE, why="vendor: consultation_24")
            tests = ["CXR"]
        else:
            differential = [
                DifferentialEntry(
                    condition="Common cold", confidence=0.6, codes={"infermedica": "c_mock_cold"}
                ),
            ]
            triage = Triage(level=TriageLevel.LOW, why="vendor: self_care")
            tests = []

        return CanonicalResult(
            engine=EngineInfo(name=self.name, version="mock-0.1"),
            patient_id=case.patient_id,
            differential=differential,
            triage=triage,
            recommended_tests=tests,
            red_flags=[],
            provenance=Provenance(mock=True),
        )
