"""
Canonical data models for the DDx Gateway.

Every provider, whatever its backend speaks, produces a CanonicalResult.
Request bodies are parsed permissively at the route level so that policy
checks run before shape validation; DiagnosticCase and BatchItem do the
strict validation afterwards.
"""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_serializer


# ──────────────────────────────────────────────
# Base
# ──────────────────────────────────────────────

class OmitNoneModel(BaseModel):
    """Leaves unset optional fields out of the serialized output.

    Only this model's own keys are dropped; nested opaque values (such as
    batch ``meta``) are emitted exactly as received.
    """

    @model_serializer(mode="wrap")
    def omit_none_fields(self, handler):
        data = handler(self)
        return {k: v for k, v in data.items() if v is not None}


# ──────────────────────────────────────────────
# Enums
# ──────────────────────────────────────────────

class TriageLevel(str, Enum):
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"


# ──────────────────────────────────────────────
# Case input
# ──────────────────────────────────────────────

class Demographics(BaseModel):
    model_config = {"frozen": True}

    age: Optional[int] = Field(None, ge=0, description="Age in years")
    sex: Optional[str] = Field(None, description="Free-text sex, passed to vendors as-is")


class DiagnosticCase(BaseModel):
    """A de-identified case submitted for diagnosis. Immutable once built."""
    model_config = {"frozen": True}

    chief_complaint: str = Field(..., description="Primary reason for visit")
    demographics: Optional[Demographics] = None
    symptoms: List[str] = Field(default_factory=list)
    notes: Optional[str] = None
    patient_id: Optional[str] = Field(None, description="Opaque caller identifier")

    @field_validator("chief_complaint")
    @classmethod
    def _require_text(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("chief_complaint must not be blank")
        return v

    def free_text(self) -> str:
        """Chief complaint, symptoms and notes joined into one narrative."""
        parts = [self.chief_complaint, ", ".join(self.symptoms), self.notes]
        return "; ".join(p for p in parts if p)


class DiagnoseOptions(BaseModel):
    model: Optional[str] = Field(None, description="Model override for generative providers")


# ──────────────────────────────────────────────
# Canonical result
# ──────────────────────────────────────────────

class DifferentialEntry(OmitNoneModel):
    condition: str = Field(..., description="Condition name as reported by the engine")
    confidence: Optional[float] = Field(None, ge=0.0, le=1.0)
    rationale: Optional[str] = None
    codes: Optional[Dict[str, str]] = Field(None, description="Code system -> code, e.g. icd10")


class Triage(BaseModel):
    level: TriageLevel
    why: str = ""


class EngineInfo(OmitNoneModel):
    name: str
    version: Optional[str] = None


class Provenance(BaseModel):
    """When the result was produced, plus whatever metadata the engine adds."""
    model_config = {"extra": "allow"}

    generated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class CanonicalResult(OmitNoneModel):
    """The provider-independent diagnostic answer."""
    engine: EngineInfo
    patient_id: Optional[str] = None
    differential: List[DifferentialEntry] = Field(default_factory=list)
    triage: Triage
    recommended_tests: List[str] = Field(default_factory=list)
    red_flags: List[str] = Field(default_factory=list)
    provenance: Provenance = Field(default_factory=Provenance)


# ──────────────────────────────────────────────
# Batch models
# ──────────────────────────────────────────────

class BatchItem(BaseModel):
    input: DiagnosticCase
    provider: Optional[str] = None
    model: Optional[str] = None
    meta: Optional[Any] = Field(None, description="Opaque caller data, echoed back unchanged")


class BatchResult(OmitNoneModel):
    index: int = Field(..., description="Position of the item in the submitted list")
    ok: bool
    output: Optional[CanonicalResult] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    meta: Optional[Any] = None


class BatchSummary(BaseModel):
    total: int
    ok: int
    failed: int


class BatchResponse(BaseModel):
    summary: BatchSummary
    results: List[BatchResult] = Field(default_factory=list)


# ──────────────────────────────────────────────
# API Request / Response Models
# ──────────────────────────────────────────────

class DiagnoseRequest(BaseModel):
    """Single-case request. ``input`` is validated after the PHI gate."""
    deidentified: bool = False
    input: Any = None
    model: Optional[str] = None
    provider: Optional[str] = None


class BatchRequest(BaseModel):
    """Batch request. ``items`` must be a list; each item is validated inside the dispatcher."""
    deidentified: bool = False
    items: Any = None
    model: Optional[str] = None
    provider: Optional[str] = None


class HealthResponse(BaseModel):
    ok: bool = True
    provider_default: str


class ProvidersResponse(BaseModel):
    default: str
    enabled: List[str]
