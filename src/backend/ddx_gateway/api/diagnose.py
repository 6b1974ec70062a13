"""
REST API for single-case and batch diagnosis.

The provider for a request comes from the ``provider`` query parameter, the
``X-Provider`` header, or the body's ``provider`` field, in that order, and
falls back to the configured default.
"""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Query
from pydantic import ValidationError

from ddx_gateway.api.deps import get_gateway
from ddx_gateway.config import GatewayConfig
from ddx_gateway.errors import BadRequestError, PHINotAllowedError
from ddx_gateway.models.schemas import (
    BatchRequest,
    BatchResponse,
    CanonicalResult,
    DiagnoseOptions,
    DiagnoseRequest,
    DiagnosticCase,
    EngineInfo,
)
from ddx_gateway.services.batch import BatchDispatcher

logger = logging.getLogger(__name__)
router = APIRouter()


def enforce_phi_policy(deidentified: bool, gateway: GatewayConfig) -> None:
    if not deidentified and not gateway.allow_phi:
        raise PHINotAllowedError()


def requested_provider(
    provider: Optional[str] = Query(None),
    x_provider: Optional[str] = Header(None),
) -> Optional[str]:
    """Provider named by query parameter or header, if any."""
    return provider or x_provider


@router.post("/diagnose", response_model=CanonicalResult)
async def diagnose(
    body: DiagnoseRequest,
    selected: Optional[str] = Depends(requested_provider),
    gateway: GatewayConfig = Depends(get_gateway),
):
    """Diagnose a single de-identified case with one provider."""
    enforce_phi_policy(body.deidentified, gateway)
    if not isinstance(body.input, dict) or not body.input.get("chief_complaint"):
        raise BadRequestError()
    try:
        case = DiagnosticCase.model_validate(body.input)
    except ValidationError as e:
        raise BadRequestError.from_validation(e) from e

    name = selected or body.provider or gateway.default_provider
    provider = gateway.registry.require(name)
    result = await provider.diagnose(case, DiagnoseOptions(model=body.model))
    if not result.engine.name:
        result = result.model_copy(update={"engine": EngineInfo(name=name)})

    logger.info(
        f"Diagnosed with {name}: {len(result.differential)} conditions, "
        f"triage {result.triage.level.value}"
    )
    return result


@router.post("/diagnose/batch", response_model=BatchResponse)
async def diagnose_batch(
    body: BatchRequest,
    selected: Optional[str] = Depends(requested_provider),
    gateway: GatewayConfig = Depends(get_gateway),
):
    """
    Diagnose a list of cases with bounded concurrency.

    Item failures are reported in their own result slot; only a malformed
    request or the PHI gate fails the whole call.
    """
    enforce_phi_policy(body.deidentified, gateway)
    items = [] if body.items is None else body.items
    if not isinstance(items, list):
        raise BadRequestError(details={"errors": ["body.items: Input should be a valid list"]})
    dispatcher = BatchDispatcher(gateway)
    return await dispatcher.run(
        items,
        provider=selected or body.provider,
        model=body.model,
    )
