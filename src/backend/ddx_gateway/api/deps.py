"""FastAPI dependencies shared by the routers."""
from __future__ import annotations

from fastapi import Request

from ddx_gateway.config import GatewayConfig


def get_gateway(request: Request) -> GatewayConfig:
    """The GatewayConfig built at app construction."""
    return request.app.state.gateway
