"""
Shared plumbing for vendor providers reached over plain HTTPS + JSON.

Subclasses describe how to build the vendor payload, how to read the vendor
response and what to answer in mock mode. This base owns the HTTP client,
auth header, retry/backoff and error translation.
"""
from __future__ import annotations

import json
import logging
from abc import abstractmethod
from typing import Any, Dict, Optional

import httpx

from ddx_gateway.config import VendorEndpoint, mask_secret
from ddx_gateway.errors import ConfigurationError, UpstreamHTTPError, UpstreamParseError
from ddx_gateway.models.schemas import CanonicalResult, DiagnoseOptions, DiagnosticCase
from ddx_gateway.providers.base import Provider
from ddx_gateway.services.retry import RetryPolicy, parse_retry_after, with_backoff

logger = logging.getLogger(__name__)


class HTTPVendorProvider(Provider):
    """A provider backed by one POST-per-case vendor endpoint."""

    def __init__(
        self,
        endpoint: VendorEndpoint,
        retry_policy: Optional[RetryPolicy] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep=None,
    ):
        self.endpoint = endpoint
        self.retry_policy = retry_policy or RetryPolicy()
        self._transport = transport
        self._sleep = sleep
        self._http_client: httpx.AsyncClient | None = None

    @property
    def name(self) -> str:  # type: ignore[override]
        return self.endpoint.name

    @property
    def is_configured(self) -> bool:
        return self.endpoint.mock or bool(self.endpoint.api_key)

    @property
    def is_mock(self) -> bool:
        return self.endpoint.mock

    async def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=self.endpoint.timeout, transport=self._transport
            )
        return self._http_client

    async def aclose(self) -> None:
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def diagnose(
        self, case: DiagnosticCase, options: Optional[DiagnoseOptions] = None
    ) -> CanonicalResult:
        if self.endpoint.mock:
            return self.mock_result(case)
        if not self.endpoint.api_key:
            raise ConfigurationError(
                f"{self.name}_not_configured", details={"provider": self.name}
            )

        payload = self.build_payload(case)
        data = await self.post_json(payload)
        if not isinstance(data, dict):
            raise UpstreamParseError(self.name, "response is not a JSON object")
        try:
            result = self.parse_response(data)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise UpstreamParseError(self.name, str(e)) from e
        if result.patient_id is None and case.patient_id:
            result = result.model_copy(update={"patient_id": case.patient_id})
        return result

    def request_headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        headers.update(self.endpoint.auth_headers())
        return headers

    async def post_json(self, payload: Dict[str, Any]) -> Any:
        """POST ``payload`` to the vendor and return the decoded JSON body."""
        client = await self._get_client()
        url = self.endpoint.url
        headers = self.request_headers()
        body = json.dumps(payload)

        async def _attempt() -> str:
            if self.endpoint.debug:
                safe_headers = {
                    k: (mask_secret(v) if k == self.endpoint.auth_header else v)
                    for k, v in headers.items()
                }
                logger.info(f"[{self.name}] POST {url} headers={safe_headers} body={body}")
            try:
                response = await client.post(url, headers=headers, content=body)
            except httpx.HTTPError as e:
                logger.error(f"[{self.name}] transport error: {e}")
                raise UpstreamHTTPError(self.name, None) from e

            if self.endpoint.debug:
                logger.info(f"[{self.name}] status {response.status_code} body={response.text}")
            if not response.is_success:
                raise UpstreamHTTPError(
                    self.name,
                    response.status_code,
                    retry_after=parse_retry_after(response.headers.get("retry-after")),
                    body=response.text,
                )
            return response.text

        kwargs = {"sleep": self._sleep} if self._sleep is not None else {}
        text = await with_backoff(_attempt, self.retry_policy, label=self.name, **kwargs)

        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            logger.warning(f"[{self.name}] unparseable response: {text[:300]}")
            raise UpstreamParseError(self.name, str(e)) from e

    @abstractmethod
    def build_payload(self, case: DiagnosticCase) -> Dict[str, Any]:
        """Translate the canonical case into the vendor request body."""

    @abstractmethod
    def parse_response(self, data: Dict[str, Any]) -> CanonicalResult:
        """Translate the vendor response body into a CanonicalResult."""

    @abstractmethod
    def mock_result(self, case: DiagnosticCase) -> CanonicalResult:
        """Canned answer used when the endpoint is in mock mode."""
