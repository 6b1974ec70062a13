"""
Generative-model provider.

Asks an OpenAI-compatible chat-completions endpoint for a JSON object with
the canonical fields, then coerces the reply into a CanonicalResult. The SDK's
own retries are disabled; transient statuses go through the gateway's
backoff executor like every other network provider.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

import httpx

from ddx_gateway.errors import ConfigurationError, UpstreamHTTPError, UpstreamParseError
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
from ddx_gateway.services.normalize import map_triage
from ddx_gateway.services.retry import RetryPolicy, parse_retry_after, with_backoff

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = "You output ONLY valid JSON matching the requested fields."
TASK_NAME = "clinical_differential_v1"
REQUIRED_FIELDS = ["differential", "triage", "recommended_tests", "red_flags"]
TEMPERATURE = 0.2
MAX_TOKENS = 800


class OpenAIChatProvider(Provider):
    """
    Diagnose via a chat-completions model.

    Usage:
        provider = OpenAIChatProvider(api_key="sk-...", default_model="gpt-4o-mini")
        result = await provider.diagnose(case, DiagnoseOptions(model="gpt-4o"))
    """

    name = "openai"

    def __init__(
        self,
        api_key: str = "",
        default_model: str = "gpt-4o-mini",
        base_url: str = "https://api.openai.com/v1",
        timeout: float = 30.0,
        retry_policy: Optional[RetryPolicy] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        sleep=None,
    ):
        self.api_key = api_key
        self.default_model = default_model
        self.base_url = base_url
        self.timeout = timeout
        self.retry_policy = retry_policy or RetryPolicy()
        self._http_client = http_client
        self._sleep = sleep
        self._client = None

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def _get_client(self):
        """Lazy-initialize the API client."""
        if self._client is None:
            from openai import AsyncOpenAI

            self._client = AsyncOpenAI(
                api_key=self.api_key,
                base_url=self.base_url,
                timeout=self.timeout,
                max_retries=0,
                http_client=self._http_client,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None

    async def diagnose(
        self, case: DiagnosticCase, options: Optional[DiagnoseOptions] = None
    ) -> CanonicalResult:
        if not self.api_key:
            raise ConfigurationError("openai_not_configured", details={"provider": self.name})

        model = (options.model if options else None) or self.default_model
        content = await self._complete(model, self.build_prompt(case))
        parsed = self._parse_json(content)

        try:
            return CanonicalResult(
                engine=EngineInfo(name=self.name, version=model),
                patient_id=case.patient_id,
                differential=self._coerce_differential(parsed.get("differential")),
                triage=self._coerce_triage(parsed.get("triage")),
                recommended_tests=self._coerce_strings(parsed.get("recommended_tests")),
                red_flags=self._coerce_strings(parsed.get("red_flags")),
                provenance=Provenance(temperature=TEMPERATURE, prompt_profile=TASK_NAME),
            )
        except (TypeError, ValueError) as e:
            raise UpstreamParseError(self.name, str(e)) from e

    @staticmethod
    def build_prompt(case: DiagnosticCase) -> str:
        return json.dumps({
            "task": TASK_NAME,
            "required_fields": REQUIRED_FIELDS,
            "input": case.model_dump(exclude_none=True),
        })

    async def _complete(self, model: str, prompt: str) -> str:
        from openai import APIConnectionError, APIStatusError

        client = await self._get_client()

        async def _attempt() -> str:
            try:
                response = await client.chat.completions.create(
                    model=model,
                    response_format={"type": "json_object"},
                    temperature=TEMPERATURE,
                    max_tokens=MAX_TOKENS,
                    messages=[
                        {"role": "system", "content": SYSTEM_PROMPT},
                        {"role": "user", "content": prompt},
                    ],
                )
            except APIStatusError as e:
                raise UpstreamHTTPError(
                    self.name,
                    e.status_code,
                    retry_after=parse_retry_after(e.response.headers.get("retry-after")),
                ) from e
            except APIConnectionError as e:
                logger.error(f"[{self.name}] connection error: {e}")
                raise UpstreamHTTPError(self.name, None) from e
            if not response.choices:
                raise UpstreamParseError(self.name, "no choices in completion")
            return response.choices[0].message.content or ""

        kwargs = {"sleep": self._sleep} if self._sleep is not None else {}
        return await with_backoff(_attempt, self.retry_policy, label=self.name, **kwargs)

    def _parse_json(self, content: str) -> Dict[str, Any]:
        try:
            parsed = json.loads(self._extract_json(content))
        except json.JSONDecodeError as e:
            logger.warning(f"[{self.name}] invalid JSON from model: {content[:300]}")
            raise UpstreamParseError(self.name, str(e)) from e
        if not isinstance(parsed, dict):
            raise UpstreamParseError(self.name, "reply is not a JSON object")
        return parsed

    @staticmethod
    def _extract_json(text: str) -> str:
        """Strip a markdown code fence if the model wrapped its JSON in one."""
        if "```" not in text:
            return text.strip()
        start = text.index("```") + 3
        if text.startswith("json", start):
            start += 4
        end = text.find("```", start)
        return (text[start:] if end == -1 else text[start:end]).strip()

    @staticmethod
    def _coerce_differential(raw: Any) -> List[DifferentialEntry]:
        if raw is None:
            return []
        if isinstance(raw, str):
            raw = [raw]
        if not isinstance(raw, list):
            raise ValueError("differential is not a list")

        entries = []
        for item in raw:
            if isinstance(item, str):
                item = {"condition": item}
            if not isinstance(item, dict):
                raise ValueError(f"differential entry is not an object: {item!r}")
            condition = item.get("condition") or item.get("name") or item.get("diagnosis")
            if not condition:
                raise ValueError("differential entry has no condition name")
            confidence = item.get("confidence")
            if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
                confidence = None
            else:
                confidence = min(1.0, max(0.0, float(confidence)))
            codes = item.get("codes")
            entries.append(DifferentialEntry(
                condition=str(condition),
                confidence=confidence,
                rationale=item.get("rationale") or item.get("why"),
                codes={str(k): str(v) for k, v in codes.items()} if isinstance(codes, dict) else None,
            ))
        return entries

    @staticmethod
    def _coerce_triage(raw: Any) -> Triage:
        if isinstance(raw, str):
            return map_triage(raw)
        if not isinstance(raw, dict):
            return map_triage(None)
        level = str(raw.get("level") or "").strip().lower()
        if level in {t.value for t in TriageLevel}:
            return Triage(level=TriageLevel(level), why=str(raw.get("why") or ""))
        return map_triage(level)

    @staticmethod
    def _coerce_strings(raw: Any) -> List[str]:
        if not isinstance(raw, list):
            return []
        return [str(x) for x in raw if x is not None]
