"""Client for the OpenAI-compatible vision endpoint with strict structured output."""

from __future__ import annotations

import asyncio
import base64
import json
import logging
from typing import Any, Dict, Mapping, Optional

import requests
from pydantic import ValidationError

from .config import RemediationConfig
from .errors import InferenceError, InferenceFailure
from .models import CaptureBundle, Category, ContextSummary, InferenceRequest, Phase
from .prompts import build_instruction, system_prompt
from .schemas import StrictResult, contract_for

logger = logging.getLogger("a11y_remedy")


def strip_code_fence(text: str) -> str:
    """Remove a surrounding Markdown code fence if the model adds one."""
    stripped = text.strip()
    if not stripped.startswith("```"):
        return stripped

    lines = stripped.splitlines()
    closing_index = None
    for idx in range(len(lines) - 1, 0, -1):
        if lines[idx].strip().startswith("```"):
            closing_index = idx
            break

    if closing_index is None:
        return stripped

    return "\n".join(lines[1:closing_index]).strip()


def _data_url(image: bytes) -> str:
    return "data:image/jpeg;base64," + base64.b64encode(image).decode("ascii")


class InferenceClient:
    """Builds multimodal requests, submits them and validates the structured reply."""

    def __init__(
        self,
        config: RemediationConfig,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.config = config
        self.session = session or requests.Session()

    def build_request(
        self,
        category: Category,
        phase: Phase,
        context: ContextSummary,
        bundle: CaptureBundle,
        subject: Optional[Mapping[str, str]] = None,
    ) -> InferenceRequest:
        contract = contract_for(category, phase)
        return InferenceRequest(
            category=category,
            phase=phase,
            system_prompt=system_prompt(category, phase),
            instruction=build_instruction(category, phase, context, subject),
            bundle=bundle,
            schema_name=contract.name,
            schema=contract.schema,
            max_tokens=contract.max_tokens,
        )

    def build_payload(self, request: InferenceRequest) -> Dict[str, Any]:
        return {
            "model": self.config.model_id,
            "messages": [
                {"role": "system", "content": request.system_prompt},
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": request.instruction},
                        {"type": "image_url", "image_url": {"url": _data_url(request.bundle.isolated)}},
                        {"type": "image_url", "image_url": {"url": _data_url(request.bundle.context)}},
                    ],
                },
            ],
            "response_format": {
                "type": "json_schema",
                "json_schema": {
                    "name": request.schema_name,
                    "strict": True,
                    "schema": request.schema,
                },
            },
            "max_tokens": request.max_tokens,
            "temperature": self.config.temperature,
            "stream": False,
        }

    def _post(self, payload: Dict[str, Any]) -> Any:
        try:
            resp = self.session.post(
                self.config.endpoint,
                json=payload,
                timeout=self.config.request_timeout,
            )
        except requests.Timeout as exc:
            raise InferenceError(
                InferenceFailure.NETWORK,
                f"no response within {self.config.request_timeout}s: {exc}",
            ) from exc
        except requests.RequestException as exc:
            raise InferenceError(InferenceFailure.NETWORK, str(exc)) from exc

        if not 200 <= resp.status_code < 300:
            raise InferenceError(
                InferenceFailure.HTTP_STATUS,
                f"HTTP {resp.status_code}: {resp.reason}",
                status_code=resp.status_code,
            )
        try:
            return resp.json()
        except ValueError as exc:
            raise InferenceError(
                InferenceFailure.PARSE_FAILURE, f"response body is not JSON: {exc}"
            ) from exc

    def parse_response(self, request: InferenceRequest, envelope: Any) -> StrictResult:
        """Extract the message content and validate it against the requested model."""
        try:
            content = envelope["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise InferenceError(
                InferenceFailure.SCHEMA_VIOLATION, f"response has no message content ({exc!r})"
            ) from exc
        if not isinstance(content, str):
            raise InferenceError(
                InferenceFailure.SCHEMA_VIOLATION, "message content is not a string"
            )

        try:
            data = json.loads(strip_code_fence(content))
        except ValueError as exc:
            raise InferenceError(
                InferenceFailure.PARSE_FAILURE, f"message content is not JSON: {exc}"
            ) from exc

        model = contract_for(request.category, request.phase).model
        try:
            return model.model_validate(data)
        except ValidationError as exc:
            raise InferenceError(
                InferenceFailure.SCHEMA_VIOLATION,
                f"{request.schema_name}: {exc.error_count()} invalid field(s): {exc}",
            ) from exc

    async def submit(self, request: InferenceRequest) -> StrictResult:
        """Single attempt; the blocking HTTP call runs on a worker thread."""
        payload = self.build_payload(request)
        envelope = await asyncio.to_thread(self._post, payload)
        return self.parse_response(request, envelope)

    async def infer(
        self,
        category: Category,
        phase: Phase,
        context: ContextSummary,
        bundle: CaptureBundle,
        subject: Optional[Mapping[str, str]] = None,
    ) -> StrictResult:
        request = self.build_request(category, phase, context, bundle, subject)
        attempt = 0
        while True:
            try:
                return await self.submit(request)
            except InferenceError as exc:
                if not exc.retryable or attempt >= self.config.max_retries:
                    raise
                delay = self.config.retry_backoff * (2 ** attempt)
                attempt += 1
                logger.warning(
                    "Retrying %s/%s request in %.1fs (attempt %d of %d): %s",
                    category.value,
                    phase.value,
                    delay,
                    attempt,
                    self.config.max_retries,
                    exc,
                )
                await asyncio.sleep(delay)
