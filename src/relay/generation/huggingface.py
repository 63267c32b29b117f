"""Hugging Face Inference API backend.

POSTs ``{"inputs": prompt}`` to ``{base_url}/{model}`` and understands the
response shapes of the text-generation and summarization pipelines. While a
model is cold the endpoint answers 503, which the caller retries.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from src.relay.generation.base import (
    GenerationBackend,
    GenerationBackendError,
    GenerationResult,
    ResponseFormat,
)


logger = logging.getLogger(__name__)


def parse_inference_response(data: Any) -> GenerationResult:
    """Normalize an Inference API response body.

    Recognized shapes:
        [{"generated_text": "..."}]
        [{"summary_text": "..."}]
        {"generated_text": "..."}
    Anything else yields an UNRECOGNIZED result with empty text.
    """
    item = data[0] if isinstance(data, list) and data else data

    if isinstance(item, dict):
        generated = item.get("generated_text")
        if isinstance(generated, str):
            return GenerationResult(
                text=generated.strip(),
                raw_format=ResponseFormat.TEXT_GENERATION,
            )
        summary = item.get("summary_text")
        if isinstance(summary, str):
            return GenerationResult(
                text=summary.strip(),
                raw_format=ResponseFormat.SUMMARIZATION,
            )

    logger.warning(
        "Unexpected inference response format",
        extra={"response_preview": repr(data)[:200]},
    )
    return GenerationResult(raw_format=ResponseFormat.UNRECOGNIZED)


class HuggingFaceInferenceBackend(GenerationBackend):
    """Generation backend for Hugging Face inference endpoints.

    Attributes:
        model: Model id appended to the base URL.
        base_url: Inference API root.
        timeout: Request timeout in seconds.
    """

    name = "huggingface"
    prompt_style = "instruction"

    def __init__(
        self,
        api_key: str,
        model: str = "microsoft/codereviewer",
        base_url: str = "https://api-inference.huggingface.co/models",
        timeout: float = 120.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/{self.model}"

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def generate(self, prompt: str) -> GenerationResult:
        try:
            response = await self.client.post(
                self.endpoint,
                json={"inputs": prompt},
                headers=self._headers(),
            )
        except httpx.RequestError as e:
            raise GenerationBackendError(f"Inference request failed: {e}") from e

        if response.status_code >= 400:
            logger.warning(
                "Inference endpoint returned an error",
                extra={
                    "status_code": response.status_code,
                    "model": self.model,
                    "response_body": response.text[:500],
                },
            )
            raise GenerationBackendError(
                f"Inference endpoint error: {response.status_code}",
                status_code=response.status_code,
                response_body=response.text,
            )

        try:
            data = response.json()
        except ValueError:
            logger.warning(
                "Inference endpoint returned non-JSON body",
                extra={"response_preview": response.text[:200]},
            )
            return GenerationResult(raw_format=ResponseFormat.UNRECOGNIZED)

        return parse_inference_response(data)

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None
