"""Chat-completion backend using LangChain's ChatOpenAI.

Works with the OpenAI API and with any OpenAI-compatible server (vLLM,
LiteLLM, Azure deployments behind a proxy) by setting ``base_url``.

The LangChain client's own retry loop is disabled (max_retries=0) so that
the relay's backoff policy is the only one in effect.
"""

import logging
from typing import Optional

import openai
from langchain_core.messages import HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI

from src.relay.generation.base import (
    GenerationBackend,
    GenerationBackendError,
    GenerationResult,
    ResponseFormat,
)


logger = logging.getLogger(__name__)


REVIEWER_SYSTEM_PROMPT = """You are an experienced senior software engineer reviewing a GitHub pull request.
Be specific and constructive. Reference file names when you point at a problem.
Use GitHub-flavored markdown. Do not invent code that is not in the diff."""


class OpenAIChatBackend(GenerationBackend):
    """Generation backend for chat-completion models.

    Attributes:
        model_name: Model to use for inference.
        base_url: Optional OpenAI-compatible endpoint.
        timeout: Request timeout in seconds.
        temperature: Sampling temperature.
        max_tokens: Upper bound on the generated review length.
    """

    name = "openai"
    prompt_style = "chat"

    def __init__(
        self,
        api_key: str,
        model_name: str = "gpt-4o-mini",
        base_url: Optional[str] = None,
        timeout: float = 120.0,
        temperature: float = 0.2,
        max_tokens: int = 1500,
        llm: Optional[ChatOpenAI] = None,
    ):
        self.api_key = api_key
        self.model_name = model_name
        self.base_url = base_url
        self.timeout = timeout
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._llm = llm

    @property
    def llm(self) -> ChatOpenAI:
        """Get the LLM client, creating it if necessary."""
        if self._llm is None:
            self._llm = ChatOpenAI(
                api_key=self.api_key,
                base_url=self.base_url,
                model=self.model_name,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                timeout=self.timeout,
                max_retries=0,
            )
        return self._llm

    async def generate(self, prompt: str) -> GenerationResult:
        messages = [
            SystemMessage(content=REVIEWER_SYSTEM_PROMPT),
            HumanMessage(content=prompt),
        ]

        try:
            response = await self.llm.ainvoke(messages)
        except openai.APIStatusError as e:
            raise GenerationBackendError(
                f"Chat completion failed: {e.status_code}",
                status_code=e.status_code,
                response_body=e.response.text if e.response is not None else None,
            ) from e
        except openai.APIConnectionError as e:
            raise GenerationBackendError(f"Chat completion request failed: {e}") from e

        content = response.content
        if not isinstance(content, str):
            logger.warning(
                "Unexpected chat completion content type",
                extra={"content_type": type(content).__name__},
            )
            return GenerationResult(raw_format=ResponseFormat.UNRECOGNIZED)

        return GenerationResult(
            text=content.strip(),
            raw_format=ResponseFormat.CHAT_COMPLETION,
        )
