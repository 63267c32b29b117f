"""Generation backend interface.

Backends differ in request shape and in response shape (chat completion,
text generation, summarization). Each adapter makes exactly one remote call
per generate() and normalizes the answer into a GenerationResult; retries
are the caller's concern (see src.relay.retry).

Adapters raise GenerationBackendError for HTTP-level failures and keep the
upstream status code on it, so the retry helper can tell a 503 ("model is
loading") from a 401.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Optional

from pydantic import BaseModel


class ResponseFormat(str, Enum):
    """Response shapes the adapters recognize.

    Attributes:
        CHAT_COMPLETION: OpenAI-style choices[0].message.content.
        TEXT_GENERATION: Inference API [{"generated_text": ...}].
        SUMMARIZATION: Inference API [{"summary_text": ...}].
        UNRECOGNIZED: Anything else; the text is empty.
    """

    CHAT_COMPLETION = "chat_completion"
    TEXT_GENERATION = "text_generation"
    SUMMARIZATION = "summarization"
    UNRECOGNIZED = "unrecognized"


class GenerationResult(BaseModel):
    """Normalized backend output."""

    text: str = ""
    raw_format: ResponseFormat

    @property
    def is_recognized(self) -> bool:
        return self.raw_format != ResponseFormat.UNRECOGNIZED and bool(self.text.strip())


class GenerationBackendError(Exception):
    """Raised when a generation backend call fails.

    Attributes:
        message: Human-readable error description.
        status_code: HTTP status from the backend, None for transport errors.
        response_body: Response body from the backend, if any.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.response_body = response_body
        super().__init__(message)


class GenerationBackend(ABC):
    """A text-generation service the relay can ask for a review.

    Attributes:
        name: Short backend name used in logs and prompts.
        prompt_style: Which prompt template suits this backend.
    """

    name: str = "backend"
    prompt_style: str = "instruction"

    @abstractmethod
    async def generate(self, prompt: str) -> GenerationResult:
        """Make one generation call and return the normalized result.

        Raises:
            GenerationBackendError: On HTTP or transport failure.
        """

    async def close(self) -> None:
        """Release any client resources."""
        pass
