"""Text-generation backends producing review text."""

from src.relay.generation.base import (
    GenerationBackend,
    GenerationBackendError,
    GenerationResult,
    ResponseFormat,
)
from src.relay.generation.factory import create_generation_backend
from src.relay.generation.huggingface import HuggingFaceInferenceBackend
from src.relay.generation.openai_chat import OpenAIChatBackend

__all__ = [
    "GenerationBackend",
    "GenerationBackendError",
    "GenerationResult",
    "HuggingFaceInferenceBackend",
    "OpenAIChatBackend",
    "ResponseFormat",
    "create_generation_backend",
]
