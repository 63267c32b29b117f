"""Backend selection from configuration."""

import logging

from src.relay.config import GenerationBackendType, RelaySettings
from src.relay.generation.base import GenerationBackend
from src.relay.generation.huggingface import HuggingFaceInferenceBackend
from src.relay.generation.openai_chat import OpenAIChatBackend

logger = logging.getLogger(__name__)


def create_generation_backend(settings: RelaySettings) -> GenerationBackend:
    """Build the generation backend named by ``settings.generation_backend``."""
    if settings.generation_backend == GenerationBackendType.OPENAI:
        backend: GenerationBackend = OpenAIChatBackend(
            api_key=settings.openai_api_key,
            model_name=settings.openai_model,
            base_url=settings.openai_base_url,
            timeout=settings.generation_timeout_seconds,
        )
    else:
        backend = HuggingFaceInferenceBackend(
            api_key=settings.huggingface_api_key,
            model=settings.huggingface_model,
            base_url=settings.huggingface_base_url,
            timeout=settings.generation_timeout_seconds,
        )

    logger.info("Using generation backend: %s", backend.name)
    return backend
