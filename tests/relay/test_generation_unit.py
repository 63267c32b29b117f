"""Unit tests for generation backends and backend selection."""

import json
from unittest.mock import AsyncMock

import httpx
import pytest
from langchain_core.messages import AIMessage

from src.relay.config import GenerationBackendType, RelaySettings
from src.relay.generation.base import GenerationBackendError, ResponseFormat
from src.relay.generation.factory import create_generation_backend
from src.relay.generation.huggingface import (
    HuggingFaceInferenceBackend,
    parse_inference_response,
)
from src.relay.generation.openai_chat import OpenAIChatBackend


class TestParseInferenceResponse:
    def test_text_generation_list(self):
        result = parse_inference_response([{"generated_text": "  Looks good.  "}])

        assert result.raw_format == ResponseFormat.TEXT_GENERATION
        assert result.text == "Looks good."
        assert result.is_recognized

    def test_summarization_list(self):
        result = parse_inference_response([{"summary_text": "Refactors config."}])

        assert result.raw_format == ResponseFormat.SUMMARIZATION
        assert result.text == "Refactors config."

    def test_bare_object(self):
        result = parse_inference_response({"generated_text": "ok"})

        assert result.raw_format == ResponseFormat.TEXT_GENERATION

    @pytest.mark.parametrize(
        "data",
        [[], {}, [{"label": "POSITIVE"}], "plain string", None, [{"generated_text": 3}]],
    )
    def test_unrecognized_shapes(self, data):
        result = parse_inference_response(data)

        assert result.raw_format == ResponseFormat.UNRECOGNIZED
        assert result.text == ""
        assert not result.is_recognized


class TestHuggingFaceInferenceBackend:
    @pytest.mark.asyncio
    async def test_posts_inputs_with_bearer_key(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json=[{"generated_text": "Looks good."}])

        backend = HuggingFaceInferenceBackend(
            api_key="hf_key",
            model="org/model",
            base_url="https://inference.example/models/",
            transport=httpx.MockTransport(handler),
        )

        result = await backend.generate("Review this")
        await backend.close()

        assert result.text == "Looks good."
        assert str(requests[0].url) == "https://inference.example/models/org/model"
        assert requests[0].headers["Authorization"] == "Bearer hf_key"
        assert json.loads(requests[0].content) == {"inputs": "Review this"}

    @pytest.mark.asyncio
    async def test_503_keeps_status_code(self):
        backend = HuggingFaceInferenceBackend(
            api_key="hf_key",
            transport=httpx.MockTransport(
                lambda request: httpx.Response(503, json={"error": "Model is loading"})
            ),
        )

        with pytest.raises(GenerationBackendError) as exc_info:
            await backend.generate("Review this")

        assert exc_info.value.status_code == 503
        assert "loading" in exc_info.value.response_body

    @pytest.mark.asyncio
    async def test_non_json_body_is_unrecognized(self):
        backend = HuggingFaceInferenceBackend(
            api_key="hf_key",
            transport=httpx.MockTransport(lambda request: httpx.Response(200, text="<html>")),
        )

        result = await backend.generate("Review this")

        assert result.raw_format == ResponseFormat.UNRECOGNIZED

    @pytest.mark.asyncio
    async def test_transport_error_has_no_status(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("timed out", request=request)

        backend = HuggingFaceInferenceBackend(
            api_key="hf_key", transport=httpx.MockTransport(handler)
        )

        with pytest.raises(GenerationBackendError) as exc_info:
            await backend.generate("Review this")

        assert exc_info.value.status_code is None


class TestOpenAIChatBackend:
    @pytest.mark.asyncio
    async def test_returns_chat_completion(self):
        llm = AsyncMock()
        llm.ainvoke.return_value = AIMessage(content="## Summary\nFine.\nTitle: Tidy")
        backend = OpenAIChatBackend(api_key="sk-test", llm=llm)

        result = await backend.generate("Review this")

        assert result.raw_format == ResponseFormat.CHAT_COMPLETION
        assert result.text.endswith("Title: Tidy")
        messages = llm.ainvoke.await_args.args[0]
        assert messages[-1].content == "Review this"

    @pytest.mark.asyncio
    async def test_structured_content_is_unrecognized(self):
        llm = AsyncMock()
        llm.ainvoke.return_value = AIMessage(content=[{"type": "text", "text": "hi"}])
        backend = OpenAIChatBackend(api_key="sk-test", llm=llm)

        result = await backend.generate("Review this")

        assert result.raw_format == ResponseFormat.UNRECOGNIZED

    def test_llm_client_disables_sdk_retries(self):
        backend = OpenAIChatBackend(api_key="sk-test", model_name="gpt-4o-mini")

        assert backend.llm.max_retries == 0
        assert backend.prompt_style == "chat"


class TestCreateGenerationBackend:
    def test_default_is_huggingface(self):
        backend = create_generation_backend(RelaySettings(_env_file=None))

        assert isinstance(backend, HuggingFaceInferenceBackend)

    def test_openai_selected(self):
        settings = RelaySettings(
            _env_file=None,
            generation_backend=GenerationBackendType.OPENAI,
            openai_api_key="sk-test",
        )

        assert isinstance(create_generation_backend(settings), OpenAIChatBackend)
