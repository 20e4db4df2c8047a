"""大模型客户端测试."""

import base64
from unittest.mock import MagicMock

import httpx
import openai
import pytest

from docx_rewriter.errors import GenerationError, ImageGenerationError, ResponseFormatError
from docx_rewriter.service.llm_client import LLMClient, decode_data_uri

TOOL = {"type": "function", "function": {"name": "provide_replacements", "parameters": {"type": "object"}}}


def _completion(arguments=None, images=None):
    message = MagicMock()
    if arguments is None:
        message.tool_calls = None
    else:
        tool_call = MagicMock()
        tool_call.function.arguments = arguments
        message.tool_calls = [tool_call]
    message.model_dump.return_value = {"role": "assistant", "images": images or []}
    choice = MagicMock()
    choice.message = message
    response = MagicMock()
    response.choices = [choice]
    return response


@pytest.fixture
def openai_client():
    return MagicMock()


def test_function_call_forces_tool_choice(openai_client):
    openai_client.chat.completions.create.return_value = _completion('{"replacements": []}')

    result = LLMClient(openai_client).function_call("user", "system", TOOL)

    assert result == {"replacements": []}
    kwargs = openai_client.chat.completions.create.call_args.kwargs
    assert kwargs["tools"] == [TOOL]
    assert kwargs["tool_choice"] == {"type": "function", "function": {"name": "provide_replacements"}}
    assert kwargs["messages"][0] == {"role": "system", "content": "system"}


def test_missing_tool_call_is_format_error(openai_client):
    openai_client.chat.completions.create.return_value = _completion(None)

    with pytest.raises(ResponseFormatError):
        LLMClient(openai_client).function_call("user", "system", TOOL)


def test_invalid_json_is_format_error(openai_client):
    openai_client.chat.completions.create.return_value = _completion("{not json")

    with pytest.raises(ResponseFormatError):
        LLMClient(openai_client).function_call("user", "system", TOOL)


def test_status_error_keeps_status_code(openai_client):
    request = httpx.Request("POST", "https://api.example.test/v1/chat/completions")
    response = httpx.Response(429, request=request)
    openai_client.chat.completions.create.side_effect = openai.RateLimitError("busy", response=response, body=None)

    with pytest.raises(GenerationError) as exc_info:
        LLMClient(openai_client).function_call("user", "system", TOOL)

    assert exc_info.value.status_code == 429


def test_generate_image_decodes_data_uri(openai_client):
    payload = base64.b64encode(b"\x89PNG chart").decode("ascii")
    openai_client.chat.completions.create.return_value = _completion(
        images=[{"type": "image_url", "image_url": {"url": f"data:image/png;base64,{payload}"}}]
    )

    assert LLMClient(openai_client).generate_image("pie chart") == b"\x89PNG chart"
    kwargs = openai_client.chat.completions.create.call_args.kwargs
    assert kwargs["extra_body"] == {"modalities": ["image", "text"]}


def test_generate_image_without_image(openai_client):
    openai_client.chat.completions.create.return_value = _completion(images=[])

    with pytest.raises(ImageGenerationError):
        LLMClient(openai_client).generate_image("pie chart")


def test_decode_data_uri_rejects_malformed_input():
    with pytest.raises(ImageGenerationError):
        decode_data_uri("https://example.test/chart.png")
    with pytest.raises(ImageGenerationError):
        decode_data_uri("data:image/png;base64,@@@")
