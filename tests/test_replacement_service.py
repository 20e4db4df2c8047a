"""替换内容生成服务测试."""

import re
from unittest.mock import MagicMock

import pytest

from docx_rewriter.data.models import TextRun
from docx_rewriter.errors import GenerationError, NoPlaceholdersError, RateLimitError, ResponseFormatError
from docx_rewriter.service.replacement_service import (
    EXHAUSTED_MESSAGES,
    IDENTIFY_REPLACEMENTS_TOOL,
    PROVIDE_REPLACEMENTS_TOOL,
    ReplacementOrchestrator,
)


def _sections(count):
    return [
        TextRun(
            index=i,
            text=f"text {i}",
            context=f"context {i}",
            raw_markup=f"<w:r><w:t>text {i}</w:t></w:r>",
            is_highlighted=True,
            start=i * 40,
        )
        for i in range(count)
    ]


def _echo_batch(user_message, system_message, tool):
    """按提示词中的段落顺序返回“原文 updated”."""
    originals = re.findall(r'Highlighted text to replace: "([^"]*)"', user_message)
    return {
        "replacements": [
            {"section_number": i, "replacement_text": f"{text} updated"}
            for i, text in enumerate(originals, 1)
        ]
    }


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def orchestrator(mock_llm_client, sleeps):
    return ReplacementOrchestrator(
        mock_llm_client,
        batch_size=50,
        batch_delay=1.0,
        max_retries=5,
        retry_base_delay=2.0,
        preparer_name="Jane Doe",
        sleep=sleeps.append,
    )


def test_sections_are_batched_and_merged_in_order(orchestrator, mock_llm_client, sleeps):
    mock_llm_client.function_call.side_effect = _echo_batch
    sections = _sections(120)

    results = orchestrator.generate_replacements("instructions", sections, "market")

    assert mock_llm_client.function_call.call_count == 3
    batch_sizes = [
        len(re.findall(r"\[Section \d+\]", c.kwargs["user_message"]))
        for c in mock_llm_client.function_call.call_args_list
    ]
    assert batch_sizes == [50, 50, 20]
    assert [r.new_text for r in results] == [f"text {i} updated" for i in range(120)]
    assert [r.raw_markup for r in results] == [s.raw_markup for s in sections]
    # 只在批次之间等待
    assert sleeps == [1.0, 1.0]


def test_prompt_contents(orchestrator, mock_llm_client):
    mock_llm_client.function_call.side_effect = _echo_batch

    orchestrator.generate_replacements("Use a 5% uplift", _sections(2), "Current date: 16 October 2026")

    kwargs = mock_llm_client.function_call.call_args.kwargs
    assert kwargs["tool"] is PROVIDE_REPLACEMENTS_TOOL
    assert "Jane Doe" in kwargs["system_message"]
    assert "Use a 5% uplift" in kwargs["user_message"]
    assert "Current date: 16 October 2026" in kwargs["user_message"]
    assert "[Section 2]\nContext: context 1\nHighlighted text to replace: \"text 1\"" in kwargs["user_message"]


def test_missing_and_out_of_range_sections_keep_original_text(orchestrator, mock_llm_client):
    mock_llm_client.function_call.return_value = {
        "replacements": [
            {"section_number": 2, "replacement_text": "second"},
            {"section_number": 2, "replacement_text": "duplicate"},
            {"section_number": 7, "replacement_text": "out of range"},
            {"section_number": 0, "replacement_text": "zero"},
        ]
    }

    results = orchestrator.generate_replacements("instructions", _sections(3))

    assert [r.new_text for r in results] == ["text 0", "second", "text 2"]
    assert [r.changed for r in results] == [False, True, False]


def test_rate_limit_retries_with_exponential_backoff(orchestrator, mock_llm_client, sleeps):
    mock_llm_client.function_call.side_effect = GenerationError("busy", status_code=429)

    with pytest.raises(RateLimitError) as exc_info:
        orchestrator.generate_replacements("instructions", _sections(3))

    assert mock_llm_client.function_call.call_count == 5
    assert sleeps == [2.0, 4.0, 8.0, 16.0]
    assert str(exc_info.value) == EXHAUSTED_MESSAGES[429]
    assert exc_info.value.status_code == 429


def test_exhausted_credits_message(orchestrator, mock_llm_client):
    mock_llm_client.function_call.side_effect = GenerationError("payment required", status_code=402)

    with pytest.raises(RateLimitError, match="credits exhausted"):
        orchestrator.generate_replacements("instructions", _sections(1))

    assert mock_llm_client.function_call.call_count == 5


def test_retry_recovers_after_rate_limit(orchestrator, mock_llm_client, sleeps):
    busy = GenerationError("busy", status_code=429)
    mock_llm_client.function_call.side_effect = [busy, busy, _echo_batch(
        'Highlighted text to replace: "text 0"', "", None
    )]

    results = orchestrator.generate_replacements("instructions", _sections(1))

    assert results[0].new_text == "text 0 updated"
    assert sleeps == [2.0, 4.0]


def test_other_errors_are_not_retried(orchestrator, mock_llm_client, sleeps):
    mock_llm_client.function_call.side_effect = GenerationError("AI API error: 500", status_code=500)

    with pytest.raises(GenerationError) as exc_info:
        orchestrator.generate_replacements("instructions", _sections(1))

    assert not isinstance(exc_info.value, RateLimitError)
    assert exc_info.value.status_code == 500
    assert mock_llm_client.function_call.call_count == 1
    assert sleeps == []


def test_missing_function_call_is_not_retried(orchestrator, mock_llm_client):
    mock_llm_client.function_call.side_effect = ResponseFormatError("Invalid AI response format")

    with pytest.raises(ResponseFormatError):
        orchestrator.generate_replacements("instructions", _sections(1))

    assert mock_llm_client.function_call.call_count == 1


def test_invalid_arguments_raise_format_error(orchestrator, mock_llm_client):
    mock_llm_client.function_call.return_value = {"replacements": [{"section_number": "first"}]}

    with pytest.raises(ResponseFormatError):
        orchestrator.generate_replacements("instructions", _sections(1))


def test_identify_mode_returns_selected_runs_in_document_order(orchestrator, mock_llm_client):
    mock_llm_client.function_call.return_value = {
        "replacements": [
            {"run_number": 3, "replacement_text": "updated 2", "reason": "percentage"},
            {"run_number": 2, "replacement_text": "updated 1", "reason": "preparer name"},
            {"run_number": 2, "replacement_text": "ignored", "reason": "duplicate"},
            {"run_number": 9, "replacement_text": "ignored", "reason": "out of range"},
        ]
    }
    runs = _sections(3)

    results = orchestrator.identify_and_replace("instructions", runs, "market")

    kwargs = mock_llm_client.function_call.call_args.kwargs
    assert kwargs["tool"] is IDENTIFY_REPLACEMENTS_TOOL
    assert "[Run 1] text 0\n[Run 2] text 1\n[Run 3] text 2" in kwargs["user_message"]
    assert [(r.original_text, r.new_text, r.reason) for r in results] == [
        ("text 1", "updated 1", "preparer name"),
        ("text 2", "updated 2", "percentage"),
    ]


def test_identify_mode_without_selection_fails(orchestrator, mock_llm_client):
    mock_llm_client.function_call.return_value = {"replacements": []}

    with pytest.raises(NoPlaceholdersError, match="Could not identify any text to replace"):
        orchestrator.identify_and_replace("instructions", _sections(3))


def test_identify_mode_without_runs_fails(orchestrator, mock_llm_client):
    with pytest.raises(NoPlaceholdersError, match="No text found"):
        orchestrator.identify_and_replace("instructions", [])
    mock_llm_client.function_call.assert_not_called()


def test_identify_mode_retries_rate_limits(orchestrator, mock_llm_client, sleeps):
    mock_llm_client.function_call.side_effect = GenerationError("busy", status_code=429)

    with pytest.raises(RateLimitError):
        orchestrator.identify_and_replace("instructions", _sections(2))

    assert sleeps == [2.0, 4.0, 8.0, 16.0]


def test_llm_client_is_injected():
    client = MagicMock()
    assert ReplacementOrchestrator(client).llm_client is client
