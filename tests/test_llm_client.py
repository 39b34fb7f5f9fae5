"""
Tests for the structuring client and its response decoder.
"""
import httpx
import pytest
from openai import APIConnectionError, APIStatusError, APITimeoutError

from req2jira.config import Settings
from req2jira.errors import AIFormatError, AIServiceError
from req2jira.services.llm_client import (
    StructuringClient,
    decode_analysis_response,
    strip_code_fences,
)
from tests.helpers import completion, make_structuring_client

EPICS_JSON = '{"epics":[{"summary":"Auth","stories":[{"summary":"Login page"},{"summary":"Password reset"}]}]}'
_REQUEST = httpx.Request("POST", "https://api.perplexity.ai/chat/completions")


# ---------------------------------------------------------------------------
# decode_analysis_response()
# ---------------------------------------------------------------------------

def test_fenced_and_bare_responses_decode_identically():
    fenced = decode_analysis_response('```json\n{"epics":[]}\n```')
    bare = decode_analysis_response('{"epics":[]}')
    assert fenced == bare
    assert fenced.epics == []


def test_fence_without_language_tag():
    result = decode_analysis_response(f"```\n{EPICS_JSON}\n```")
    assert [e.summary for e in result.epics] == ["Auth"]


def test_strip_code_fences_only_removes_outer_fence():
    assert strip_code_fences('```json\n{"a": "```"}\n```') == '{"a": "```"}'


def test_leading_and_trailing_prose_falls_back_to_brace_slice():
    raw = f"Sure! Here are your epics:\n{EPICS_JSON}\nLet me know if you need more."
    result = decode_analysis_response(raw)
    assert result.epics[0].summary == "Auth"
    assert [s.summary for s in result.epics[0].stories] == ["Login page", "Password reset"]


def test_missing_epics_key_is_zero_epics():
    result = decode_analysis_response('{"note": "nothing to do"}')
    assert result.epics == []


def test_null_epics_is_zero_epics():
    assert decode_analysis_response('{"epics": null}').epics == []


def test_optional_fields_default():
    result = decode_analysis_response('{"epics":[{"summary":"  Billing  "}]}')
    epic = result.epics[0]
    assert epic.summary == "Billing"
    assert epic.description == ""
    assert epic.stories == []


def test_unparseable_response_keeps_raw_text():
    raw = "I could not understand the requirements."
    with pytest.raises(AIFormatError) as exc_info:
        decode_analysis_response(raw)
    assert exc_info.value.raw_response == raw
    assert exc_info.value.status_code == 422


def test_non_object_json_is_rejected():
    with pytest.raises(AIFormatError):
        decode_analysis_response('[{"summary": "Auth"}]')


def test_blank_story_summary_is_rejected():
    with pytest.raises(AIFormatError):
        decode_analysis_response('{"epics":[{"summary":"Auth","stories":[{"summary":"   "}]}]}')


def test_epics_of_wrong_type_are_rejected():
    with pytest.raises(AIFormatError):
        decode_analysis_response('{"epics": "Auth, Billing"}')


# ---------------------------------------------------------------------------
# StructuringClient.analyze()
# ---------------------------------------------------------------------------

def test_analyze_sends_system_and_user_messages():
    client = make_structuring_client(completion(EPICS_JSON))

    result = client.analyze("Build a login page.")

    assert len(result.epics) == 1
    create = client._client.chat.completions.create
    create.assert_called_once()
    kwargs = create.call_args.kwargs
    assert kwargs["model"] == "sonar-pro"
    system, user = kwargs["messages"]
    assert system == {"role": "system", "content": "Return epics as JSON."}
    assert user["role"] == "user"
    assert "Build a login page." in user["content"]
    assert user["content"].endswith("Return only JSON.")


def test_transport_failure_is_retried_then_succeeds():
    client = make_structuring_client(
        APIConnectionError(request=_REQUEST),
        completion(f"```json\n{EPICS_JSON}\n```"),
    )

    result = client.analyze("Build a login page.")

    assert result.epics[0].summary == "Auth"
    assert client._client.chat.completions.create.call_count == 2


def test_timeouts_exhaust_retries():
    client = make_structuring_client(
        *[APITimeoutError(request=_REQUEST) for _ in range(3)],
        max_retries=2,
    )

    with pytest.raises(AIServiceError) as exc_info:
        client.analyze("Build a login page.")

    assert exc_info.value.status_code == 504
    assert "timed out" in exc_info.value.message
    assert client._client.chat.completions.create.call_count == 3


def test_connection_errors_exhaust_retries():
    client = make_structuring_client(
        APIConnectionError(request=_REQUEST),
        APIConnectionError(request=_REQUEST),
        max_retries=1,
    )

    with pytest.raises(AIServiceError) as exc_info:
        client.analyze("Build a login page.")

    assert exc_info.value.status_code == 502
    assert client._client.chat.completions.create.call_count == 2


def test_http_error_is_not_retried():
    response = httpx.Response(401, text='{"error": "invalid api key"}', request=_REQUEST)
    client = make_structuring_client(
        APIStatusError("Unauthorized", response=response, body=None),
        completion(EPICS_JSON),
    )

    with pytest.raises(AIServiceError) as exc_info:
        client.analyze("Build a login page.")

    assert "401" in exc_info.value.message
    assert "invalid api key" in exc_info.value.detail
    assert client._client.chat.completions.create.call_count == 1


def test_missing_content_is_not_retried():
    client = make_structuring_client(completion(None), completion(EPICS_JSON))

    with pytest.raises(AIServiceError) as exc_info:
        client.analyze("Build a login page.")

    assert "missing content" in exc_info.value.message
    assert client._client.chat.completions.create.call_count == 1


def test_format_error_is_not_retried():
    client = make_structuring_client(completion("no json here"), completion(EPICS_JSON))

    with pytest.raises(AIFormatError):
        client.analyze("Build a login page.")
    assert client._client.chat.completions.create.call_count == 1


def test_missing_api_key_fails_before_any_request():
    client = StructuringClient(
        api_key=None,
        model="sonar-pro",
        system_prompt="x",
        base_url="https://api.perplexity.ai",
    )
    with pytest.raises(AIServiceError) as exc_info:
        client.analyze("Build a login page.")
    assert "PERPLEXITY_API_KEY" in exc_info.value.message


def test_from_settings_converts_timeout():
    settings = Settings(
        perplexity_api_key="k",
        perplexity_timeout_ms=30000,
        perplexity_max_retries=4,
        perplexity_model="sonar",
    )
    client = StructuringClient.from_settings(settings)
    assert client.timeout_seconds == 30.0
    assert client.max_retries == 4
    assert client.model == "sonar"
