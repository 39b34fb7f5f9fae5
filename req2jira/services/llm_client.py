"""
Structuring client: ask the text-generation service for an epic/story tree.

The service speaks the OpenAI chat-completions protocol (Perplexity by
default), so the official openai SDK is used with its base URL pointed at the
configured endpoint. SDK-level retries are disabled: only transport failures
are retried here, HTTP errors fail immediately.
"""
import json
import logging
import re
import time
from typing import Any, Dict, List, Optional

from openai import OpenAI, APIConnectionError, APIStatusError, APITimeoutError
from pydantic import ValidationError as PydanticValidationError

from req2jira.config import Settings
from req2jira.errors import AIFormatError, AIServiceError
from req2jira.models.analysis import AnalysisResult

logger = logging.getLogger(__name__)

_LEADING_FENCE = re.compile(r"^```[A-Za-z0-9_+\-]*[ \t]*\r?\n?")
_TRAILING_FENCE = "```"


def strip_code_fences(text: str) -> str:
    """Remove one leading fence line (optionally language-tagged) and one trailing fence."""
    cleaned = text.strip()
    cleaned = _LEADING_FENCE.sub("", cleaned, count=1)
    cleaned = cleaned.rstrip()
    if cleaned.endswith(_TRAILING_FENCE):
        cleaned = cleaned[: -len(_TRAILING_FENCE)]
    return cleaned.strip()


def _try_parse_json(text: str) -> Optional[Any]:
    try:
        return json.loads(text)
    except (json.JSONDecodeError, ValueError):
        return None


def decode_analysis_response(raw: str) -> AnalysisResult:
    """
    Decode a free-text generation response into an AnalysisResult.

    Tries the fence-stripped text first, then the substring between the first
    '{' and the last '}'. A parsed object without "epics" decodes to zero epics.

    Raises:
        AIFormatError: If no attempt yields a valid epics/stories object
    """
    cleaned = strip_code_fences(raw)
    data = _try_parse_json(cleaned)

    if data is None:
        start = cleaned.find("{")
        end = cleaned.rfind("}")
        if start != -1 and end > start:
            data = _try_parse_json(cleaned[start:end + 1])

    if data is None:
        raise AIFormatError("AI response was not valid JSON.", raw_response=raw)
    if not isinstance(data, dict):
        raise AIFormatError("AI response JSON is not an object.", raw_response=raw)

    try:
        return AnalysisResult.model_validate(data)
    except PydanticValidationError as e:
        raise AIFormatError(
            f"AI response does not match the epics/stories structure: {e.error_count()} invalid field(s).",
            raw_response=raw,
        )


class StructuringClient:
    """Sends requirements text to the generation endpoint and decodes the reply."""

    def __init__(
        self,
        api_key: Optional[str],
        model: str,
        system_prompt: str,
        base_url: str,
        timeout_seconds: float = 120.0,
        max_retries: int = 2,
        client: Optional[OpenAI] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.system_prompt = system_prompt
        self.base_url = base_url
        self.timeout_seconds = timeout_seconds
        self.max_retries = max(0, max_retries)
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings, client: Optional[OpenAI] = None) -> "StructuringClient":
        return cls(
            api_key=settings.perplexity_api_key,
            model=settings.perplexity_model,
            system_prompt=settings.system_prompt,
            base_url=settings.perplexity_base_url,
            timeout_seconds=settings.perplexity_timeout_ms / 1000.0,
            max_retries=settings.perplexity_max_retries,
            client=client,
        )

    def _get_client(self) -> OpenAI:
        if self._client is None:
            if not self.api_key:
                raise AIServiceError(
                    "Missing PERPLEXITY_API_KEY in environment.", status_code=500
                )
            self._client = OpenAI(
                api_key=self.api_key,
                base_url=self.base_url,
                timeout=self.timeout_seconds,
                max_retries=0,
            )
        return self._client

    def build_messages(self, text: str) -> List[Dict[str, str]]:
        return [
            {"role": "system", "content": self.system_prompt},
            {
                "role": "user",
                "content": f"Here are the raw requirements:\n\n{text}\n\nReturn only JSON.",
            },
        ]

    def _request_completion(self, messages: List[Dict[str, str]]) -> str:
        client = self._get_client()
        attempts = self.max_retries + 1
        last_error: Optional[APIConnectionError] = None

        for attempt in range(1, attempts + 1):
            started = time.monotonic()
            try:
                response = client.chat.completions.create(
                    model=self.model,
                    messages=messages,
                    timeout=self.timeout_seconds,
                )
            except APIConnectionError as e:
                # APITimeoutError is a subclass; both are transport failures
                last_error = e
                logger.warning(
                    "Generation request attempt %d/%d failed after %.1fs: %s",
                    attempt, attempts, time.monotonic() - started, e,
                )
                continue
            except APIStatusError as e:
                logger.error("Generation endpoint returned %s", e.status_code)
                raise AIServiceError(
                    f"Perplexity API error: {e.status_code}",
                    detail=e.response.text or e.message,
                )

            logger.info("Generation response received in %.1fs", time.monotonic() - started)
            choices = getattr(response, "choices", None) or []
            content = choices[0].message.content if choices else None
            if not content:
                raise AIServiceError("Perplexity response missing content.")
            return content

        if isinstance(last_error, APITimeoutError):
            raise AIServiceError(
                "AI analysis timed out. The Perplexity API may be slow or unavailable. Please try again.",
                detail=str(last_error),
                status_code=504,
            )
        raise AIServiceError(
            "Network error. Please check your internet connection and try again.",
            detail=str(last_error),
        )

    def analyze(self, text: str) -> AnalysisResult:
        """
        Turn requirements text into an epic/story tree.

        Raises:
            AIServiceError: Transport failure after all retries, HTTP error, or empty content
            AIFormatError: Response could not be decoded
        """
        logger.info("Requesting analysis from %s (model=%s, %d chars)", self.base_url, self.model, len(text))
        raw = self._request_completion(self.build_messages(text))
        result = decode_analysis_response(raw)
        if not result.epics:
            logger.warning("AI response contained no epics")
        for index, epic in enumerate(result.epics, start=1):
            logger.info("  [Epic %d] %s (%d stories)", index, epic.summary, len(epic.stories))
        return result
