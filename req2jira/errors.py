"""
Error taxonomy for the requirements-to-Jira pipeline.

Every error raised on purpose by the pipeline derives from PipelineError and
knows the HTTP status it maps to, so the API layer can render it without
inspecting the failure.
"""
from typing import Any, Dict, Optional


class PipelineError(Exception):
    """Base class for all expected pipeline failures."""

    status_code: int = 500

    def __init__(self, message: str, detail: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail
        if status_code is not None:
            self.status_code = status_code

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"message": self.message}
        if self.detail:
            payload["error"] = self.detail
        return payload


class ValidationError(PipelineError):
    """Missing or malformed request fields. Raised before any remote call."""

    status_code = 400


class ExtractionError(PipelineError):
    """No usable text could be extracted from the uploaded document."""

    status_code = 422


class AIServiceError(PipelineError):
    """The text-generation endpoint was unreachable or answered with an error."""

    status_code = 502


class AIFormatError(PipelineError):
    """The text-generation response could not be decoded into epics and stories."""

    status_code = 422

    def __init__(self, message: str, raw_response: str = ""):
        super().__init__(message, detail=raw_response or None)
        self.raw_response = raw_response


class TrackerError(PipelineError):
    """Epic or story creation failed; carries everything created before the failure."""

    status_code = 502

    def __init__(self, message: str, detail: Optional[str] = None, jira: Optional[Dict[str, Any]] = None):
        super().__init__(message, detail=detail)
        self.jira = jira or {}

    def to_payload(self) -> Dict[str, Any]:
        payload = super().to_payload()
        payload["jira"] = self.jira
        return payload
