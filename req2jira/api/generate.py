"""
POST /generate endpoint: requirements file in, Jira epics and stories out.
"""
import logging
import mimetypes
import re
from functools import lru_cache
from typing import List, Optional
from urllib.parse import urlparse

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, field_validator

from req2jira.agent.pipeline import TicketGenerationPipeline
from req2jira.config import settings
from req2jira.errors import ValidationError
from req2jira.models.jira import JiraDestination
from req2jira.models.response import GenerateTicketsResponse

logger = logging.getLogger(__name__)

_SCHEME = re.compile(r"^https?://", re.IGNORECASE)
_HOST_LABEL = r"[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?"
_HOSTNAME = re.compile(rf"^{_HOST_LABEL}(?:\.{_HOST_LABEL})*$", re.IGNORECASE)
_EMAIL = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def normalize_jira_url(raw: str) -> str:
    """
    Prefix https:// when no scheme is given and check the result is a usable URL.

    Returns:
        scheme://host[:port] of the Jira site

    Raises:
        ValueError: If the URL is malformed
    """
    value = (raw or "").strip()
    if not value or re.search(r"\s", value):
        raise ValueError("Jira URL must not be empty or contain whitespace")
    if not _SCHEME.match(value):
        if "://" in value:
            raise ValueError("Jira URL must use http or https")
        value = f"https://{value}"

    parsed = urlparse(value)
    host = parsed.hostname or ""
    try:
        port = parsed.port
    except ValueError:
        raise ValueError("Jira URL has an invalid port")
    if parsed.scheme.lower() not in ("http", "https") or not _HOSTNAME.match(host):
        raise ValueError("Jira URL is not a valid URL")

    netloc = f"{host}:{port}" if port else host
    return f"{parsed.scheme.lower()}://{netloc}"


class GenerateTicketsForm(BaseModel):
    """Validated Jira target fields of the upload form."""

    jira_url: str
    project_key: str = Field(..., min_length=2, max_length=10)
    email: str
    api_token: str = Field(..., min_length=1)

    @field_validator("jira_url")
    @classmethod
    def jira_url_valid(cls, v: str) -> str:
        return normalize_jira_url(v)

    @field_validator("project_key")
    @classmethod
    def project_key_trimmed(cls, v: str) -> str:
        return v.strip()

    @field_validator("email")
    @classmethod
    def email_valid(cls, v: str) -> str:
        v = v.strip()
        if not _EMAIL.match(v):
            raise ValueError("Email must be a valid email address")
        return v

    def to_destination(self) -> JiraDestination:
        return JiraDestination(
            base_url=self.jira_url,
            project_key=self.project_key,
            principal=self.email,
            credential=self.api_token,
        )


def _format_validation_errors(exc: PydanticValidationError) -> str:
    aliases = {
        "jira_url": "jiraUrl",
        "project_key": "projectKey",
        "email": "email",
        "api_token": "apiToken",
    }
    parts: List[str] = []
    for error in exc.errors():
        field = str(error["loc"][0]) if error.get("loc") else "request"
        message = error["msg"].removeprefix("Value error, ")
        parts.append(f"{aliases.get(field, field)}: {message}")
    return "; ".join(parts)


@lru_cache(maxsize=1)
def get_pipeline() -> TicketGenerationPipeline:
    """Dependency providing the process-wide pipeline configured from settings."""
    return TicketGenerationPipeline.from_settings(settings)


router = APIRouter()


@router.post("/generate", response_model=GenerateTicketsResponse)
async def generate_tickets(
    requirements_file: Optional[UploadFile] = File(None, alias="requirementsFile"),
    jira_url: Optional[str] = Form(None, alias="jiraUrl"),
    project_key: Optional[str] = Form(None, alias="projectKey"),
    email: Optional[str] = Form(None, alias="email"),
    api_token: Optional[str] = Form(None, alias="apiToken"),
    pipeline: TicketGenerationPipeline = Depends(get_pipeline),
) -> GenerateTicketsResponse:
    """
    Analyze an uploaded requirements document and create Jira issues for it.

    Accepts multipart/form-data with a text or image file and the Jira target.
    All validation happens before any remote call is made.
    """
    provided = {
        "requirementsFile": requirements_file,
        "jiraUrl": jira_url,
        "projectKey": project_key,
        "email": email,
        "apiToken": api_token,
    }
    missing = [
        name for name, value in provided.items()
        if value is None or (isinstance(value, str) and not value.strip())
    ]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    try:
        form = GenerateTicketsForm(
            jira_url=jira_url,
            project_key=project_key,
            email=email,
            api_token=api_token,
        )
    except PydanticValidationError as e:
        raise ValidationError("Validation Error", detail=_format_validation_errors(e))

    payload = await requirements_file.read()
    max_bytes = settings.max_upload_mb * 1024 * 1024
    if len(payload) > max_bytes:
        raise ValidationError(f"Requirements file exceeds the {settings.max_upload_mb} MB limit.")

    mime_type = requirements_file.content_type
    if not mime_type or mime_type == "application/octet-stream":
        mime_type = mimetypes.guess_type(requirements_file.filename or "")[0] or mime_type

    logger.info(
        "Received %s (%s, %d bytes) for project %s",
        requirements_file.filename, mime_type, len(payload), form.project_key,
    )

    return await run_in_threadpool(pipeline.run, payload, mime_type, form.to_destination())
