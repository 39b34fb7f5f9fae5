"""
Jira-side types: where to publish, how fields map, and what came back.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field
from req2jira.config import DISABLED_FIELD_MARKER, Settings


class TrackerIssueRef(BaseModel):
    """Identifier returned by Jira for a created issue."""

    model_config = {"frozen": True}

    key: str
    id: str


class JiraDestination(BaseModel):
    """Target Jira site, project and credentials for one request."""

    base_url: str = Field(..., description="Normalized Jira URL, e.g. https://acme.atlassian.net")
    project_key: str
    principal: str = Field(..., description="Jira account email")
    credential: str = Field(..., repr=False, description="Jira API token")


class DestinationSchema(BaseModel):
    """
    Field mapping for the destination Jira project.

    Built once at the boundary from settings and passed into the publisher.
    A field id of None means the field is disabled and never sent.
    """

    epic_name_field_id: Optional[str] = "customfield_10011"
    epic_link_field_id: Optional[str] = "customfield_10014"
    epic_issue_type: str = "Epic"
    story_issue_type: str = "Story"
    link_type: str = "Relates"

    @staticmethod
    def _field_or_none(field_id: Optional[str]) -> Optional[str]:
        field_id = (field_id or "").strip()
        if not field_id or field_id.lower() == DISABLED_FIELD_MARKER:
            return None
        return field_id

    @classmethod
    def from_settings(cls, settings: Settings) -> "DestinationSchema":
        return cls(
            epic_name_field_id=cls._field_or_none(settings.jira_epic_name_field_id),
            epic_link_field_id=cls._field_or_none(settings.jira_epic_link_field_id),
            epic_issue_type=settings.jira_epic_issuetype_name,
            story_issue_type=settings.jira_story_issuetype_name,
            link_type=settings.jira_link_type,
        )


class OperationKind(str, Enum):
    """Kinds of Jira calls the publisher makes."""

    GROUPING_ISSUE = "grouping_issue"
    EPIC_ISSUE = "epic_issue"
    STORY_ISSUE = "story_issue"
    ISSUE_LINK = "issue_link"


class FailurePolicy(str, Enum):
    ABORT_BATCH = "abort_batch"
    LOG_AND_CONTINUE = "log_and_continue"


# What a failed call of each kind does to the rest of the batch
FAILURE_POLICY: Dict[OperationKind, FailurePolicy] = {
    OperationKind.GROUPING_ISSUE: FailurePolicy.LOG_AND_CONTINUE,
    OperationKind.EPIC_ISSUE: FailurePolicy.ABORT_BATCH,
    OperationKind.STORY_ISSUE: FailurePolicy.ABORT_BATCH,
    OperationKind.ISSUE_LINK: FailurePolicy.LOG_AND_CONTINUE,
}


@dataclass
class OperationOutcome:
    """Result of a single Jira call: either a value or the error it raised."""

    kind: OperationKind
    value: Any = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def policy(self) -> FailurePolicy:
        return FAILURE_POLICY[self.kind]


class PublishFailure(BaseModel):
    """The call that stopped the batch."""

    operation: OperationKind
    message: str
    detail: Optional[str] = None
    epic_summary: Optional[str] = None


class EpicPublishRecord(BaseModel):
    epic_ref: TrackerIssueRef
    story_refs: List[TrackerIssueRef] = Field(default_factory=list)


class PublishBatch(BaseModel):
    """Everything created for one request, in creation order. Never persisted."""

    upload_label: str
    grouping_ref: Optional[TrackerIssueRef] = None
    epics: List[EpicPublishRecord] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    failure: Optional[PublishFailure] = None

    @property
    def succeeded(self) -> bool:
        return self.failure is None
