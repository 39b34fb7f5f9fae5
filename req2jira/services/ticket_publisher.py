"""
Tracker publisher: create the grouping issue, epics and stories in Jira.

Calls run strictly in order (grouping issue, then each epic followed by its
stories) so parents always exist before their children. What a failed call
does to the rest of the batch is decided by FAILURE_POLICY, not by the call
site: grouping issue and link failures are logged and skipped, epic and story
failures stop the batch. Everything created before a stop stays in the batch.
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from req2jira.models.analysis import AnalysisResult, Epic, Story
from req2jira.models.jira import (
    DestinationSchema,
    EpicPublishRecord,
    FailurePolicy,
    JiraDestination,
    OperationKind,
    OperationOutcome,
    PublishBatch,
    PublishFailure,
)
from req2jira.services.jira_client import JiraClient, JiraClientError, to_adf

logger = logging.getLogger(__name__)


def upload_timestamp(now: datetime) -> str:
    """Timestamp used in the upload label, e.g. 2024-05-01T09-30-12."""
    return now.astimezone(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S")


def upload_label(timestamp: str, upload_id: str) -> str:
    """Label shared by every issue of one upload, e.g. upload-2024-05-01T09-30-12-3f9a1c."""
    return f"upload-{timestamp}-{upload_id}"


def build_grouping_fields(
    project_key: str, schema: DestinationSchema, label: str, timestamp: str, now: datetime
) -> Dict[str, Any]:
    summary = f"Requirements Upload - {timestamp}"
    description = (
        "Parent epic grouping all epics and stories generated from requirements "
        f"document uploaded on {now.strftime('%Y-%m-%d %H:%M:%S %Z').strip()}."
    )
    fields: Dict[str, Any] = {
        "project": {"key": project_key},
        "summary": summary,
        "description": to_adf(description),
        "issuetype": {"name": schema.epic_issue_type},
        "labels": [label],
    }
    if schema.epic_name_field_id:
        fields[schema.epic_name_field_id] = summary
    return fields


def build_epic_fields(project_key: str, schema: DestinationSchema, epic: Epic, label: str) -> Dict[str, Any]:
    fields: Dict[str, Any] = {
        "project": {"key": project_key},
        "summary": epic.summary,
        "description": to_adf(epic.description),
        "issuetype": {"name": schema.epic_issue_type},
        "labels": [label],
    }
    if schema.epic_name_field_id:
        fields[schema.epic_name_field_id] = epic.summary
    return fields


def build_story_fields(project_key: str, schema: DestinationSchema, story: Story, epic_key: str) -> Dict[str, Any]:
    fields: Dict[str, Any] = {
        "project": {"key": project_key},
        "summary": story.summary,
        "description": to_adf(story.description),
        "issuetype": {"name": schema.story_issue_type},
    }
    if schema.epic_link_field_id:
        fields[schema.epic_link_field_id] = epic_key
    return fields


def _attempt(kind: OperationKind, operation: Callable[..., Any], *args: Any) -> OperationOutcome:
    try:
        return OperationOutcome(kind=kind, value=operation(*args))
    except JiraClientError as e:
        return OperationOutcome(kind=kind, error=e)


def _record_failure(batch: PublishBatch, outcome: OperationOutcome, epic_summary: Optional[str] = None) -> bool:
    """Apply the failure policy for a failed outcome. Returns True when the batch must stop."""
    error = outcome.error
    message = getattr(error, "message", None) or str(error)
    detail = getattr(error, "response_text", None) or None

    if outcome.policy is FailurePolicy.LOG_AND_CONTINUE:
        logger.warning("[Jira] %s failed, continuing: %s", outcome.kind.value, message)
        batch.warnings.append(f"{outcome.kind.value}: {message}")
        return False

    logger.error("[Jira] %s failed, stopping batch: %s", outcome.kind.value, message)
    batch.failure = PublishFailure(
        operation=outcome.kind,
        message=message,
        detail=detail,
        epic_summary=epic_summary,
    )
    return True


def publish(
    tree: AnalysisResult,
    destination: JiraDestination,
    schema: DestinationSchema,
    client: Optional[JiraClient] = None,
    timeout: int = 90,
    now: Optional[datetime] = None,
    upload_id: Optional[str] = None,
) -> PublishBatch:
    """
    Create the grouping issue, epics and stories for one upload.

    Args:
        tree: Decoded epics and stories
        destination: Jira site, project and credentials
        schema: Field ids and issue type names for the project
        client: Jira client to use (built from destination when omitted)
        timeout: Jira request timeout in seconds, used when client is omitted
        now: Upload time (defaults to the current UTC time)
        upload_id: Suffix that keeps the label unique per request (random when omitted)

    Returns:
        PublishBatch with every created reference; `failure` is set when an
        epic or story could not be created.
    """
    now = now or datetime.now(timezone.utc)
    timestamp = upload_timestamp(now)
    label = upload_label(timestamp, upload_id or uuid.uuid4().hex[:6])
    client = client or JiraClient.for_destination(destination, timeout=timeout)
    project_key = destination.project_key
    batch = PublishBatch(upload_label=label)

    outcome = _attempt(
        OperationKind.GROUPING_ISSUE,
        client.create_issue,
        build_grouping_fields(project_key, schema, label, timestamp, now),
    )
    if outcome.ok:
        batch.grouping_ref = outcome.value
        logger.info("[Jira] Created grouping issue %s", outcome.value.key)
    else:
        _record_failure(batch, outcome)

    for epic in tree.epics:
        outcome = _attempt(
            OperationKind.EPIC_ISSUE,
            client.create_issue,
            build_epic_fields(project_key, schema, epic, label),
        )
        if not outcome.ok:
            if _record_failure(batch, outcome, epic_summary=epic.summary):
                return batch
            continue

        record = EpicPublishRecord(epic_ref=outcome.value)
        batch.epics.append(record)
        epic_key = record.epic_ref.key
        logger.info("[Jira] Created epic %s: %s", epic_key, epic.summary)

        if batch.grouping_ref is not None:
            link = _attempt(
                OperationKind.ISSUE_LINK,
                client.link_issues,
                batch.grouping_ref.key,
                epic_key,
                schema.link_type,
            )
            if not link.ok:
                _record_failure(batch, link, epic_summary=epic.summary)

        for story in epic.stories:
            outcome = _attempt(
                OperationKind.STORY_ISSUE,
                client.create_issue,
                build_story_fields(project_key, schema, story, epic_key),
            )
            if not outcome.ok:
                if _record_failure(batch, outcome, epic_summary=epic.summary):
                    return batch
                continue
            record.story_refs.append(outcome.value)
            logger.info("[Jira]   Created story %s under %s", outcome.value.key, epic_key)

    return batch
