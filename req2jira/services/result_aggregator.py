"""
Fold a publish batch into the response returned to the caller.
"""
from req2jira.models.analysis import AnalysisResult
from req2jira.models.jira import PublishBatch
from req2jira.models.response import (
    ChildEpicResult,
    GenerateTicketsResponse,
    GenerationStats,
    JiraHierarchy,
)

SUCCESS_MESSAGE = "Requirements analyzed and Jira issues created successfully!"


def build_jira_hierarchy(batch: PublishBatch) -> JiraHierarchy:
    """Created keys in creation order: grouping issue, then each epic with its stories."""
    return JiraHierarchy(
        parent_epic=batch.grouping_ref.key if batch.grouping_ref else None,
        child_epics=[
            ChildEpicResult(
                epic_key=record.epic_ref.key,
                stories=[ref.key for ref in record.story_refs],
            )
            for record in batch.epics
        ],
    )


def aggregate(tree: AnalysisResult, batch: PublishBatch) -> GenerateTicketsResponse:
    jira = build_jira_hierarchy(batch)
    stories_per_epic = [len(child.stories) for child in jira.child_epics]
    return GenerateTicketsResponse(
        message=SUCCESS_MESSAGE,
        stats=GenerationStats(
            epics=len(tree.epics),
            stories=sum(stories_per_epic),
            stories_per_epic=stories_per_epic,
            parent_epic=jira.parent_epic,
            upload_label=batch.upload_label,
        ),
        jira=jira,
    )
