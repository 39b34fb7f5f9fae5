"""
Orchestration for one uploaded requirements document.

normalize -> analyze -> publish -> aggregate, each step awaited in turn.
Holds no state between requests; settings are read once in from_settings.
"""
import logging
from typing import Callable, Optional

from req2jira.config import Settings
from req2jira.errors import TrackerError
from req2jira.models.jira import DestinationSchema, JiraDestination
from req2jira.models.response import GenerateTicketsResponse
from req2jira.services.input_normalizer import normalize
from req2jira.services.llm_client import StructuringClient
from req2jira.services.result_aggregator import aggregate, build_jira_hierarchy
from req2jira.services.ticket_publisher import publish

logger = logging.getLogger(__name__)


class TicketGenerationPipeline:
    """
    Turns a requirements file into Jira epics and stories.

    This class only sequences the steps; each step lives in its own service.
    """

    def __init__(
        self,
        structuring_client: StructuringClient,
        schema: DestinationSchema,
        jira_timeout: int = 90,
        normalizer: Callable[[bytes, Optional[str]], str] = normalize,
    ):
        self.structuring_client = structuring_client
        self.schema = schema
        self.jira_timeout = jira_timeout
        self.normalizer = normalizer

    @classmethod
    def from_settings(cls, settings: Settings) -> "TicketGenerationPipeline":
        return cls(
            structuring_client=StructuringClient.from_settings(settings),
            schema=DestinationSchema.from_settings(settings),
            jira_timeout=settings.jira_api_timeout,
        )

    def run(self, payload: bytes, mime_type: Optional[str], destination: JiraDestination) -> GenerateTicketsResponse:
        """
        Run the full pipeline for one upload.

        Raises:
            ExtractionError: No text in the upload
            AIServiceError / AIFormatError: Generation failed or was unusable
            TrackerError: An epic or story could not be created; carries the
                keys created before the failure
        """
        text = self.normalizer(payload, mime_type)
        logger.info("Normalized requirements: %d characters", len(text))

        tree = self.structuring_client.analyze(text)
        logger.info("Analysis produced %d epics, %d stories", len(tree.epics), tree.story_count)

        batch = publish(tree, destination, self.schema, timeout=self.jira_timeout)

        if batch.failure is not None:
            failure = batch.failure
            where = f" (epic: {failure.epic_summary})" if failure.epic_summary else ""
            raise TrackerError(
                f"Failed to create {failure.operation.value.replace('_', ' ')}{where}: {failure.message}",
                detail=failure.detail,
                jira=build_jira_hierarchy(batch).model_dump(by_alias=True),
            )

        response = aggregate(tree, batch)
        logger.info(
            "Published %d epics under %s (%s)",
            len(response.jira.child_epics),
            response.jira.parent_epic or "no grouping issue",
            batch.upload_label,
        )
        return response
