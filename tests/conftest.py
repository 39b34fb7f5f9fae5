"""
Shared fixtures for the pipeline tests.
"""
from unittest.mock import patch

import pytest

from req2jira.models.jira import DestinationSchema, JiraDestination
from tests.helpers import FakeJiraServer


@pytest.fixture
def jira_server():
    """Fake Jira behind requests.post; remote Jira is never contacted."""
    server = FakeJiraServer()
    with patch("req2jira.services.jira_client.requests.post", side_effect=server) as mock_post:
        server.mock = mock_post
        yield server


@pytest.fixture
def destination():
    return JiraDestination(
        base_url="https://acme.atlassian.net",
        project_key="PROJ",
        principal="dev@acme.io",
        credential="token-123",
    )


@pytest.fixture
def schema():
    return DestinationSchema()
