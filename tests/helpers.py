"""
Test doubles for the Jira REST API and the generation endpoint.
"""
import json
from types import SimpleNamespace
from typing import Any, Dict, List, Optional
from unittest.mock import Mock

from req2jira.services.llm_client import StructuringClient


class FakeJiraResponse:
    """Minimal requests.Response. A raw body is served verbatim and decoded on json()."""

    def __init__(self, status_code: int, body: Any = None, text: str = "", raw: Optional[str] = None):
        self.status_code = status_code
        self.ok = 200 <= status_code < 300
        if raw is not None:
            self.content = raw.encode()
        else:
            self.content = json.dumps(body).encode() if body is not None else b""
        self.text = text or self.content.decode()

    def json(self):
        return json.loads(self.content)


class FakeJiraServer:
    """
    Stands in for requests.post against Jira.

    Issues get incrementing keys PROJ-1, PROJ-2, ... Creation calls listed in
    fail_issue_calls (1-based, counting issue creations only) answer 500.
    """

    def __init__(self, project_key: str = "PROJ"):
        self.project_key = project_key
        self.calls: List[Dict[str, Any]] = []
        self.issue_calls = 0
        self.next_number = 1
        self.fail_issue_calls: set = set()
        self.fail_links = False
        # 1-based issue-creation call number -> canned response
        self.issue_responses: Dict[int, FakeJiraResponse] = {}
        self.link_response: Optional[FakeJiraResponse] = None

    @property
    def issue_payloads(self) -> List[Dict[str, Any]]:
        return [c["data"]["fields"] for c in self.calls if c["url"].endswith("/rest/api/3/issue")]

    @property
    def link_payloads(self) -> List[Dict[str, Any]]:
        return [c["data"] for c in self.calls if c["url"].endswith("/rest/api/3/issueLink")]

    def __call__(self, url, auth=None, headers=None, data=None, timeout=None):
        self.calls.append({"url": url, "auth": auth, "headers": headers, "data": json.loads(data), "timeout": timeout})
        if url.endswith("/rest/api/3/issueLink"):
            if self.fail_links:
                return FakeJiraResponse(404, text='{"errorMessages":["No issue link type with name \'Relates\' found."]}')
            return self.link_response or FakeJiraResponse(201)

        self.issue_calls += 1
        if self.issue_calls in self.issue_responses:
            return self.issue_responses[self.issue_calls]
        if self.issue_calls in self.fail_issue_calls:
            return FakeJiraResponse(500, text='{"errorMessages":["Internal server error"]}')
        number = self.next_number
        self.next_number += 1
        key = f"{self.project_key}-{number}"
        return FakeJiraResponse(
            201,
            {"id": str(10000 + number), "key": key, "self": f"https://acme.atlassian.net/rest/api/3/issue/{10000 + number}"},
        )


def completion(content: Optional[str]):
    """Shape of an openai chat completion response, enough for the client."""
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def make_structuring_client(*responses, max_retries: int = 2) -> StructuringClient:
    """StructuringClient whose openai client returns/raises the given items in order."""
    openai_client = Mock()
    openai_client.chat.completions.create.side_effect = list(responses)
    return StructuringClient(
        api_key="test-key",
        model="sonar-pro",
        system_prompt="Return epics as JSON.",
        base_url="https://api.perplexity.ai",
        timeout_seconds=5,
        max_retries=max_retries,
        client=openai_client,
    )
