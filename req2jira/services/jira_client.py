"""
Jira client for creating issues and issue links through REST API v3.
"""
from typing import Any, Dict, Optional
import json
import logging

import requests
from requests.auth import HTTPBasicAuth

from req2jira.models.jira import JiraDestination, TrackerIssueRef

logger = logging.getLogger(__name__)


class JiraClientError(Exception):
    """Raised when Jira API calls fail."""

    def __init__(self, message: str, status_code: Optional[int] = None, response_text: str = ""):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.response_text = response_text


def to_adf(text: Optional[str]) -> Dict[str, Any]:
    """Wrap plain text in the single-paragraph Atlassian Document Format envelope."""
    return {
        "type": "doc",
        "version": 1,
        "content": [
            {
                "type": "paragraph",
                "content": [{"type": "text", "text": text or ""}],
            }
        ],
    }


def get_jira_error_message(status: int, error_text: str) -> str:
    """Translate a Jira error status/body into a message a user can act on."""
    lower_error = (error_text or "").lower()

    if status == 401:
        return "Invalid Jira credentials. Please check your email and API token."
    if status == 403:
        return "Access denied. Your API token may not have permission to create issues in this project."
    if status == 404:
        if "site temporarily unavailable" in lower_error or "site not found" in lower_error:
            return "Jira site not found. Please verify your Jira URL (e.g., yourcompany.atlassian.net)."
        if "project" in lower_error:
            return "Project not found. Please verify your Project Key is correct."
        return "Jira resource not found. Please check your Jira URL and Project Key."
    if status == 400:
        if "issuetype" in lower_error:
            return "Invalid issue type. Your Jira project may use different issue type names."
        return "Invalid request to Jira. Please check your project settings."
    if status >= 500:
        return "Jira server error. The Jira service may be temporarily unavailable. Please try again later."

    return f"Jira API error ({status}). Please verify your credentials and try again."


class JiraClient:
    """Client for writing issues and links to one Jira site."""

    def __init__(self, base_url: str, username: str, api_token: str, timeout: int = 90):
        """
        Initialize Jira client.

        Args:
            base_url: Jira instance URL (e.g., "https://yourcompany.atlassian.net")
            username: Jira user email for authentication
            api_token: Jira API token for authentication
            timeout: Request timeout in seconds
        """
        self.jira_url = base_url.rstrip("/")
        self.timeout = timeout

        if not self.jira_url:
            raise JiraClientError("Jira base URL cannot be empty")
        if not username:
            raise JiraClientError("Jira username cannot be empty")
        if not api_token:
            raise JiraClientError("Jira API token cannot be empty")

        self.auth = HTTPBasicAuth(username, api_token)
        self.headers = {"Accept": "application/json", "Content-Type": "application/json"}

    @classmethod
    def for_destination(cls, destination: JiraDestination, timeout: int = 90) -> "JiraClient":
        return cls(
            base_url=destination.base_url,
            username=destination.principal,
            api_token=destination.credential,
            timeout=timeout,
        )

    def _post(self, endpoint: str, data: Dict[str, Any]) -> Any:
        """
        POST JSON to the Jira API.

        Returns:
            Decoded JSON body, or an empty dict for an empty body

        Raises:
            JiraClientError: On transport failure, a non-2xx status or an undecodable body
        """
        url = f"{self.jira_url}{endpoint}"
        try:
            response = requests.post(
                url,
                auth=self.auth,
                headers=self.headers,
                data=json.dumps(data),
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout:
            raise JiraClientError(
                f"Jira API request timed out after {self.timeout} seconds. "
                f"Please try again or check your Jira instance status."
            )
        except requests.exceptions.RequestException as e:
            raise JiraClientError(f"Jira API request failed: {str(e)}")

        if not response.ok:
            logger.error("[Jira] Request to %s failed: %s %s", endpoint, response.status_code, response.text)
            raise JiraClientError(
                get_jira_error_message(response.status_code, response.text),
                status_code=response.status_code,
                response_text=response.text,
            )

        # Issue link creation answers 201 with an empty body
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            # e.g. an HTML login page served with 200 by a mistyped site
            logger.error("[Jira] Request to %s returned a non-JSON body", endpoint)
            raise JiraClientError(
                "Jira returned an unreadable response. Please verify your Jira URL.",
                status_code=response.status_code,
                response_text=response.text,
            )

    def create_issue(self, fields: Dict[str, Any]) -> TrackerIssueRef:
        """
        Create a Jira issue from a complete fields payload.

        Returns:
            Reference to the created issue

        Raises:
            JiraClientError: If creation fails
        """
        body = self._post("/rest/api/3/issue", {"fields": fields})
        if not isinstance(body, dict) or not body.get("key"):
            raise JiraClientError("Jira did not return a key for the created issue", response_text=str(body))
        return TrackerIssueRef(key=body["key"], id=str(body.get("id", "")))

    def link_issues(self, inward_issue: str, outward_issue: str, link_type: str = "Relates") -> None:
        """
        Create a named link between two issues.

        Raises:
            JiraClientError: If the link could not be created
        """
        self._post(
            "/rest/api/3/issueLink",
            {
                "type": {"name": link_type},
                "inwardIssue": {"key": inward_issue},
                "outwardIssue": {"key": outward_issue},
            },
        )
