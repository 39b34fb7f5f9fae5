"""
Environment configuration and constants.
"""
from typing import List, Optional
from dotenv import load_dotenv
from pydantic_settings import BaseSettings

# Load environment variables from .env file at module import time
load_dotenv()


DEFAULT_SYSTEM_PROMPT = """You are a helpful assistant that converts plain requirements into JSON epics and stories.

Group the requirements into epics. Each epic contains the user stories needed to deliver it.
Respond with a single JSON object of exactly this shape:
{
    "epics": [
        {
            "summary": "<short epic title>",
            "description": "<what the epic delivers>",
            "stories": [
                {
                    "summary": "<short story title>",
                    "description": "<story details>"
                }
            ]
        }
    ]
}

Do not add any other keys. Do not wrap the JSON in prose."""

# Field identifiers configured with this value are left out of Jira payloads
DISABLED_FIELD_MARKER = "skip"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API Configuration
    api_title: str = "Requirements to Jira"
    api_version: str = "0.1.0"

    # Text generation (OpenAI-compatible chat completions)
    perplexity_api_key: Optional[str] = None
    perplexity_model: str = "sonar-pro"
    perplexity_base_url: str = "https://api.perplexity.ai"
    perplexity_timeout_ms: int = 120000
    perplexity_max_retries: int = 2
    system_prompt: str = DEFAULT_SYSTEM_PROMPT

    # Jira field mapping
    jira_epic_name_field_id: str = "customfield_10011"
    jira_epic_link_field_id: str = "customfield_10014"
    jira_epic_issuetype_name: str = "Epic"
    jira_story_issuetype_name: str = "Story"
    jira_link_type: str = "Relates"
    jira_api_timeout: int = 90

    # Input handling
    ocr_language: str = "eng"
    max_upload_mb: int = 15

    # Application Configuration
    log_level: str = "INFO"
    cors_allowed_origins: str = ""

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"

    @property
    def extra_cors_origins(self) -> List[str]:
        """Comma-separated CORS_ALLOWED_ORIGINS as a list."""
        return [o.strip() for o in self.cors_allowed_origins.split(",") if o.strip()]


# Global settings instance
settings = Settings()
