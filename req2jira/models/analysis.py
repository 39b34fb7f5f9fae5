"""
Epic/story tree produced by the text-generation step.

This is the only contract the structuring client hands to the publisher.
"""
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator


def _require_summary(value: str) -> str:
    value = (value or "").strip()
    if not value:
        raise ValueError("summary must not be empty")
    return value


class Story(BaseModel):
    """A user story; owned by exactly one epic."""

    summary: str = Field(..., description="Story title")
    description: str = Field(default="", description="Story details")

    @field_validator("summary")
    @classmethod
    def summary_not_blank(cls, v: str) -> str:
        return _require_summary(v)

    @field_validator("description", mode="before")
    @classmethod
    def description_default(cls, v: Optional[str]) -> str:
        return v or ""


class Epic(BaseModel):
    """An epic grouping an ordered list of stories."""

    summary: str = Field(..., description="Epic title")
    description: str = Field(default="", description="What the epic delivers")
    stories: List[Story] = Field(default_factory=list)

    @field_validator("summary")
    @classmethod
    def summary_not_blank(cls, v: str) -> str:
        return _require_summary(v)

    @field_validator("description", mode="before")
    @classmethod
    def description_default(cls, v: Optional[str]) -> str:
        return v or ""

    @field_validator("stories", mode="before")
    @classmethod
    def stories_default(cls, v):
        return v if v is not None else []


class AnalysisResult(BaseModel):
    """Decoded generation output. A missing `epics` key means zero epics."""

    epics: List[Epic] = Field(default_factory=list)

    @field_validator("epics", mode="before")
    @classmethod
    def epics_default(cls, v):
        return v if v is not None else []

    @property
    def story_count(self) -> int:
        return sum(len(epic.stories) for epic in self.epics)
