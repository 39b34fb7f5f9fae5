"""
Response payloads returned to the caller of POST /api/generate.
"""
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ChildEpicResult(_CamelModel):
    epic_key: str = Field(..., alias="epicKey")
    stories: List[str] = Field(default_factory=list)


class JiraHierarchy(_CamelModel):
    parent_epic: Optional[str] = Field(None, alias="parentEpic")
    child_epics: List[ChildEpicResult] = Field(default_factory=list, alias="childEpics")


class GenerationStats(_CamelModel):
    epics: int
    stories: int = 0
    stories_per_epic: List[int] = Field(default_factory=list, alias="storiesPerEpic")
    parent_epic: Optional[str] = Field(None, alias="parentEpic")
    upload_label: str = Field(..., alias="uploadLabel")


class GenerateTicketsResponse(_CamelModel):
    message: str
    stats: GenerationStats
    jira: JiraHierarchy


class ErrorResponse(_CamelModel):
    message: str
    error: Optional[str] = None
    jira: Optional[JiraHierarchy] = None
