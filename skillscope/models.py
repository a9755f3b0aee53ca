"""Data model shared by the contracts, the store and the API.

Field names are snake_case in Python and camelCase on the wire.
"""

import datetime
import re
from enum import Enum
from typing import Annotated, Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

RELEVANCE_STATUSES = ("current", "declining", "outdated")
NODE_CATEGORIES = ("root", "core", "prerequisite", "skill", "resource", "project", "career")
ANALYSIS_SECTIONS = (
    "overview",
    "modern_applications",
    "importance",
    "skills_tools",
    "project_ideas",
    "skill_gap",
)

Bullets = Annotated[List[str], Field(min_length=1)]


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class AssistanceType(str, Enum):
    GENERAL = "general"
    ACADEMIC = "academic"
    OPPORTUNITIES = "opportunities"
    PROJECTS = "projects"

    @classmethod
    def coerce(cls, value: Optional[str], default: "AssistanceType" = None) -> "AssistanceType":
        """Unknown or missing values fall back to default (general)"""
        try:
            return cls(str(value).lower())
        except ValueError:
            return default or cls.GENERAL


# Analysis


class ReplacementTechnology(WireModel):
    name: str
    reason: str = ""

    @classmethod
    def from_text(cls, text: str) -> "ReplacementTechnology":
        """'Go: faster builds' or 'Go - faster builds' -> name + reason"""
        parts = re.split(r":\s+|\s+-\s+|:", text, maxsplit=1)
        if len(parts) == 2:
            return cls(name=parts[0].strip(), reason=parts[1].strip())
        return cls(name=text.strip())


class Relevance(WireModel):
    status: Literal["current", "declining", "outdated"]
    explanation: str
    adoption_rate: Optional[str] = None
    practical_usage: Optional[str] = None
    companies_using_it: Optional[List[str]] = None
    replacement_technologies: Optional[List[ReplacementTechnology]] = None

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, value: Any):
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator("replacement_technologies", mode="before")
    @classmethod
    def accept_plain_strings(cls, value: Any):
        if not isinstance(value, list):
            return value
        return [
            ReplacementTechnology.from_text(item) if isinstance(item, str) else item
            for item in value
        ]


class AnalysisResult(WireModel):
    relevance: Relevance
    overview: Bullets
    modern_applications: Bullets
    importance: Bullets
    skills_tools: Bullets
    project_ideas: Bullets
    skill_gap: Bullets


# Mind map


class MindMapNode(WireModel):
    id: str = Field(min_length=1)
    label: str
    category: str
    description: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def stringify_id(cls, value: Any):
        return str(value) if isinstance(value, int) else value


class MindMapEdge(WireModel):
    from_: str = Field(alias="from")
    to: str

    @field_validator("from_", "to", mode="before")
    @classmethod
    def stringify_ids(cls, value: Any):
        return str(value) if isinstance(value, int) else value


class MindMapGraph(WireModel):
    nodes: Annotated[List[MindMapNode], Field(min_length=1)]
    edges: List[MindMapEdge] = Field(default_factory=list)

    @model_validator(mode="after")
    def unique_node_ids(self):
        seen = set()
        for node in self.nodes:
            if node.id in seen:
                raise ValueError(f"duplicate node id: {node.id}")
            seen.add(node.id)
        return self

    def node_ids(self):
        return {node.id for node in self.nodes}

    def dangling_edges(self) -> List[MindMapEdge]:
        ids = self.node_ids()
        return [edge for edge in self.edges if edge.from_ not in ids or edge.to not in ids]

    def without_dangling_edges(self) -> "MindMapGraph":
        ids = self.node_ids()
        edges = [edge for edge in self.edges if edge.from_ in ids and edge.to in ids]
        return self.model_copy(update={"edges": edges})


# Chat & persistence


class ChatTurn(WireModel):
    id: Optional[int] = None
    conversation_id: Optional[str] = None
    role: Literal["user", "assistant"]
    content: str
    created_at: datetime.datetime


class ChatReply(WireModel):
    """Result of one chat turn; turns is empty when the pair could not be stored"""

    response: str
    turns: List[ChatTurn] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)

    def to_wire(self) -> dict:
        body = super().to_wire()
        if not self.warnings:
            body.pop("warnings", None)
        return body


class Conversation(WireModel):
    id: str
    user_id: Optional[str] = None
    assistance_type: AssistanceType = AssistanceType.GENERAL
    created_at: datetime.datetime


class UserInterest(WireModel):
    topic: str
    search_count: int = Field(default=1, ge=1)
    last_searched_at: datetime.datetime


class SavedMindMap(WireModel):
    id: int
    user_id: str
    topic: str
    interest_area: Optional[str] = None
    skill_level: Optional[str] = None
    map_data: MindMapGraph
    created_at: datetime.datetime


# Request bodies


def _required_text(value: Any, name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{name} is required and must be a string")
    return value.strip()


class AnalyzeTopicRequest(WireModel):
    topic: str = Field(default=None, validate_default=True)

    @field_validator("topic", mode="before")
    @classmethod
    def topic_required(cls, value: Any):
        return _required_text(value, "Topic")


class MindMapRequest(WireModel):
    topic: str = Field(default=None, validate_default=True)
    interest_area: Optional[str] = None
    skill_level: Optional[str] = None

    @field_validator("topic", mode="before")
    @classmethod
    def topic_required(cls, value: Any):
        return _required_text(value, "Topic")

    @field_validator("interest_area", "skill_level", mode="before")
    @classmethod
    def blank_is_none(cls, value: Any):
        if isinstance(value, str) and not value.strip():
            return None
        return value.strip() if isinstance(value, str) else value


class ChatRequest(WireModel):
    message: str = Field(default=None, validate_default=True)
    conversation_id: str = Field(default=None, validate_default=True)
    assistance_type: Optional[str] = None
    user_interests: Optional[List[str]] = None
    user_id: Optional[str] = None

    @field_validator("message", mode="before")
    @classmethod
    def message_required(cls, value: Any):
        return _required_text(value, "Message")

    @field_validator("conversation_id", mode="before")
    @classmethod
    def conversation_required(cls, value: Any):
        return _required_text(value, "conversationId")


class SaveMindMapRequest(WireModel):
    topic: str = Field(default=None, validate_default=True)
    interest_area: Optional[str] = None
    skill_level: Optional[str] = None
    mind_map: MindMapGraph

    @field_validator("topic", mode="before")
    @classmethod
    def topic_required(cls, value: Any):
        return _required_text(value, "Topic")
