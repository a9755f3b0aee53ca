"""Prompt construction for the three contracts.

Prompt text lives in pattern directories (see ``patterns/``); this module only
decides which pattern to render with which variables and assembles the
message list sent to the gateway.
"""

import datetime
from typing import Iterable, List, Optional, Sequence

from langchain_core.messages.chat import ChatMessage

from .models import AssistanceType, ChatTurn
from .variable_handler import PatternLoader

ANALYSIS_TOOL_NAME = "provide_analysis"

_BULLETS = {"type": "array", "items": {"type": "string"}}

ANALYSIS_TOOL = {
    "type": "function",
    "function": {
        "name": ANALYSIS_TOOL_NAME,
        "description": "Provide structured analysis of a technology topic",
        "parameters": {
            "type": "object",
            "properties": {
                "relevance": {
                    "type": "object",
                    "description": "Relevance assessment in modern technology landscape",
                    "properties": {
                        "status": {
                            "type": "string",
                            "enum": ["current", "declining", "outdated"],
                            "description": "Current relevance status of the topic",
                        },
                        "explanation": {
                            "type": "string",
                            "description": "Brief explanation of the relevance status",
                        },
                        "adoptionRate": {
                            "type": "string",
                            "description": "How widely the technology is adopted today",
                        },
                        "practicalUsage": {
                            "type": "string",
                            "description": "Where it is practically used today",
                        },
                        "companiesUsingIt": {
                            **_BULLETS,
                            "description": "Well known companies using it",
                        },
                        "replacementTechnologies": {
                            "type": "array",
                            "description": "Modern technologies that replaced this (if outdated/declining)",
                            "items": {
                                "type": "object",
                                "properties": {
                                    "name": {"type": "string"},
                                    "reason": {"type": "string"},
                                },
                                "required": ["name", "reason"],
                            },
                        },
                    },
                    "required": ["status", "explanation"],
                },
                "overview": {**_BULLETS, "description": "3-4 overview points about the topic"},
                "modernApplications": {**_BULLETS, "description": "4-5 points about modern applications"},
                "importance": {**_BULLETS, "description": "3-4 points about importance and impact"},
                "skillsTools": {**_BULLETS, "description": "4-5 specific skills and tools to learn"},
                "projectIdeas": {**_BULLETS, "description": "4-5 concrete project ideas"},
                "skillGap": {**_BULLETS, "description": "4-5 points about skill gap analysis"},
            },
            "required": [
                "relevance",
                "overview",
                "modernApplications",
                "importance",
                "skillsTools",
                "projectIdeas",
                "skillGap",
            ],
            "additionalProperties": False,
        },
    },
}


def _message(role: str, content: str) -> ChatMessage:
    return ChatMessage(role=role, content=content)


def analysis_messages(
    patterns: PatternLoader, topic: str, year: Optional[int] = None
) -> List[ChatMessage]:
    if year is None:
        year = datetime.date.today().year
    return [
        _message("system", patterns.render("analyze_topic", tool_name=ANALYSIS_TOOL_NAME)),
        _message("user", patterns.render("analyze_topic", "user.md", topic=topic, year=year)),
    ]


def mind_map_messages(
    patterns: PatternLoader,
    topic: str,
    interest_area: Optional[str] = None,
    skill_level: Optional[str] = None,
) -> List[ChatMessage]:
    system = patterns.render(
        "generate_mind_map",
        interest_area=interest_area or "general",
        skill_level=skill_level or "beginner",
    )
    return [
        _message("system", system),
        _message("user", patterns.render("generate_mind_map", "user.md", topic=topic)),
    ]


def chat_system_prompt(
    patterns: PatternLoader,
    assistance_type: AssistanceType,
    interests: Sequence[str] = (),
) -> str:
    """Pure function of assistance type and interest list"""
    interest_text = ", ".join(interests)
    parts = [
        patterns.render(
            f"chat_{assistance_type.value}",
            interests=interest_text or "technology",
        )
    ]
    if interests:
        parts.append(patterns.render("chat_common", "interests.md", interests=interest_text))
    parts.append(patterns.render("chat_common"))
    return "\n\n".join(parts)


def chat_messages(
    system_prompt: str, history: Iterable[ChatTurn], message: str
) -> List[ChatMessage]:
    messages = [_message("system", system_prompt)]
    messages += [_message(turn.role, turn.content) for turn in history]
    messages.append(_message("user", message))
    return messages
