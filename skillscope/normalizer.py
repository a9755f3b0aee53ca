"""Turn raw gateway completions into validated domain objects."""

import json
import logging
from typing import Optional

from flask.logging import default_handler
from pydantic import ValidationError as PydanticValidationError

from .errors import MalformedGraphError, UpstreamShapeError
from .generator import Completion
from .helpers import strip_code_fences
from .models import AnalysisResult, MindMapGraph

logger = logging.getLogger("app.normalizer")
logger.addHandler(default_handler)


def extract_tool_arguments(completion: Completion, tool_name: Optional[str] = None) -> dict:
    """Arguments of the (named) tool call as a dict.

    No tool call, empty arguments or arguments that are not a JSON object
    raise UpstreamShapeError.
    """
    calls = [
        call for call in completion.tool_calls if tool_name is None or call.name == tool_name
    ]
    if not calls or not calls[0].arguments:
        logger.error("No tool call found in response")
        raise UpstreamShapeError()

    try:
        arguments = json.loads(calls[0].arguments)
    except json.JSONDecodeError as e:
        logger.error("Tool call arguments are not valid JSON: %s", e)
        raise UpstreamShapeError() from e

    if not isinstance(arguments, dict):
        logger.error("Tool call arguments are not an object")
        raise UpstreamShapeError()
    return arguments


def normalize_analysis(completion: Completion, tool_name: Optional[str] = None) -> AnalysisResult:
    arguments = extract_tool_arguments(completion, tool_name)
    try:
        return AnalysisResult.model_validate(arguments)
    except PydanticValidationError as e:
        logger.error("Analysis does not match the expected shape: %s", e)
        raise UpstreamShapeError() from e


def parse_mind_map(content: Optional[str]) -> MindMapGraph:
    """Parse a (possibly fenced) JSON completion into a graph, dropping dangling edges"""
    if not content or not content.strip():
        logger.error("Empty mind map completion")
        raise MalformedGraphError()

    try:
        data = json.loads(strip_code_fences(content))
        graph = MindMapGraph.model_validate(data)
    except (json.JSONDecodeError, PydanticValidationError) as e:
        logger.error("Failed to parse mind map: %s", e)
        raise MalformedGraphError() from e

    dangling = graph.dangling_edges()
    if dangling:
        logger.warning(
            "Dropping %d edge(s) referencing unknown nodes: %s",
            len(dangling),
            [(edge.from_, edge.to) for edge in dangling],
        )
        graph = graph.without_dangling_edges()
    return graph


def normalize_mind_map(completion: Completion) -> MindMapGraph:
    return parse_mind_map(completion.content)


def normalize_chat(completion: Completion) -> str:
    if completion.content is None or not completion.content.strip():
        logger.error("Empty chat completion")
        raise UpstreamShapeError()
    return completion.content
