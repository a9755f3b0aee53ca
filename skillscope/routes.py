from typing import Type, TypeVar

from flask import jsonify, request
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from .decorators import auth_required, current_user_id
from .errors import ValidationError
from .layout import layout_mind_map
from .models import (
    AnalyzeTopicRequest,
    ChatRequest,
    MindMapGraph,
    MindMapRequest,
    SaveMindMapRequest,
)

ModelT = TypeVar("ModelT", bound=BaseModel)


def _first_error(exception: PydanticValidationError) -> str:
    error = exception.errors()[0]
    message = error.get("msg", "Invalid request")
    if message.startswith("Value error, "):
        return message[len("Value error, "):]
    location = ".".join(str(part) for part in error.get("loc", ()))
    return f"{location}: {message}" if location else message


def parse_body(model: Type[ModelT]) -> ModelT:
    """Validate the JSON body against a request model, ValidationError (400) otherwise"""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(_first_error(e)) from e


def register_routes(server):
    """Register the JSON API routes"""

    @server.app.route("/analyze-topic", methods=["POST"])
    @auth_required(server, optional=True)
    def analyze_topic():
        body = parse_body(AnalyzeTopicRequest)
        analysis = server.assistant.analyze_topic(body.topic, user_id=current_user_id())
        return jsonify({"analysis": analysis.to_wire()})

    @server.app.route("/generate-mind-map", methods=["POST"])
    @auth_required(server, optional=True)
    def generate_mind_map():
        body = parse_body(MindMapRequest)
        graph = server.assistant.generate_mind_map(
            body.topic,
            interest_area=body.interest_area,
            skill_level=body.skill_level,
            user_id=current_user_id(),
        )
        return jsonify({"mindMap": graph.to_wire()})

    @server.app.route("/mind-map/layout", methods=["POST"])
    def mind_map_layout():
        data = request.get_json(silent=True)
        if not isinstance(data, dict) or "mindMap" not in data:
            raise ValidationError("mindMap is required")
        try:
            graph = MindMapGraph.model_validate(data["mindMap"])
        except PydanticValidationError as e:
            raise ValidationError(_first_error(e)) from e
        return jsonify(layout_mind_map(graph))

    @server.app.route("/personalized-chat", methods=["POST"])
    @auth_required(server)
    def personalized_chat():
        body = parse_body(ChatRequest)
        reply = server.assistant.chat(body, user_id=current_user_id())
        return jsonify(reply.to_wire())

    @server.app.route("/conversations", methods=["POST"])
    @auth_required(server)
    def create_conversation():
        data = request.get_json(silent=True) or {}
        conversation = server.assistant.create_conversation(
            current_user_id(), data.get("assistanceType")
        )
        return jsonify({"conversation": conversation.to_wire()}), 201

    @server.app.route("/conversations/<conv_id>", methods=["PATCH"])
    @auth_required(server)
    def update_conversation(conv_id: str):
        data = request.get_json(silent=True) or {}
        conversation = server.assistant.set_assistance_type(
            conv_id, data.get("assistanceType"), current_user_id()
        )
        return jsonify({"conversation": conversation.to_wire()})

    @server.app.route("/conversations/<conv_id>/messages", methods=["GET"])
    @auth_required(server)
    def conversation_messages(conv_id: str):
        after = request.args.get("after", default=None)
        if after is not None:
            try:
                after = int(after)
            except ValueError as e:
                raise ValidationError("after must be a message id") from e
        turns = server.assistant.conversation_feed(conv_id, current_user_id(), after_id=after)
        return jsonify({"messages": [turn.to_wire() for turn in turns]})

    @server.app.route("/mind-maps", methods=["GET", "POST"])
    @auth_required(server)
    def mind_maps():
        if request.method == "GET":
            saved = server.store.list_mind_maps(current_user_id())
            return jsonify({"mindMaps": [mind_map.to_wire() for mind_map in saved]})

        body = parse_body(SaveMindMapRequest)
        saved = server.store.save_mind_map(
            current_user_id(),
            body.topic,
            body.mind_map.without_dangling_edges(),
            interest_area=body.interest_area,
            skill_level=body.skill_level,
        )
        return jsonify({"mindMap": saved.to_wire()}), 201

    @server.app.route("/interests", methods=["GET"])
    @auth_required(server)
    def interests():
        max_limit = server.config.chat.interest_limit
        limit = request.args.get("limit", default=max_limit, type=int)
        if limit < 0:
            raise ValidationError("limit must not be negative")
        found = server.store.top_interests(current_user_id(), min(limit, max_limit))
        return jsonify({"interests": [interest.to_wire() for interest in found]})
