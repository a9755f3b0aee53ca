"""Server rendered pages: topic analysis, mind map canvas and chat.

Everything shown here is derived from the contract results; errors become a
notice on the same page and the form keeps what the user typed.
"""

from flask import render_template, request

from .errors import (
    NotFoundError,
    QuotaExhaustedError,
    RateLimitError,
    SkillScopeError,
    ValidationError,
)
from .layout import layout_mind_map
from .models import AssistanceType, ChatRequest

SECTIONS = (
    ("overview", "Topic Overview"),
    ("modern_applications", "Modern Applications"),
    ("importance", "Importance & Impact"),
    ("skills_tools", "Skills & Tools to Learn"),
    ("project_ideas", "Project Ideas"),
    ("skill_gap", "Skill Gap Analysis"),
)

RELEVANCE_STYLES = {
    "current": {"badge": "Currently Relevant", "color": "#22c55e", "icon": "✔"},
    "declining": {"badge": "Declining Usage", "color": "#eab308", "icon": "↘"},
    "outdated": {"badge": "Outdated Technology", "color": "#ef4444", "icon": "⚠"},
}
DEFAULT_RELEVANCE_STYLE = {"badge": "Unknown", "color": "#6b7280", "icon": "?"}

NODE_WIDTH = 180
NODE_HEIGHT = 64
CANVAS_MARGIN = 40


def relevance_style(status: str) -> dict:
    return RELEVANCE_STYLES.get(status, DEFAULT_RELEVANCE_STYLE)


def error_notice(error: SkillScopeError, action: str) -> str:
    if isinstance(error, RateLimitError):
        return "Rate limit exceeded. Please try again in a moment."
    if isinstance(error, QuotaExhaustedError):
        return "AI credits depleted. Please add more credits."
    if isinstance(error, ValidationError):
        return error.message
    return f"Failed to {action}. Please try again."


def canvas(layout: dict) -> dict:
    """Pixel geometry for drawing a laid out mind map as SVG"""
    boxes = {node["id"]: node for node in layout["nodes"]}
    lines = []
    for edge in layout["edges"]:
        source = boxes[edge["source"]]["position"]
        target = boxes[edge["target"]]["position"]
        lines.append(
            {
                "x1": source["x"] + NODE_WIDTH / 2,
                "y1": source["y"] + NODE_HEIGHT,
                "x2": target["x"] + NODE_WIDTH / 2,
                "y2": target["y"],
            }
        )
    xs = [node["position"]["x"] for node in layout["nodes"]] or [0]
    ys = [node["position"]["y"] for node in layout["nodes"]] or [0]
    return {
        "nodes": layout["nodes"],
        "lines": lines,
        "min_x": min(xs) - CANVAS_MARGIN,
        "min_y": min(ys) - CANVAS_MARGIN,
        "width": max(xs) - min(xs) + NODE_WIDTH + 2 * CANVAS_MARGIN,
        "height": max(ys) - min(ys) + NODE_HEIGHT + 2 * CANVAS_MARGIN,
        "node_width": NODE_WIDTH,
        "node_height": NODE_HEIGHT,
    }


def register_views(server):
    """Register the HTML pages"""

    @server.app.route("/", methods=["GET", "POST"])
    def index():
        topic = request.form.get("topic", request.args.get("topic", ""))
        analysis, notice = None, None
        if request.method == "POST":
            try:
                analysis = server.assistant.analyze_topic(topic)
            except SkillScopeError as e:
                notice = error_notice(e, "analyze topic")
        return render_template(
            "index.html",
            topic=topic,
            analysis=analysis,
            sections=SECTIONS,
            style=relevance_style(analysis.relevance.status) if analysis else None,
            notice=notice,
        )

    @server.app.route("/mind-map", methods=["GET", "POST"])
    def mind_map():
        form = {
            "topic": request.form.get("topic", request.args.get("topic", "")),
            "interest_area": request.form.get("interest_area", ""),
            "skill_level": request.form.get("skill_level", "beginner"),
        }
        drawing, notice = None, None
        if request.method == "POST":
            try:
                graph = server.assistant.generate_mind_map(
                    form["topic"],
                    interest_area=form["interest_area"] or None,
                    skill_level=form["skill_level"] or None,
                )
                drawing = canvas(layout_mind_map(graph))
            except SkillScopeError as e:
                notice = error_notice(e, "generate mind map")
        return render_template("mind_map.html", form=form, drawing=drawing, notice=notice)

    def earlier_turns(conv_id: str):
        """Transcript for the page; a store failure leaves it empty"""
        if not conv_id:
            return []
        try:
            return server.assistant.conversation_feed(conv_id, None)
        except SkillScopeError as e:
            server.app.logger.warning("Could not load conversation %s: %s", conv_id, e)
            return []

    @server.app.route("/chat", methods=["GET", "POST"])
    def chat():
        conv_id = request.values.get("conversation_id", "")
        assistance_type = AssistanceType.coerce(request.values.get("assistance_type"))
        message = request.form.get("message", "") if request.method == "POST" else ""
        notice = None

        try:
            if not conv_id:
                conv_id = server.assistant.create_conversation(None, assistance_type.value).id
            if request.method == "POST":
                server.assistant.set_assistance_type(conv_id, assistance_type.value, None)
                if message.strip():
                    server.assistant.chat(
                        ChatRequest(
                            message=message,
                            conversation_id=conv_id,
                            assistance_type=assistance_type.value,
                        )
                    )
                    message = ""
            turns = server.assistant.conversation_feed(conv_id, None)
        except NotFoundError:
            conv_id, turns = "", []
            notice = "This conversation no longer exists, a new one will be started."
        except SkillScopeError as e:
            notice = error_notice(e, "send message" if message else "start a conversation")
            turns = earlier_turns(conv_id)

        return render_template(
            "chat.html",
            conversation_id=conv_id,
            assistance_type=assistance_type.value,
            assistance_types=[member.value for member in AssistanceType],
            turns=turns,
            message=message,
            notice=notice,
        )
