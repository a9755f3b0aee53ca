"""Fixed, category keyed placement of mind-map nodes.

This is a presentation heuristic: a node's position depends only on its
category and on how many nodes of that category came before it. Edges play no
part, nothing is moved to avoid collisions. Swapping in a real graph layout
only means replacing ``position_for``.
"""

from typing import Dict, List, NamedTuple, Tuple

from .models import MindMapGraph


class LayoutRule(NamedTuple):
    x: int
    y: int
    stride: int
    color: str


# root sits at (400, 50); the first two core nodes straddle it
LAYOUT_RULES: Dict[str, LayoutRule] = {
    "root": LayoutRule(400, 50, 0, "#1EAEDB"),
    "core": LayoutRule(275, 200, 250, "#33C3F0"),
    "prerequisite": LayoutRule(100, 350, 200, "#FF6B6B"),
    "skill": LayoutRule(100, 500, 180, "#4ECDC4"),
    "resource": LayoutRule(100, 650, 180, "#95E1D3"),
    "project": LayoutRule(500, 500, 200, "#F38181"),
    "career": LayoutRule(600, 650, 200, "#AA96DA"),
}
DEFAULT_RULE = LayoutRule(100, 800, 180, "#999")

EDGE_COLOR = "#1EAEDB"


def rule_for(category: str) -> LayoutRule:
    return LAYOUT_RULES.get(category, DEFAULT_RULE)


def position_for(category: str, ordinal: int) -> Tuple[int, int]:
    rule = rule_for(category)
    return rule.x + ordinal * rule.stride, rule.y


def layout_mind_map(graph: MindMapGraph) -> dict:
    """Positioned nodes and edges, shaped for a React Flow style canvas"""
    counters: Dict[str, int] = {}
    nodes: List[dict] = []
    for node in graph.nodes:
        ordinal = counters.get(node.category, 0)
        counters[node.category] = ordinal + 1
        x, y = position_for(node.category, ordinal)
        nodes.append(
            {
                "id": node.id,
                "type": "mindMapNode",
                "position": {"x": x, "y": y},
                "data": {
                    "label": node.label,
                    "category": node.category,
                    "description": node.description,
                    "color": rule_for(node.category).color,
                },
            }
        )

    ids = graph.node_ids()
    edges = [
        {
            "id": f"edge-{index}",
            "source": edge.from_,
            "target": edge.to,
            "type": "smoothstep",
            "animated": True,
            "style": {"stroke": EDGE_COLOR, "strokeWidth": 2},
        }
        for index, edge in enumerate(graph.edges)
        if edge.from_ in ids and edge.to in ids
    ]
    return {"nodes": nodes, "edges": edges}
