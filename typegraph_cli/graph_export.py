"""Graph export helpers for DOT and JSON outputs."""

from __future__ import annotations

import html
import json
from typing import Dict, List

from .models import EdgeKind, Graph, TypeNode

_HEADER_STYLE: Dict[str, Dict[str, str]] = {
    "struct": {"shape": "none", "border": "#569cd6", "header": "#374151"},
    "class": {"shape": "none", "border": "#569cd6", "header": "#374151"},
    "interface": {"shape": "none", "border": "#4ec9b0", "header": "#1f4e45"},
    "enum": {"shape": "folder", "border": "#d4a017", "header": "#8a6d0b"},
    "alias": {"shape": "component", "border": "#d4a017", "header": "#5c5c5c", "extra": 'style="dashed"'},
}

_EDGE_ATTRS: Dict[EdgeKind, str] = {
    EdgeKind.INHERITANCE: "style=dashed, arrowtail=empty, dir=back",
    EdgeKind.COMPOSITION: "arrowhead=diamond",
    EdgeKind.IMPLEMENTATION: "style=dotted, arrowtail=empty, dir=back",
}


def export_dot(graph: Graph) -> str:
    lines = ["digraph TypeGraph {"]
    lines.append("  rankdir=LR;")
    lines.append('  bgcolor="transparent";')
    lines.append('  node [fontname="Helvetica", fontsize=11];')
    lines.append('  edge [color="#569cd6", fontcolor="#888888", fontsize=9, penwidth=1.5];')

    for node in graph.nodes.values():
        lines.append(_dot_node(node))

    for edge in graph.edges:
        attrs = [_EDGE_ATTRS[edge.kind]]
        if edge.label:
            attrs.append(f'label="{_esc(edge.label)}"')
        port = f':"{_esc(edge.port)}"' if edge.port else ""
        lines.append(f'  "{_esc(edge.source)}"{port} -> "{_esc(edge.target)}" [{", ".join(attrs)}];')

    lines.append("}")
    return "\n".join(lines)


def _dot_node(node: TypeNode) -> str:
    style = _HEADER_STYLE.get(node.kind, _HEADER_STYLE["struct"])
    title = f"<I>&lt;&lt;{node.kind}&gt;&gt;</I><BR/><B>{html.escape(node.label)}</B>"

    rows: List[str] = []
    for f in node.fields:
        if node.kind == "alias":
            shown = f.type_text
        elif node.kind == "enum":
            shown = f"{f.name}({f.type_text})" if f.type_text else f.name
        else:
            shown = f"{f.name}: {f.type_text}"
        rows.append(
            f'<TR><TD ALIGN="LEFT" BORDER="1" SIDES="B" COLOR="#444444" PORT="{html.escape(f.name)}">'
            f'<FONT POINT-SIZE="10" COLOR="#cccccc">{html.escape(shown)}</FONT></TD></TR>'
        )

    attrs = [f"shape={style['shape']}", f'URL="{_esc(node.unit)}#{node.range.start.line}"']
    if "extra" in style:
        attrs.append(style["extra"])
    table = (
        f'<TABLE BORDER="0" CELLBORDER="0" CELLSPACING="0" CELLPADDING="4" '
        f'COLOR="{style["border"]}" BGCOLOR="#1e1e2e">'
        f'<TR><TD BGCOLOR="{style["header"]}" BORDER="1" SIDES="B" CELLPADDING="6">'
        f'<FONT COLOR="white" POINT-SIZE="11">{title}</FONT></TD></TR>'
        f'{"".join(rows)}</TABLE>'
    )
    attrs.append(f"label=<{table}>")
    return f'  "{_esc(node.node_id)}" [{", ".join(attrs)}];'


def export_json(graph: Graph) -> str:
    return json.dumps(graph.to_dict(), indent=2)


def _esc(text: str) -> str:
    return text.replace("\\", "\\\\").replace('"', '\\"')
