"""Core data models shared by the provider, crawler, cache and renderers."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Dict, List, Optional, Set, Tuple


class SymbolKind(IntEnum):
    """Symbol kinds, numbered as in the Language Server Protocol."""

    FILE = 1
    MODULE = 2
    NAMESPACE = 3
    PACKAGE = 4
    CLASS = 5
    METHOD = 6
    PROPERTY = 7
    FIELD = 8
    CONSTRUCTOR = 9
    ENUM = 10
    INTERFACE = 11
    FUNCTION = 12
    VARIABLE = 13
    CONSTANT = 14
    STRING = 15
    NUMBER = 16
    BOOLEAN = 17
    ARRAY = 18
    OBJECT = 19
    KEY = 20
    NULL = 21
    ENUM_MEMBER = 22
    STRUCT = 23
    EVENT = 24
    OPERATOR = 25
    TYPE_PARAMETER = 26


# Type aliases are reported as TYPE_PARAMETER by rust-analyzer.
TYPE_KINDS = frozenset({
    SymbolKind.CLASS,
    SymbolKind.INTERFACE,
    SymbolKind.STRUCT,
    SymbolKind.ENUM,
    SymbolKind.TYPE_PARAMETER,
})

CONTAINER_KINDS = frozenset({
    SymbolKind.FILE,
    SymbolKind.MODULE,
    SymbolKind.NAMESPACE,
    SymbolKind.PACKAGE,
})


class EdgeKind(str, Enum):
    INHERITANCE = "inheritance"
    COMPOSITION = "composition"
    IMPLEMENTATION = "implementation"


NODE_KIND_NAMES: Dict[SymbolKind, str] = {
    SymbolKind.STRUCT: "struct",
    SymbolKind.ENUM: "enum",
    SymbolKind.INTERFACE: "interface",
    SymbolKind.CLASS: "class",
    SymbolKind.TYPE_PARAMETER: "alias",
}


@dataclass(frozen=True, order=True)
class Position:
    """Zero-based line / character offset inside a source unit."""
    line: int
    character: int

    def __str__(self) -> str:
        return f"{self.line + 1}:{self.character + 1}"


@dataclass(frozen=True)
class Range:
    start: Position
    end: Position

    def contains(self, pos: Position) -> bool:
        return self.start <= pos <= self.end


@dataclass
class DocumentSymbol:
    name: str
    kind: SymbolKind
    range: Range
    selection_range: Range
    detail: str = ""
    children: List["DocumentSymbol"] = field(default_factory=list)


@dataclass(frozen=True)
class Location:
    unit: str
    range: Range


@dataclass(frozen=True)
class LocationLink:
    """Result of a (type-)definition lookup."""
    target_unit: str
    target_range: Range
    target_selection_range: Optional[Range] = None

    @property
    def anchor(self) -> Position:
        sel = self.target_selection_range or self.target_range
        return sel.start


@dataclass(frozen=True)
class WorkspaceSymbol:
    name: str
    kind: SymbolKind
    location: Location


@dataclass(frozen=True)
class FieldDescriptor:
    name: str
    type_text: str


@dataclass(frozen=True)
class Edge:
    source: str
    target: str
    port: Optional[str] = None
    kind: EdgeKind = EdgeKind.COMPOSITION
    label: Optional[str] = None

    @property
    def key(self) -> Tuple[str, str, Optional[str]]:
        return (self.source, self.target, self.port)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "from": self.source,
            "to": self.target,
            "port": self.port,
            "kind": self.kind.value,
            "label": self.label,
        }


@dataclass
class TypeNode:
    """A discovered type definition.

    ``edges`` holds only the edges discovered directly from this node's own
    fields. It is attached once, after the fields have been resolved, and the
    node is treated as immutable from then on.
    """
    node_id: str
    label: str
    kind: str
    unit: str
    range: Range
    chain: Tuple[str, ...]
    fields: List[FieldDescriptor] = field(default_factory=list)
    edges: Tuple[Edge, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.node_id,
            "label": self.label,
            "kind": self.kind,
            "unit": self.unit,
            "line": self.range.start.line,
            "fields": [{"name": f.name, "type": f.type_text} for f in self.fields],
        }


@dataclass
class Graph:
    """Node and edge set produced by a single crawl."""
    root_id: str
    nodes: Dict[str, TypeNode] = field(default_factory=dict)
    edges: List[Edge] = field(default_factory=list)
    _edge_keys: Set[Tuple[str, str, Optional[str]]] = field(
        default_factory=set, repr=False, compare=False,
    )

    def add_node(self, node: TypeNode) -> None:
        self.nodes.setdefault(node.node_id, node)

    def add_edge(self, edge: Edge) -> bool:
        """Record *edge* unless an edge with the same source/target/port exists."""
        if edge.key in self._edge_keys:
            return False
        self._edge_keys.add(edge.key)
        self.edges.append(edge)
        return True

    def __len__(self) -> int:
        return len(self.nodes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "root": self.root_id,
            "nodes": [n.to_dict() for n in self.nodes.values()],
            "edges": [e.to_dict() for e in self.edges],
        }
