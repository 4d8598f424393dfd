"""Two-tier memoization for crawled type graphs.

- **Raw cache**: one :class:`~typegraph_cli.models.TypeNode` per type id,
  carrying only the node's directly discovered edges.
- **Graph cache**: fully assembled :class:`~typegraph_cli.models.Graph`
  results keyed by root id.

The stores never reference each other. Assembled graphs do not record which
units they were built from, so any invalidation clears the whole graph cache.
Nothing is evicted apart from invalidation.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional

from .models import Graph, TypeNode

logger = logging.getLogger(__name__)


class GraphCache:
    """Raw per-node store plus derived per-root graph store."""

    def __init__(self) -> None:
        self._raw: Dict[str, TypeNode] = {}
        self._graphs: Dict[str, Graph] = {}

    # ------------------------------------------------------------------
    # Raw node cache
    # ------------------------------------------------------------------

    def get_raw(self, node_id: str) -> Optional[TypeNode]:
        return self._raw.get(node_id)

    def set_raw(self, node_id: str, node: TypeNode) -> None:
        self._raw[node_id] = node

    def has_raw(self, node_id: str) -> bool:
        return node_id in self._raw

    # ------------------------------------------------------------------
    # Derived graph cache
    # ------------------------------------------------------------------

    def get_graph(self, root_id: str) -> Optional[Graph]:
        return self._graphs.get(root_id)

    def set_graph(self, root_id: str, graph: Graph) -> None:
        self._graphs[root_id] = graph

    # ------------------------------------------------------------------
    # Invalidation
    # ------------------------------------------------------------------

    def invalidate(self, unit: str) -> int:
        """Drop every raw entry originating in *unit* and all assembled graphs.

        Returns the number of raw entries removed.
        """
        stale = [node_id for node_id, node in self._raw.items() if node.unit == unit]
        for node_id in stale:
            del self._raw[node_id]
        dropped_graphs = len(self._graphs)
        self._graphs.clear()
        logger.info(
            "Invalidated %s: %d node(s), %d graph(s) dropped",
            unit, len(stale), dropped_graphs,
        )
        return len(stale)

    def clear(self) -> None:
        self._raw.clear()
        self._graphs.clear()

    def stats(self) -> Dict[str, int]:
        return {"nodes": len(self._raw), "graphs": len(self._graphs)}
