"""Type composition graph crawler.

Starting from a root type symbol, the crawler walks the symbol's fields,
resolves each field's type through a :class:`~typegraph_cli.provider.SymbolProvider`
and recurses into every type it finds. Traversal is bounded by a visited set
scoped to one crawl, so cyclic type graphs terminate while back-edges are
still recorded.

Work is memoized in a :class:`~typegraph_cli.cache.GraphCache`:

* a node whose cached edges all point at cached nodes is spliced in without
  touching the provider ("full hit");
* a node with any uncached edge target is recomputed ("partial hit");
* every freshly built node is stored with its direct edges only.

Provider failures never abort a crawl. The failing field is skipped and the
reason recorded in the :class:`~typegraph_cli.trace.CrawlTrace`.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Set, Tuple

from .cache import GraphCache
from .identity import type_id
from .models import (
    CONTAINER_KINDS,
    NODE_KIND_NAMES,
    TYPE_KINDS,
    DocumentSymbol,
    Edge,
    EdgeKind,
    FieldDescriptor,
    Graph,
    LocationLink,
    Position,
    Range,
    SymbolKind,
    TypeNode,
)
from .provider import ExcludeMatcher, SymbolProvider
from .trace import CrawlTrace
from .unwrapper import (
    UnwrapResult,
    base_name,
    is_reserved,
    split_type_arguments,
    strip_reference,
    unwrap_type,
)

WORKSPACE_ROOT_ID = "workspace://"

_FIELD_KINDS = frozenset({SymbolKind.FIELD, SymbolKind.PROPERTY})
_ALIAS_FIELD = "def"


@dataclass(frozen=True)
class SymbolRef:
    """A type symbol located inside a unit."""
    unit: str
    chain: Tuple[str, ...]
    symbol: DocumentSymbol

    @property
    def node_id(self) -> str:
        return type_id(self.unit, self.chain)


@dataclass
class _FieldSlot:
    """One type reference of a field. ``span`` covers the field's type text."""
    name: str
    type_text: str
    span: Range


@dataclass
class _CrawlState:
    graph: Graph
    trace: CrawlTrace
    visited: Set[str] = field(default_factory=set)


# ===================================================================
# Symbol tree helpers
# ===================================================================

def find_type_symbol_at(
    symbols: Sequence[DocumentSymbol],
    pos: Position,
) -> Optional[Tuple[Tuple[str, ...], DocumentSymbol]]:
    """Return the chain and symbol of the first type symbol containing *pos*.

    Descends through enclosing non-type symbols (modules, namespaces). Stops
    at the first enclosing symbol that is neither a type nor has children.
    """
    chain: List[str] = []
    level = symbols
    while level:
        hit = next((s for s in level if s.range.contains(pos)), None)
        if hit is None:
            return None
        chain.append(hit.name)
        if hit.kind in TYPE_KINDS:
            return tuple(chain), hit
        if not hit.children:
            return None
        level = hit.children
    return None


def find_symbol_by_chain(
    symbols: Sequence[DocumentSymbol],
    chain: Sequence[str],
) -> Optional[DocumentSymbol]:
    level = symbols
    found: Optional[DocumentSymbol] = None
    for name in chain:
        found = next((s for s in level if s.name == name), None)
        if found is None:
            return None
        level = found.children
    return found


def iter_type_symbols(
    symbols: Sequence[DocumentSymbol],
    prefix: Tuple[str, ...] = (),
) -> Iterable[Tuple[Tuple[str, ...], DocumentSymbol]]:
    """Yield every type symbol, looking inside container symbols."""
    for sym in symbols:
        chain = prefix + (sym.name,)
        if sym.kind in TYPE_KINDS:
            yield chain, sym
        elif sym.kind in CONTAINER_KINDS:
            yield from iter_type_symbols(sym.children, chain)


def _type_span(symbol: DocumentSymbol) -> Range:
    # the type text follows the name; tuple fields have no name of their own
    sel, full = symbol.selection_range, symbol.range
    start = sel.end if sel.end < full.end else full.start
    return Range(start, full.end)


def _members(symbol: DocumentSymbol) -> List[DocumentSymbol]:
    if symbol.kind == SymbolKind.TYPE_PARAMETER:
        return [DocumentSymbol(
            name=_ALIAS_FIELD,
            kind=SymbolKind.FIELD,
            range=symbol.range,
            selection_range=symbol.selection_range,
            detail=symbol.detail,
        )]
    wanted = {SymbolKind.ENUM_MEMBER} if symbol.kind == SymbolKind.ENUM else _FIELD_KINDS
    return [child for child in symbol.children if child.kind in wanted]


def _field_slots(member: DocumentSymbol) -> List[_FieldSlot]:
    """Split a member into the type references it holds.

    An enum variant carrying several payloads (``Pair(Circle, Square)``)
    yields one slot per payload, all under the variant's name.
    """
    text = member.detail or ""
    span = _type_span(member)
    if member.kind == SymbolKind.ENUM_MEMBER:
        return [_FieldSlot(member.name, part, span) for part in split_type_arguments(text)]
    return [_FieldSlot(member.name, text, span)]


def _locate(text: str, start: Position, candidate: str) -> Optional[Position]:
    """Position of *candidate*'s bare type name inside *text*, which begins at *start*."""
    name = base_name(candidate)
    if not name:
        return None
    offset = text.find(strip_reference(candidate))
    match = re.compile(rf"\b{re.escape(name)}\b").search(text, max(offset, 0))
    if match is None:
        return None
    before = text[:match.start()]
    newlines = before.count("\n")
    if newlines == 0:
        return Position(start.line, start.character + len(before))
    return Position(start.line + newlines, len(before) - before.rfind("\n") - 1)


# ===================================================================
# Crawler
# ===================================================================

class GraphCrawler:
    """Builds type composition graphs on top of a symbol provider."""

    def __init__(self, provider: SymbolProvider, cache: Optional[GraphCache] = None) -> None:
        self.provider = provider
        self.cache = cache if cache is not None else GraphCache()
        self._excludes = ExcludeMatcher(provider.exclude_patterns(), provider.workspace_root)

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def generate(self, unit: str, position: Position, trace: CrawlTrace) -> Optional[Graph]:
        """Crawl from the type symbol under *position*, or return ``None``."""
        try:
            if not await self.is_usable(unit):
                trace.debug("%s is outside the workspace or excluded", unit)
                return None
            symbols = await self.provider.document_symbols(unit)
        except Exception as exc:
            trace.warning("Could not list symbols of %s: %s", unit, exc)
            return None

        found = find_type_symbol_at(symbols or [], position)
        if found is None:
            trace.debug("No type symbol at %s:%s", unit, position)
            return None

        chain, symbol = found
        return await self.crawl_root(unit, chain, trace, symbol=symbol)

    async def crawl_root(
        self,
        unit: str,
        chain: Sequence[str],
        trace: CrawlTrace,
        symbol: Optional[DocumentSymbol] = None,
    ) -> Graph:
        """Return the graph rooted at ``(unit, chain)``, using both caches."""
        root_id = type_id(unit, chain)
        cached = self.cache.get_graph(root_id)
        if cached is not None:
            trace.debug("Graph cache hit for %s", root_id)
            return cached

        state = _CrawlState(graph=Graph(root_id), trace=trace)
        await self._visit(unit, tuple(chain), symbol, state)
        self._remember(root_id, state)
        return state.graph

    async def scan_workspace(self, trace: CrawlTrace) -> Graph:
        """Crawl every type symbol of every usable unit into one graph."""
        cached = self.cache.get_graph(WORKSPACE_ROOT_ID)
        if cached is not None:
            trace.debug("Graph cache hit for workspace scan")
            return cached

        state = _CrawlState(graph=Graph(WORKSPACE_ROOT_ID), trace=trace)
        try:
            units = await self.provider.list_units()
        except Exception as exc:
            trace.warning("Could not list workspace units: %s", exc)
            units = []

        for unit in units:
            try:
                if not await self.is_usable(unit):
                    continue
                symbols = await self.provider.document_symbols(unit)
            except Exception as exc:
                trace.warning("Could not list symbols of %s: %s", unit, exc)
                continue
            for chain, symbol in iter_type_symbols(symbols or []):
                await self._visit(unit, chain, symbol, state)

        self._remember(WORKSPACE_ROOT_ID, state)
        return state.graph

    async def is_usable(self, unit: str) -> bool:
        """True when *unit* is inside the workspace and not excluded."""
        if self._excludes.matches(unit):
            return False
        return await self.provider.is_in_workspace(unit)

    # ------------------------------------------------------------------
    # Traversal
    # ------------------------------------------------------------------

    def _remember(self, root_id: str, state: _CrawlState) -> None:
        graph = state.graph
        if graph.nodes:
            self.cache.set_graph(root_id, graph)
        state.trace.info(
            "Crawl of %s done: %d node(s), %d edge(s)",
            root_id, len(graph.nodes), len(graph.edges),
        )

    async def _visit(
        self,
        unit: str,
        chain: Tuple[str, ...],
        symbol: Optional[DocumentSymbol],
        state: _CrawlState,
    ) -> None:
        node_id = type_id(unit, chain)
        if node_id in state.visited:
            return
        state.visited.add(node_id)

        cached = self.cache.get_raw(node_id)
        if cached is not None:
            if all(self.cache.has_raw(edge.target) for edge in cached.edges):
                await self._splice(cached, state)
                return
            state.trace.info("Partial cache hit for %s; recomputing", node_id)

        if symbol is None:
            symbol = await self._reload_symbol(unit, chain, state.trace)
            if symbol is None:
                return

        await self._expand(SymbolRef(unit, chain, symbol), state)

    async def _splice(self, node: TypeNode, state: _CrawlState) -> None:
        state.graph.add_node(node)
        for edge in node.edges:
            state.graph.add_edge(edge)
        for edge in node.edges:
            target = self.cache.get_raw(edge.target)
            if target is not None:
                await self._visit(target.unit, target.chain, None, state)

    async def _reload_symbol(
        self,
        unit: str,
        chain: Tuple[str, ...],
        trace: CrawlTrace,
    ) -> Optional[DocumentSymbol]:
        try:
            symbols = await self.provider.document_symbols(unit)
        except Exception as exc:
            trace.warning("Could not reload %s from %s: %s", "::".join(chain), unit, exc)
            return None
        symbol = find_symbol_by_chain(symbols or [], chain)
        if symbol is None:
            trace.warning("%s no longer exists in %s", "::".join(chain), unit)
        return symbol

    async def _expand(self, ref: SymbolRef, state: _CrawlState) -> None:
        trace = state.trace
        symbol = ref.symbol
        members = _members(symbol)
        slots = [slot for member in members for slot in _field_slots(member)]
        node = TypeNode(
            node_id=ref.node_id,
            label=symbol.name,
            kind=NODE_KIND_NAMES.get(symbol.kind, "class"),
            unit=ref.unit,
            range=symbol.range,
            chain=ref.chain,
            fields=[FieldDescriptor(m.name, m.detail or "") for m in members],
        )
        state.graph.add_node(node)

        direct: List[Edge] = []
        seen_keys: Set[Tuple[str, str, Optional[str]]] = set()

        for slot in slots:
            raw = slot.type_text.strip()
            if not raw or is_reserved(raw):
                continue
            unwrapped = unwrap_type(raw)
            candidate = unwrapped.inner_type if unwrapped.is_wrapper else raw
            if is_reserved(candidate):
                trace.debug("%s.%s: payload %s is primitive", symbol.name, slot.name, candidate)
                continue

            try:
                target = await self._resolve_field(ref.unit, slot, candidate, unwrapped, trace)
            except Exception as exc:
                trace.warning("Skipping field %s.%s: %s", symbol.name, slot.name, exc)
                continue
            if target is None:
                continue

            edge = Edge(
                source=ref.node_id,
                target=target.node_id,
                port=slot.name,
                kind=EdgeKind.COMPOSITION,
                label=unwrapped.wrapper_label,
            )
            if edge.key not in seen_keys:
                seen_keys.add(edge.key)
                direct.append(edge)
            state.graph.add_edge(edge)

            if target.node_id not in state.visited:
                await self._visit(target.unit, target.chain, target.symbol, state)

        node.edges = tuple(direct)
        self.cache.set_raw(node.node_id, node)

    # ------------------------------------------------------------------
    # Field resolution
    # ------------------------------------------------------------------

    async def _resolve_field(
        self,
        unit: str,
        slot: _FieldSlot,
        candidate: str,
        unwrapped: UnwrapResult,
        trace: CrawlTrace,
    ) -> Optional[SymbolRef]:
        text = await self.provider.source_text(unit, slot.span)
        position = _locate(text, slot.span.start, candidate)
        if position is None:
            trace.debug("%s not found in the type text of field %s", candidate, slot.name)
            return None

        links = await self.provider.type_definition(unit, position)
        if not links:
            links = await self.provider.definition(unit, position)
        if not links:
            trace.debug("No definition for field %s (%s)", slot.name, slot.type_text)
            return None

        link: LocationLink = links[0]
        if not await self.is_usable(link.target_unit):
            if unwrapped.is_wrapper:
                return await self._resolve_by_name(candidate, trace)
            trace.debug(
                "Field %s resolves outside the workspace (%s)", slot.name, link.target_unit,
            )
            return None

        return await self._symbol_at(link.target_unit, link.anchor)

    async def _resolve_by_name(self, candidate: str, trace: CrawlTrace) -> Optional[SymbolRef]:
        """Find a workspace type named like the payload of an external wrapper."""
        name = base_name(candidate)
        if not name:
            return None
        for hit in await self.provider.workspace_symbol_search(name):
            if hit.name != name or hit.kind not in TYPE_KINDS:
                continue
            if not await self.is_usable(hit.location.unit):
                continue
            trace.debug("Resolved %s by workspace symbol search", name)
            return await self._symbol_at(hit.location.unit, hit.location.range.start)
        trace.debug("No workspace type named %s", name)
        return None

    async def _symbol_at(self, unit: str, position: Position) -> Optional[SymbolRef]:
        symbols = await self.provider.document_symbols(unit)
        found = find_type_symbol_at(symbols or [], position)
        if found is None:
            return None
        chain, symbol = found
        return SymbolRef(unit, chain, symbol)
