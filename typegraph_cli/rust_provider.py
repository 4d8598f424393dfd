"""Tree-sitter backed symbol provider for Rust workspaces.

Answers the same questions a language server would, from source alone:

- document symbols for structs (named and tuple), enums, type aliases,
  traits and inline modules;
- (type-)definition lookups at a type name inside source text, resolved
  against a workspace-wide index;
- raw source text for a range, so callers can locate type names;
- workspace symbol search over that index.

Names that are not defined anywhere in the workspace (``Vec``, ``Arc``,
third-party types) resolve to a synthetic ``extern:///<Name>`` unit, which is
never part of the workspace. This mirrors a language server jumping into the
standard library.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set

import tree_sitter_rust
from tree_sitter import Language, Parser as TSParser

from . import config
from .models import (
    TYPE_KINDS,
    DocumentSymbol,
    Location,
    LocationLink,
    Position,
    Range,
    SymbolKind,
    WorkspaceSymbol,
)
from .provider import ProviderError, SymbolProvider, path_to_unit, unit_to_path
from .unwrapper import base_name

logger = logging.getLogger(__name__)

EXTERN_SCHEME = "extern:///"

_WS_RE = re.compile(r"\s+")

# struct-like items -> kind
_ITEM_KINDS: Dict[str, SymbolKind] = {
    "struct_item": SymbolKind.STRUCT,
    "union_item": SymbolKind.STRUCT,
    "enum_item": SymbolKind.ENUM,
    "type_item": SymbolKind.TYPE_PARAMETER,
    "trait_item": SymbolKind.INTERFACE,
}

_TYPE_NAME_NODES = frozenset({"type_identifier"})


def _pos(point: Any) -> Position:
    return Position(point[0], point[1])


def _range(node: Any) -> Range:
    return Range(_pos(node.start_point), _pos(node.end_point))


def _text(node: Any) -> str:
    return _WS_RE.sub(" ", node.text.decode("utf-8")).strip()


def _walk(symbols: Sequence[DocumentSymbol]) -> Iterable[DocumentSymbol]:
    for sym in symbols:
        yield sym
        yield from _walk(sym.children)


@dataclass
class _ParsedUnit:
    mtime: int
    source: bytes
    tree: Any
    symbols: List[DocumentSymbol]


class RustWorkspaceProvider(SymbolProvider):
    """Symbol provider over the ``*.rs`` files below *workspace_root*."""

    def __init__(
        self,
        workspace_root: Path,
        exclude: Optional[Sequence[str]] = None,
    ) -> None:
        self.workspace_root = workspace_root.resolve()
        self._exclude = list(config.DEFAULT_EXCLUDE_PATTERNS if exclude is None else exclude)
        self._parser = TSParser(Language(tree_sitter_rust.language()))
        self._parsed: Dict[str, _ParsedUnit] = {}
        self._index: Optional[Dict[str, List[WorkspaceSymbol]]] = None

    # ------------------------------------------------------------------
    # Workspace
    # ------------------------------------------------------------------

    def exclude_patterns(self) -> List[str]:
        return list(self._exclude)

    async def is_in_workspace(self, unit: str) -> bool:
        if unit.startswith(EXTERN_SCHEME):
            return False
        try:
            path = unit_to_path(unit)
        except ProviderError:
            return False
        return path.is_file() and path.resolve().is_relative_to(self.workspace_root)

    async def list_units(self) -> List[str]:
        units: List[str] = []
        for ext in sorted(config.SUPPORTED_EXTENSIONS):
            for path in sorted(self.workspace_root.rglob(f"*{ext}")):
                rel = path.relative_to(self.workspace_root)
                if any(part in config.SKIP_DIRS for part in rel.parts):
                    continue
                units.append(path_to_unit(path))
        return units

    def invalidate(self, unit: str) -> None:
        self._parsed.pop(unit, None)
        self._index = None

    # ------------------------------------------------------------------
    # Document symbols
    # ------------------------------------------------------------------

    async def document_symbols(self, unit: str) -> List[DocumentSymbol]:
        parsed = self._parse(unit)
        return parsed.symbols if parsed is not None else []

    async def source_text(self, unit: str, span: Range) -> str:
        parsed = self._parse(unit)
        if parsed is None:
            return ""
        lines = parsed.source.split(b"\n")

        def offset(pos: Position) -> int:
            line = min(pos.line, len(lines) - 1)
            return sum(len(text) + 1 for text in lines[:line]) + min(pos.character, len(lines[line]))

        return parsed.source[offset(span.start):offset(span.end)].decode("utf-8", errors="replace")

    def _parse(self, unit: str) -> Optional[_ParsedUnit]:
        if unit.startswith(EXTERN_SCHEME):
            return None
        path = unit_to_path(unit)
        if not path.is_file():
            return None
        try:
            mtime = path.stat().st_mtime_ns
            cached = self._parsed.get(unit)
            if cached is not None and cached.mtime == mtime:
                return cached
            source = path.read_bytes()
        except OSError as exc:
            raise ProviderError(f"Cannot read {path}: {exc}") from exc

        tree = self._parser.parse(source)
        parsed = _ParsedUnit(mtime, source, tree, self._collect(tree.root_node))
        self._parsed[unit] = parsed
        logger.debug("Parsed %s: %d top-level symbol(s)", path, len(parsed.symbols))
        return parsed

    def _collect(self, ts_node: Any) -> List[DocumentSymbol]:
        symbols: List[DocumentSymbol] = []
        for child in ts_node.named_children:
            if child.type == "mod_item":
                name_node = child.child_by_field_name("name")
                body = child.child_by_field_name("body")
                if name_node is None or body is None:
                    continue
                symbols.append(DocumentSymbol(
                    name=_text(name_node),
                    kind=SymbolKind.MODULE,
                    range=_range(child),
                    selection_range=_range(name_node),
                    children=self._collect(body),
                ))
                continue

            kind = _ITEM_KINDS.get(child.type)
            if kind is None:
                continue
            name_node = child.child_by_field_name("name")
            if name_node is None:
                continue

            symbol = DocumentSymbol(
                name=_text(name_node),
                kind=kind,
                range=_range(child),
                selection_range=_range(name_node),
            )
            if kind == SymbolKind.STRUCT:
                symbol.children = self._struct_fields(child.child_by_field_name("body"))
            elif kind == SymbolKind.ENUM:
                symbol.children = self._enum_variants(child.child_by_field_name("body"))
            elif kind == SymbolKind.TYPE_PARAMETER:
                aliased = child.child_by_field_name("type")
                symbol.detail = _text(aliased) if aliased is not None else ""
            symbols.append(symbol)
        return symbols

    @staticmethod
    def _struct_fields(body: Any) -> List[DocumentSymbol]:
        if body is None:
            return []
        fields: List[DocumentSymbol] = []
        if body.type == "ordered_field_declaration_list":
            for i, ty in enumerate(body.children_by_field_name("type")):
                fields.append(DocumentSymbol(
                    name=str(i),
                    kind=SymbolKind.FIELD,
                    range=_range(ty),
                    selection_range=_range(ty),
                    detail=_text(ty),
                ))
            return fields

        for decl in body.named_children:
            if decl.type != "field_declaration":
                continue
            name_node = decl.child_by_field_name("name")
            ty = decl.child_by_field_name("type")
            if name_node is None or ty is None:
                continue
            fields.append(DocumentSymbol(
                name=_text(name_node),
                kind=SymbolKind.FIELD,
                range=_range(decl),
                selection_range=_range(name_node),
                detail=_text(ty),
            ))
        return fields

    @staticmethod
    def _enum_variants(body: Any) -> List[DocumentSymbol]:
        if body is None:
            return []
        variants: List[DocumentSymbol] = []
        for variant in body.named_children:
            if variant.type != "enum_variant":
                continue
            name_node = variant.child_by_field_name("name")
            if name_node is None:
                continue
            payload = variant.child_by_field_name("body")
            types: List[str] = []
            if payload is not None and payload.type == "ordered_field_declaration_list":
                types = [_text(t) for t in payload.children_by_field_name("type")]
            elif payload is not None:
                for decl in payload.named_children:
                    ty = decl.child_by_field_name("type") if decl.type == "field_declaration" else None
                    if ty is not None:
                        types.append(_text(ty))
            variants.append(DocumentSymbol(
                name=_text(name_node),
                kind=SymbolKind.ENUM_MEMBER,
                range=_range(variant),
                selection_range=_range(name_node),
                detail=", ".join(types),
            ))
        return variants

    # ------------------------------------------------------------------
    # Definitions
    # ------------------------------------------------------------------

    async def type_definition(self, unit: str, position: Position) -> List[LocationLink]:
        return await self._resolve_at(unit, position, follow_aliases=True)

    async def definition(self, unit: str, position: Position) -> List[LocationLink]:
        return await self._resolve_at(unit, position, follow_aliases=False)

    async def _resolve_at(
        self,
        unit: str,
        position: Position,
        follow_aliases: bool,
    ) -> List[LocationLink]:
        parsed = self._parse(unit)
        if parsed is None:
            return []
        point = (position.line, position.character)
        ts_node = parsed.tree.root_node.named_descendant_for_point_range(point, point)
        if ts_node is None or ts_node.type not in _TYPE_NAME_NODES:
            return []
        name = _text(ts_node)

        index = await self._symbol_index()
        seen: Set[str] = set()
        target = self._lookup(index, name, unit)
        while (
            follow_aliases
            and target is not None
            and target.kind == SymbolKind.TYPE_PARAMETER
            and target.name not in seen
        ):
            seen.add(target.name)
            alias = await self._symbol_for(target)
            aliased = base_name(alias.detail) if alias is not None else None
            if not aliased:
                break
            next_target = self._lookup(index, aliased, target.location.unit)
            if next_target is None:
                return [self._extern_link(aliased)]
            target = next_target

        if target is None:
            return [self._extern_link(name)]
        return [LocationLink(
            target_unit=target.location.unit,
            target_range=target.location.range,
            target_selection_range=target.location.range,
        )]

    async def _symbol_for(self, hit: WorkspaceSymbol) -> Optional[DocumentSymbol]:
        for sym in _walk(await self.document_symbols(hit.location.unit)):
            if sym.name == hit.name and sym.selection_range == hit.location.range:
                return sym
        return None

    @staticmethod
    def _lookup(
        index: Dict[str, List[WorkspaceSymbol]],
        name: str,
        prefer_unit: str,
    ) -> Optional[WorkspaceSymbol]:
        hits = index.get(name, [])
        for hit in hits:
            if hit.location.unit == prefer_unit:
                return hit
        return hits[0] if hits else None

    @staticmethod
    def _extern_link(name: str) -> LocationLink:
        origin = Range(Position(0, 0), Position(0, 0))
        return LocationLink(target_unit=f"{EXTERN_SCHEME}{name}", target_range=origin)

    # ------------------------------------------------------------------
    # Workspace symbols
    # ------------------------------------------------------------------

    async def _symbol_index(self) -> Dict[str, List[WorkspaceSymbol]]:
        if self._index is not None:
            return self._index
        index: Dict[str, List[WorkspaceSymbol]] = {}
        for unit in await self.list_units():
            try:
                symbols = await self.document_symbols(unit)
            except ProviderError as exc:
                logger.warning("Skipping %s in symbol index: %s", unit, exc)
                continue
            for sym in _walk(symbols):
                if sym.kind not in TYPE_KINDS:
                    continue
                index.setdefault(sym.name, []).append(WorkspaceSymbol(
                    name=sym.name,
                    kind=sym.kind,
                    location=Location(unit, sym.selection_range),
                ))
        self._index = index
        return index

    async def workspace_symbol_search(self, name: str) -> List[WorkspaceSymbol]:
        query = name.lower()
        index = await self._symbol_index()
        return [
            hit
            for key, hits in index.items()
            if query in key.lower()
            for hit in hits
        ]
