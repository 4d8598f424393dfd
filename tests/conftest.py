"""Pytest configuration and fixtures for TypeGraph tests."""

import re
import shutil
import tempfile
from collections import Counter
from pathlib import Path
from typing import Dict, Generator, Iterable, List, Optional, Sequence, Set, Tuple

import pytest

from typegraph_cli.cache import GraphCache
from typegraph_cli.crawler import GraphCrawler
from typegraph_cli.models import (
    TYPE_KINDS,
    DocumentSymbol,
    Location,
    LocationLink,
    Position,
    Range,
    SymbolKind,
    WorkspaceSymbol,
)
from typegraph_cli.provider import ProviderError, SymbolProvider
from typegraph_cli.trace import CrawlTrace

MODEL = "file:///ws/src/model.rs"
BILLING = "file:///ws/src/billing.rs"
GENERATED = "file:///ws/src/generated/proto.rs"
RUSTLIB = "file:///rustlib/"

LIBRARY_TYPES = {"Vec", "Arc", "Box", "Rc", "Option", "Result", "HashMap", "RefCell"}

_PREFIXES = {SymbolKind.ENUM: "pub enum ", SymbolKind.TYPE_PARAMETER: "pub type "}
_WORD = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
_MEMBER_KINDS = frozenset({SymbolKind.FIELD, SymbolKind.ENUM_MEMBER})


def _walk(symbols: Sequence[DocumentSymbol]) -> Iterable[DocumentSymbol]:
    for sym in symbols:
        yield sym
        yield from _walk(sym.children)


class FakeProvider(SymbolProvider):
    """In-memory provider answering from virtual Rust source.

    Types are written out line by line as they are added, and ranges are
    taken from that text. A (type-)definition request resolves the word at
    the position by name; ``definition`` on a field name answers with the
    field itself, as rust-analyzer does. Names in ``LIBRARY_TYPES`` or
    ``external_names`` resolve into a unit outside the workspace. Every
    query is counted in ``calls``.
    """

    workspace_root = Path("/ws")

    def __init__(self, patterns: Sequence[str] = ("generated/",)) -> None:
        self.units: Dict[str, List[DocumentSymbol]] = {}
        self.lines: Dict[str, List[str]] = {}
        self.patterns = list(patterns)
        self.calls: Counter = Counter()
        self.failing_fields: Set[str] = set()
        self.type_definition_misses: Set[str] = set()
        self.external_names: Set[str] = set()
        self.invalidated: List[str] = []
        self.list_units_error: Optional[Exception] = None

    # -- building -----------------------------------------------------

    def add_type(
        self,
        unit: str,
        name: str,
        fields: Sequence[Tuple[str, str]] = (),
        kind: SymbolKind = SymbolKind.STRUCT,
        detail: str = "",
    ) -> DocumentSymbol:
        lines = self.lines.setdefault(unit, [])
        line = len(lines)
        prefix = _PREFIXES.get(kind, "pub struct ")
        selection = Range(Position(line, len(prefix)), Position(line, len(prefix) + len(name)))

        if kind == SymbolKind.TYPE_PARAMETER:
            lines.append(f"{prefix}{name} = {detail};")
            symbol = DocumentSymbol(
                name=name,
                kind=kind,
                range=Range(Position(line, 0), Position(line, len(lines[-1]))),
                selection_range=selection,
                detail=detail,
            )
            self.units.setdefault(unit, []).append(symbol)
            return symbol

        lines.append(f"{prefix}{name} {{")
        children = []
        for field_name, type_text in fields:
            if kind == SymbolKind.ENUM:
                member_kind = SymbolKind.ENUM_MEMBER
                text = f"{field_name}({type_text})" if type_text else field_name
            else:
                member_kind = SymbolKind.FIELD
                text = f"{field_name}: {type_text}"
            row = len(lines)
            lines.append(f"    {text},")
            children.append(DocumentSymbol(
                name=field_name,
                kind=member_kind,
                range=Range(Position(row, 4), Position(row, 4 + len(text))),
                selection_range=Range(Position(row, 4), Position(row, 4 + len(field_name))),
                detail=type_text,
            ))
        lines.append("}")
        symbol = DocumentSymbol(
            name=name,
            kind=kind,
            range=Range(Position(line, 0), Position(len(lines) - 1, 1)),
            selection_range=selection,
            detail=detail,
            children=children,
        )
        self.units.setdefault(unit, []).append(symbol)
        return symbol

    def replace_unit(self, unit: str) -> None:
        self.units.pop(unit, None)
        self.lines.pop(unit, None)

    @property
    def total_calls(self) -> int:
        return sum(self.calls.values())

    # -- SymbolProvider -----------------------------------------------

    async def document_symbols(self, unit: str) -> List[DocumentSymbol]:
        self.calls["document_symbols"] += 1
        return self.units.get(unit, [])

    async def source_text(self, unit: str, span: Range) -> str:
        self.calls["source_text"] += 1
        lines = self.lines.get(unit, [])[span.start.line:span.end.line + 1]
        if not lines:
            return ""
        lines[-1] = lines[-1][:span.end.character]
        lines[0] = lines[0][span.start.character:]
        return "\n".join(lines)

    async def type_definition(self, unit: str, position: Position) -> List[LocationLink]:
        self.calls["type_definition"] += 1
        name = self._word_at(unit, position)
        if name is None or name in self.type_definition_misses:
            return []
        return self._links(name)

    async def definition(self, unit: str, position: Position) -> List[LocationLink]:
        self.calls["definition"] += 1
        member = self._member_named_at(unit, position)
        if member is not None:
            return [LocationLink(unit, member.range, member.selection_range)]
        name = self._word_at(unit, position)
        return self._links(name) if name else []

    async def workspace_symbol_search(self, name: str) -> List[WorkspaceSymbol]:
        self.calls["workspace_symbol_search"] += 1
        return [
            WorkspaceSymbol(sym.name, sym.kind, Location(unit, sym.selection_range))
            for unit, symbols in sorted(self.units.items())
            for sym in _walk(symbols)
            if sym.kind in TYPE_KINDS and name.lower() in sym.name.lower()
        ]

    async def is_in_workspace(self, unit: str) -> bool:
        self.calls["is_in_workspace"] += 1
        return unit.startswith("file:///ws/")

    async def list_units(self) -> List[str]:
        self.calls["list_units"] += 1
        if self.list_units_error is not None:
            raise self.list_units_error
        return sorted(self.units)

    def exclude_patterns(self) -> List[str]:
        return list(self.patterns)

    def invalidate(self, unit: str) -> None:
        self.invalidated.append(unit)

    # -- helpers ------------------------------------------------------

    def _word_at(self, unit: str, position: Position) -> Optional[str]:
        for sym in _walk(self.units.get(unit, [])):
            if sym.kind in _MEMBER_KINDS and sym.range.contains(position):
                if sym.name in self.failing_fields:
                    raise ProviderError(f"language server crashed on {sym.name}")
        lines = self.lines.get(unit, [])
        if not 0 <= position.line < len(lines):
            return None
        for match in _WORD.finditer(lines[position.line]):
            if match.start() <= position.character < match.end():
                return match.group(0)
        return None

    def _member_named_at(self, unit: str, position: Position) -> Optional[DocumentSymbol]:
        for sym in _walk(self.units.get(unit, [])):
            if sym.kind in _MEMBER_KINDS and sym.selection_range.contains(position):
                return sym
        return None

    def _links(self, name: str) -> List[LocationLink]:
        origin = Range(Position(0, 0), Position(0, 0))
        if name in self.external_names:
            return [LocationLink(f"{RUSTLIB}{name.lower()}.rs", origin, origin)]
        for unit, symbols in sorted(self.units.items()):
            for sym in _walk(symbols):
                if sym.name == name and sym.kind in TYPE_KINDS:
                    return [LocationLink(unit, sym.range, sym.selection_range)]
        if name in LIBRARY_TYPES:
            return [LocationLink(f"{RUSTLIB}{name.lower()}.rs", origin, origin)]
        return []


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    tmp = Path(tempfile.mkdtemp())
    yield tmp
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def crawler(provider: FakeProvider) -> GraphCrawler:
    return GraphCrawler(provider, GraphCache())


@pytest.fixture
def trace() -> CrawlTrace:
    return CrawlTrace()


@pytest.fixture
def order_provider(provider: FakeProvider) -> FakeProvider:
    """``Order { items: Vec<LineItem>, customer: Customer }`` with local leaf types."""
    provider.add_type(MODEL, "Order", [("items", "Vec<LineItem>"), ("customer", "Customer")])
    provider.add_type(MODEL, "LineItem")
    provider.add_type(MODEL, "Customer")
    return provider


@pytest.fixture
def sample_workspace_path() -> Path:
    """Get path to the sample Rust workspace."""
    return Path(__file__).parent / "fixtures" / "sample_workspace"


@pytest.fixture
def temp_config(temp_dir: Path, monkeypatch) -> Path:
    """Point the TOML config at a temporary file."""
    config_file = temp_dir / "config.toml"
    monkeypatch.setattr("typegraph_cli.config.CONFIG_FILE", config_file)
    return config_file


def line_of(path: Path, needle: str) -> int:
    """Return the 0-based line of the first line containing *needle*."""
    for number, text in enumerate(path.read_text(encoding="utf-8").splitlines()):
        if needle in text:
            return number
    raise AssertionError(f"{needle!r} not found in {path}")
