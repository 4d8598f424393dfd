"""Tests for the tree-sitter Rust provider, alone and driving the crawler."""

import shutil
from pathlib import Path

import pytest

from conftest import line_of
from typegraph_cli.crawler import GraphCrawler
from typegraph_cli.identity import type_id
from typegraph_cli.models import Position, Range, SymbolKind
from typegraph_cli.provider import path_to_unit
from typegraph_cli.rust_provider import EXTERN_SCHEME, RustWorkspaceProvider
from typegraph_cli.trace import CrawlTrace


@pytest.fixture
def lib_rs(sample_workspace_path: Path) -> Path:
    return sample_workspace_path / "src" / "lib.rs"


@pytest.fixture
def rust(sample_workspace_path: Path) -> RustWorkspaceProvider:
    return RustWorkspaceProvider(sample_workspace_path)


def _by_name(symbols):
    return {s.name: s for s in symbols}


def _type_position(path, needle, type_name):
    """Position of *type_name* after *needle* on the first line holding *needle*."""
    line = line_of(path, needle)
    text = path.read_text(encoding="utf-8").splitlines()[line]
    return Position(line, text.index(type_name, text.index(needle) + len(needle)))


class TestDocumentSymbols:
    """Symbol extraction from a parsed file."""

    @pytest.mark.asyncio
    async def test_top_level_items(self, rust, lib_rs):
        symbols = _by_name(await rust.document_symbols(path_to_unit(lib_rs)))

        assert symbols["Order"].kind == SymbolKind.STRUCT
        assert symbols["Payment"].kind == SymbolKind.ENUM
        assert symbols["CustomerRef"].kind == SymbolKind.TYPE_PARAMETER
        assert symbols["Priced"].kind == SymbolKind.INTERFACE
        assert symbols["legacy"].kind == SymbolKind.MODULE
        assert "shapes" not in symbols

    @pytest.mark.asyncio
    async def test_struct_fields(self, rust, lib_rs):
        order = _by_name(await rust.document_symbols(path_to_unit(lib_rs)))["Order"]

        assert [(f.name, f.detail) for f in order.children] == [
            ("items", "Vec<LineItem>"),
            ("customer", "Customer"),
            ("notes", "Option<String>"),
            ("id", "u64"),
        ]
        assert order.range.start.line == line_of(lib_rs, "pub struct Order")
        assert order.children[0].selection_range.start == Position(line_of(lib_rs, "items:"), 8)

    @pytest.mark.asyncio
    async def test_tuple_struct_fields(self, rust, lib_rs):
        card = _by_name(await rust.document_symbols(path_to_unit(lib_rs)))["CardInfo"]
        assert [(f.name, f.detail) for f in card.children] == [("0", "String"), ("1", "Customer")]

    @pytest.mark.asyncio
    async def test_enum_variants(self, rust, lib_rs):
        payment = _by_name(await rust.document_symbols(path_to_unit(lib_rs)))["Payment"]

        variants = {v.name: v for v in payment.children}
        assert all(v.kind == SymbolKind.ENUM_MEMBER for v in variants.values())
        assert variants["Card"].detail == "CardInfo"
        assert variants["Cash"].detail == ""
        assert variants["Pair"].detail == "CardInfo, Customer"
        assert variants["Split"].detail == "Box<Payment>, Box<Payment>"

    @pytest.mark.asyncio
    async def test_alias_detail(self, rust, lib_rs):
        alias = _by_name(await rust.document_symbols(path_to_unit(lib_rs)))["CustomerRef"]
        assert alias.detail == "Customer"

    @pytest.mark.asyncio
    async def test_inline_module_children(self, rust, lib_rs):
        legacy = _by_name(await rust.document_symbols(path_to_unit(lib_rs)))["legacy"]
        assert [c.name for c in legacy.children] == ["Customer"]

    @pytest.mark.asyncio
    async def test_missing_file(self, rust, sample_workspace_path):
        assert await rust.document_symbols(path_to_unit(sample_workspace_path / "nope.rs")) == []

    @pytest.mark.asyncio
    async def test_source_text_of_field_type(self, rust, lib_rs):
        unit = path_to_unit(lib_rs)
        order = _by_name(await rust.document_symbols(unit))["Order"]
        items = order.children[0]

        text = await rust.source_text(unit, Range(items.selection_range.end, items.range.end))

        assert text == ": Vec<LineItem>"


class TestDefinitions:
    @pytest.mark.asyncio
    async def test_type_definition_follows_aliases(self, rust, lib_rs):
        unit = path_to_unit(lib_rs)
        pos = _type_position(lib_rs, "pub owner", "CustomerRef")

        (link,) = await rust.type_definition(unit, pos)

        assert link.target_unit == unit
        assert link.anchor.line == line_of(lib_rs, "pub struct Customer {")

    @pytest.mark.asyncio
    async def test_definition_stops_at_alias(self, rust, lib_rs):
        unit = path_to_unit(lib_rs)
        pos = _type_position(lib_rs, "pub owner", "CustomerRef")

        (link,) = await rust.definition(unit, pos)

        assert link.anchor.line == line_of(lib_rs, "pub type CustomerRef")

    @pytest.mark.asyncio
    async def test_same_unit_is_preferred(self, rust, lib_rs):
        unit = path_to_unit(lib_rs)
        pos = _type_position(lib_rs, "pub customer", "Customer")

        (link,) = await rust.type_definition(unit, pos)

        # top-level Customer, not legacy::Customer
        assert link.anchor.line == line_of(lib_rs, "pub struct Customer {")

    @pytest.mark.asyncio
    async def test_library_type_resolves_outside_workspace(self, rust, lib_rs):
        unit = path_to_unit(lib_rs)
        pos = _type_position(lib_rs, "pub items", "Vec")

        (link,) = await rust.type_definition(unit, pos)

        assert link.target_unit == f"{EXTERN_SCHEME}Vec"
        assert not await rust.is_in_workspace(link.target_unit)

    @pytest.mark.asyncio
    async def test_wrapper_argument_resolves_to_its_own_type(self, rust, lib_rs):
        unit = path_to_unit(lib_rs)
        pos = _type_position(lib_rs, "pub items", "LineItem")

        (link,) = await rust.type_definition(unit, pos)

        assert link.anchor.line == line_of(lib_rs, "pub struct LineItem")

    @pytest.mark.asyncio
    async def test_field_name_is_not_a_type_reference(self, rust, lib_rs):
        unit = path_to_unit(lib_rs)
        line = line_of(lib_rs, "pub owner")
        pos = Position(line, lib_rs.read_text(encoding="utf-8").splitlines()[line].index("owner"))

        assert await rust.type_definition(unit, pos) == []
        assert await rust.definition(unit, pos) == []

    @pytest.mark.asyncio
    async def test_nothing_declared_at_position(self, rust, lib_rs):
        assert await rust.type_definition(path_to_unit(lib_rs), Position(0, 0)) == []


class TestWorkspace:
    @pytest.mark.asyncio
    async def test_symbol_search(self, rust):
        hits = await rust.workspace_symbol_search("customer")

        assert sorted(h.name for h in hits) == ["Customer", "Customer", "CustomerRef"]
        assert all(h.kind != SymbolKind.FIELD for h in hits)

    @pytest.mark.asyncio
    async def test_is_in_workspace(self, rust, lib_rs):
        assert await rust.is_in_workspace(path_to_unit(lib_rs))
        assert not await rust.is_in_workspace(path_to_unit(Path(__file__)))
        assert not await rust.is_in_workspace("https://example.com/lib.rs")
        assert not await rust.is_in_workspace(f"{EXTERN_SCHEME}Vec")

    @pytest.mark.asyncio
    async def test_list_units_skips_build_output(self, sample_workspace_path, temp_dir):
        root = temp_dir / "ws"
        shutil.copytree(sample_workspace_path, root)
        (root / "target" / "debug").mkdir(parents=True)
        (root / "target" / "debug" / "build.rs").write_text("pub struct Built;\n")

        units = await RustWorkspaceProvider(root).list_units()

        names = sorted(Path(u).name for u in units)
        assert names == ["lib.rs", "records.rs", "shapes.rs"]

    @pytest.mark.asyncio
    async def test_invalidate_picks_up_edits(self, sample_workspace_path, temp_dir):
        root = temp_dir / "ws"
        shutil.copytree(sample_workspace_path, root)
        shapes = root / "src" / "shapes.rs"
        provider = RustWorkspaceProvider(root)
        await provider.workspace_symbol_search("Point")

        shapes.write_text("pub struct Vertex {\n    pub z: f64,\n}\n")
        provider.invalidate(path_to_unit(shapes))

        symbols = await provider.document_symbols(path_to_unit(shapes))
        assert [s.name for s in symbols] == ["Vertex"]
        assert [h.name for h in await provider.workspace_symbol_search("Vertex")] == ["Vertex"]
        assert await provider.workspace_symbol_search("Polygon") == []


class TestCrawlIntegration:
    """End-to-end crawls over the sample workspace."""

    async def _crawl(self, rust, path, needle, column=12):
        crawler = GraphCrawler(rust)
        trace = CrawlTrace()
        graph = await crawler.generate(path_to_unit(path), Position(line_of(path, needle), column), trace)
        assert graph is not None, trace.messages()
        return graph

    @pytest.mark.asyncio
    async def test_order(self, rust, lib_rs):
        graph = await self._crawl(rust, lib_rs, "pub struct Order")

        assert [n.label for n in graph.nodes.values()] == ["Order", "LineItem", "Customer"]
        assert {(e.port, e.label) for e in graph.edges} == {("items", "Vec"), ("customer", None)}

    @pytest.mark.asyncio
    async def test_alias_field_and_self_reference(self, rust, lib_rs):
        graph = await self._crawl(rust, lib_rs, "pub struct Account")

        unit = path_to_unit(lib_rs)
        edges = {e.port: e for e in graph.edges}
        assert edges["owner"].target == type_id(unit, ("Customer",))
        assert edges["backup"].target == edges["backup"].source == type_id(unit, ("Account",))
        assert edges["backup"].label == "Option<Box>"

    @pytest.mark.asyncio
    async def test_enum(self, rust, lib_rs):
        graph = await self._crawl(rust, lib_rs, "pub enum Payment")

        assert [n.label for n in graph.nodes.values()] == ["Payment", "CardInfo", "Customer"]
        assert {(e.port, e.label) for e in graph.edges} == {
            ("Card", None),
            ("Pair", None),
            ("Split", "Box"),
            ("1", None),
        }

    @pytest.mark.asyncio
    async def test_variant_with_two_payloads(self, rust, lib_rs):
        graph = await self._crawl(rust, lib_rs, "pub enum Payment")

        labels = {n.node_id: n.label for n in graph.nodes.values()}
        pair = sorted(labels[e.target] for e in graph.edges if e.port == "Pair")
        assert pair == ["CardInfo", "Customer"]

    @pytest.mark.asyncio
    async def test_map_value_is_not_followed(self, rust, lib_rs):
        graph = await self._crawl(rust, lib_rs, "pub struct Catalog")

        assert len(graph.nodes) == 1
        assert graph.edges == []

    @pytest.mark.asyncio
    async def test_generated_code_is_excluded(self, rust, lib_rs):
        graph = await self._crawl(rust, lib_rs, "pub struct Registry")

        assert len(graph.nodes) == 1
        assert graph.edges == []

    @pytest.mark.asyncio
    async def test_shared_target(self, rust, sample_workspace_path):
        shapes = sample_workspace_path / "src" / "shapes.rs"
        graph = await self._crawl(rust, shapes, "pub struct Polygon")

        assert len(graph.nodes) == 2
        assert sorted(e.port for e in graph.edges) == ["origin", "points"]
