"""Symbol provider contract consumed by the graph crawler.

A provider answers LSP-style questions about source units (files identified
by URI strings). Every query is a coroutine: in an editor these are round
trips to a language server, and the crawler awaits them one at a time.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional, Sequence
from urllib.parse import unquote, urlparse

from pathspec import GitIgnoreSpec

from .models import DocumentSymbol, LocationLink, Position, Range, WorkspaceSymbol


class ProviderError(RuntimeError):
    """A provider could not answer a query."""


class SymbolProvider(ABC):
    """Abstract base class for symbol / definition providers."""

    # Exclude patterns are anchored here when set.
    workspace_root: Optional[Path] = None

    @abstractmethod
    async def document_symbols(self, unit: str) -> List[DocumentSymbol]:
        """Return the symbol tree of *unit* (empty when unknown)."""
        ...

    @abstractmethod
    async def source_text(self, unit: str, span: Range) -> str:
        """Return the source text of *unit* between the two positions of *span*."""
        ...

    @abstractmethod
    async def type_definition(self, unit: str, position: Position) -> List[LocationLink]:
        ...

    @abstractmethod
    async def definition(self, unit: str, position: Position) -> List[LocationLink]:
        ...

    @abstractmethod
    async def workspace_symbol_search(self, name: str) -> List[WorkspaceSymbol]:
        ...

    @abstractmethod
    async def is_in_workspace(self, unit: str) -> bool:
        ...

    @abstractmethod
    async def list_units(self) -> List[str]:
        """Enumerate the workspace's source units, for whole-workspace scans."""
        ...

    @abstractmethod
    def exclude_patterns(self) -> List[str]:
        """Gitignore-style globs for generated, vendored or ignored files."""
        ...

    def invalidate(self, unit: str) -> None:
        """Forget anything memoized about *unit*. Stateless providers ignore this."""


def unit_to_path(unit: str) -> Path:
    parsed = urlparse(unit)
    if parsed.scheme not in ("", "file"):
        raise ProviderError(f"Not a file unit: {unit}")
    return Path(unquote(parsed.path))


def path_to_unit(path: Path) -> str:
    return path.resolve().as_uri()


class ExcludeMatcher:
    """Gitignore-style matching of units.

    Units below *root* are matched by their root-relative path, so patterns
    containing a slash (``src/generated/``, ``/target/``) are anchored at the
    workspace root the way ``.gitignore`` anchors them. Other units are
    matched by their full path.
    """

    def __init__(self, patterns: Sequence[str], root: Optional[Path] = None) -> None:
        self.patterns = list(patterns)
        self.root = root
        self._spec = GitIgnoreSpec.from_lines(self.patterns)

    def matches(self, unit: str) -> bool:
        if not self.patterns:
            return False
        return self._spec.match_file(self._relative(unit))

    def _relative(self, unit: str) -> str:
        path = unquote(urlparse(unit).path or unit)
        if self.root is not None:
            try:
                return Path(path).relative_to(self.root).as_posix()
            except ValueError:
                pass
        return path.lstrip("/")
