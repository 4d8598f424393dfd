"""TypeGraph CLI: type composition graphs from a symbol provider."""

__version__ = "0.3.0"
