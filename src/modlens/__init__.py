"""ModLens: analysis engine for mod collections (plugin load order and file conflicts)."""

__version__ = "0.1.0"
