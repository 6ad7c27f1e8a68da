"""Session-aware filesystem tools for MCP clients."""

__version__ = "0.1.0"
