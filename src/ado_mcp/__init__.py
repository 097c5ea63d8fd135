"""Azure DevOps MCP Server - Model Context Protocol integration.

This package exposes Azure DevOps resources to AI assistants as a small set
of entity tools, one per resource, each bundling several operations.

Modules:
- server: stdio MCP server implementation
- entity_tool: operation-bundling tool base and contract synthesis
- registry: tool registration and call routing
- tools: per-resource tool definitions
- handlers: Tool implementation handlers
- formatters: Response formatting utilities
"""
import logging

__version__ = "0.1.0"

logging.getLogger("ado-mcp").addHandler(logging.NullHandler())

from . import formatters
from . import handlers
from . import tools

__all__ = ["formatters", "tools", "handlers", "__version__"]
