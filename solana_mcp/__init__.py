"""
Solana MCP gateway package.

This package exposes schema-validated Solana tools over HTTP and runs them
inside per-agent runtimes that record every execution to a persistent memory
log. See DESIGN.md for full details.
"""

__all__ = ["config", "errors", "mcp", "memory_store", "registry", "runtime", "server", "tools"]
