"""MCP streamable HTTP support: session lifecycle, principal bindings, JSON-RPC and tools."""
