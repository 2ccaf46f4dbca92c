"""MCP server exposing site-link checks to agents over stdio."""
