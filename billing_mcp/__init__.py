"""MCP server for looking up invoices stored in PostgreSQL."""

__version__ = "0.1.0"