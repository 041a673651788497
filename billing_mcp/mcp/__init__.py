"""MCP tool types, invoice tool definitions and the HTTP/SSE server."""