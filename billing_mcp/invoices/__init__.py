"""Invoice domain model, service, SQL storage and MCP tool handlers."""