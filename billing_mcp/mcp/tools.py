"""Descriptions of the invoice tools offered to clients."""

from billing_mcp.mcp.protocol import Tool, ToolParameter as P


def invoice_tool() -> Tool:
    return Tool("GetInvoice", "Get an invoice by ID", (
        P("accountId", "The ID of the account to retrieve the invoice for", True),
        P("invoiceId", "The ID of the invoice to retrieve", True),
    ))


def invoices_tool() -> Tool:
    return Tool("GetInvoices", "Get all invoices for an account", (
        P("accountId", "The ID of the account to retrieve invoices for", True),
        P("status", "The status of the invoices to retrieve"),
        P("issueDateFrom", "The start date of the invoices to retrieve in RFC3339 format"),
        P("issueDateTo", "The end date of the invoices to retrieve in RFC3339 format"),
    ))