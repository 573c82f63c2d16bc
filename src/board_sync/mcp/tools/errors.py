"""Error response builders for MCP tool handlers.

Structured error responses carry a corrective action so an agent can
recover without human intervention.
"""

import mcp.types as types
import requests


def build_error_response(
    error_type: str, message: str, corrective_action: str
) -> types.CallToolResult:
    """Build a structured error response with corrective action.

    Args:
        error_type: Error category (not_found, permission_denied,
            rate_limited, validation_error, connection_error, server_error)
        message: Human-readable error description
        corrective_action: Specific action the agent can take to resolve the error

    Returns:
        CallToolResult with isError=True

    Examples:
        >>> build_error_response("not_found", "Card 42 not found", "Run card_sync to recreate it.")
        CallToolResult(content=[TextContent(...)], isError=True)
    """
    error_text = f"Error ({error_type}): {message}\n\nAction: {corrective_action}"

    return types.CallToolResult(
        content=[types.TextContent(type="text", text=error_text)],
        isError=True,
    )


_STATUS_MESSAGES: dict[str, str] = {
    "unauthorized": "Check BOARD_API_KEY and BOARD_API_TOKEN, then restart the server.",
    "permission": "The token cannot modify this board. Use a token with write access.",
    "not_found": "The remote entity no longer exists. Remove its orgtrello-id property and sync again.",
    "rate_limited": "The board API is rate limiting requests. Wait a few seconds and retry.",
    "server": "The board API failed. Retry later.",
}


def translate_http_error(error: requests.HTTPError) -> types.CallToolResult:
    """Translate an HTTP error from the board API by status code."""
    status = error.response.status_code if error.response is not None else None
    message = str(error)

    match status:
        case 401:
            return build_error_response(
                "permission_denied", message, _STATUS_MESSAGES["unauthorized"]
            )
        case 403:
            return build_error_response(
                "permission_denied", message, _STATUS_MESSAGES["permission"]
            )
        case 404:
            return build_error_response(
                "not_found", message, _STATUS_MESSAGES["not_found"]
            )
        case 429:
            return build_error_response(
                "rate_limited", message, _STATUS_MESSAGES["rate_limited"]
            )
        case _:
            return build_error_response(
                "server_error", message, _STATUS_MESSAGES["server"]
            )
