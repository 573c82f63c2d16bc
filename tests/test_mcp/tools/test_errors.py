"""Tests for mcp/tools/errors.py: error response builders.

Covers:
- build_error_response() structure and format
- translate_http_error() status code mapping
"""

import mcp.types as types
import pytest
import requests

from board_sync.mcp.tools.errors import (
    build_error_response,
    translate_http_error,
)


def _get_error_text(result: types.CallToolResult) -> str:
    """Extract text from first content item with type narrowing for Pyright."""
    content = result.content[0]
    assert isinstance(content, types.TextContent)
    return content.text


def _http_error(status: int | None, message: str = "boom") -> requests.HTTPError:
    response = None
    if status is not None:
        response = requests.Response()
        response.status_code = status
    return requests.HTTPError(message, response=response)


# ---------------------------------------------------------------------------
# build_error_response tests
# ---------------------------------------------------------------------------


class TestBuildErrorResponse:
    """Tests for build_error_response()."""

    def test_returns_call_tool_result(self):
        result = build_error_response("not_found", "Not found", "Try again")
        assert isinstance(result, types.CallToolResult)

    def test_is_error_flag(self):
        result = build_error_response("not_found", "Not found", "Try again")
        assert result.isError is True

    def test_single_text_content(self):
        result = build_error_response("validation_error", "Bad", "Fix")
        assert len(result.content) == 1
        assert result.content[0].type == "text"

    def test_text_format(self):
        """Error text has the type, the message and the corrective action."""
        result = build_error_response(
            "not_found", "Card 42 not found", "Run card_sync to recreate it."
        )
        assert _get_error_text(result) == (
            "Error (not_found): Card 42 not found\n\n"
            "Action: Run card_sync to recreate it."
        )


# ---------------------------------------------------------------------------
# translate_http_error tests
# ---------------------------------------------------------------------------


class TestTranslateHttpError:
    """Tests for translate_http_error()."""

    @pytest.mark.parametrize(
        "status,error_type,hint",
        [
            (401, "permission_denied", "BOARD_API_KEY"),
            (403, "permission_denied", "write access"),
            (404, "not_found", "orgtrello-id"),
            (429, "rate_limited", "Wait a few seconds"),
            (500, "server_error", "Retry later"),
            (502, "server_error", "Retry later"),
        ],
    )
    def test_status_mapping(self, status, error_type, hint):
        text = _get_error_text(translate_http_error(_http_error(status)))
        assert text.startswith(f"Error ({error_type}): boom")
        assert hint in text

    def test_missing_response_is_server_error(self):
        result = translate_http_error(_http_error(None, "no response"))
        assert result.isError is True
        assert _get_error_text(result).startswith("Error (server_error): no response")
