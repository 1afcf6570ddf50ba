"""
Error types shared by the request handlers.

Client input problems are plain ValueError, as elsewhere in the package.
The two types below carry the extra information the response envelope needs.
"""

from __future__ import annotations

from typing import Any, Optional

import requests

from retailiq.messages import msg


class AuthorizationError(Exception):
    """Caller is authenticated but lacks the required role."""

    status_code = 403

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or msg("error.admin_required"))


class UpstreamError(Exception):
    """A third-party API answered with a non-2xx status."""

    status_code = 400

    def __init__(self, message: str, detail: Any = None, upstream_status: Optional[int] = None) -> None:
        super().__init__(message)
        self.detail = detail
        self.upstream_status = upstream_status


def error_detail(response: requests.Response) -> Any:
    """Extract the provider's own error detail from a failed response."""
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict):
            return error.get("message") or error
        return body.get("detail") or body.get("msg") or body.get("message") or error or body
    return body


def raise_for_upstream(response: requests.Response, message: str) -> None:
    """Raise UpstreamError when the response is not successful."""
    if response.ok:
        return
    detail = error_detail(response)
    text = detail if isinstance(detail, str) and detail else message
    raise UpstreamError(text, detail=detail, upstream_status=response.status_code)


class AnalysisParseError(Exception):
    """The LLM's call analysis was not valid JSON."""

    status_code = 500

    def __init__(self, raw: str) -> None:
        super().__init__("Failed to parse GPT analysis response as JSON")
        self.raw = raw
