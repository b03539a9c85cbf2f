"""Masked headers, truncated bodies and request/response text for troubleshooting.

Nothing here is ever parsed back; the output is advisory text for humans.
"""

from __future__ import annotations

import json
from collections.abc import Mapping

from mcp_assay.models import RequestDiagnostics

RESPONSE_BODY_LIMIT = 500
STEP_BODY_LIMIT = 1000

_MASK_VISIBLE_CHARS = 10
_MASK_MIN_LENGTH = 15


def is_sensitive_header(name: str) -> bool:
    lower = name.lower()
    return lower == "authorization" or "token" in lower or "key" in lower


def mask_value(value: str) -> str:
    if len(value) > _MASK_MIN_LENGTH:
        return f"{value[:_MASK_VISIBLE_CHARS]}..."
    return "***"


def mask_sensitive_headers(headers: Mapping[str, str] | None) -> dict[str, str]:
    """Return a copy of *headers* with credential-like values masked.

    A header is sensitive when its name is ``authorization`` or contains
    ``token`` or ``key`` (case-insensitive). Long values keep their first
    10 characters so users can tell which credential was sent.
    """
    if not headers:
        return {}
    return {
        name: mask_value(value) if is_sensitive_header(name) else value
        for name, value in headers.items()
    }


def truncate_body(body: str, max_length: int = RESPONSE_BODY_LIMIT) -> str:
    if len(body) <= max_length:
        return body
    return f"{body[:max_length]}... (truncated, total {len(body)} chars)"


def build_diagnostics(
    url: str,
    request_headers: Mapping[str, str] | None,
    *,
    method: str = "POST",
    request_body: str | None = None,
    response_body: str | None = None,
    response_headers: Mapping[str, str] | None = None,
    raw_error: str | None = None,
) -> RequestDiagnostics:
    return RequestDiagnostics(
        request_url=url,
        request_method=method,
        request_headers=mask_sensitive_headers(request_headers),
        request_body=request_body,
        response_body=truncate_body(response_body) if response_body is not None else None,
        response_headers=dict(response_headers) if response_headers is not None else None,
        raw_error=raw_error,
    )


def format_request(
    url: str,
    headers: Mapping[str, str],
    body: str,
    *,
    method: str = "POST",
    note: str = "",
) -> str:
    """Render a request for display. Headers are masked here."""
    masked = json.dumps(mask_sensitive_headers(headers), indent=2)
    head = f"{method} {url}\nHeaders: {masked}"
    if note:
        head = f"{head}\n{note}"
    return f"{head}\n\n{body}"


def format_response(
    headers: Mapping[str, str],
    body: str,
    *,
    status: str = "",
) -> str:
    rendered = f"Headers: {json.dumps(dict(headers), indent=2)}\n\n{truncate_body(body, STEP_BODY_LIMIT)}"
    if status:
        return f"Status: {status}\n{rendered}"
    return rendered
