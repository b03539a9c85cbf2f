"""Exception hierarchy for mcp-assay.

All exceptions inherit from McpAssayError (single catch point).
Server misbehaviour is never raised: it is reported as an AssessmentError
value. These exceptions cover caller mistakes only.
"""

from __future__ import annotations


class McpAssayError(Exception):
    """Base exception for all mcp-assay errors."""


class InvalidDescriptorError(McpAssayError):
    """A server descriptor is malformed or missing an endpoint."""


class ServerNotFoundError(McpAssayError):
    """Server name not found among the known descriptors."""
