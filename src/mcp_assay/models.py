"""Domain models for mcp-assay. All frozen dataclasses -- no mutation after creation."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum

from mcp_assay.errors import InvalidDescriptorError


def utc_now() -> str:
    """ISO-8601 UTC timestamp with millisecond precision."""
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


# ─── Enumerations ─────────────────────────────────────────────


class Transport(StrEnum):
    STDIO = "stdio"
    STREAMABLE_HTTP = "streamable-http"


class AssessmentErrorType(StrEnum):
    AUTH_FAILED = "auth_failed"
    OAUTH_REQUIRED = "oauth_required"
    CONNECTION_FAILED = "connection_failed"
    TIMEOUT = "timeout"
    SDK_MISMATCH = "sdk_mismatch"
    UNKNOWN = "unknown"


class OAuthDetection(StrEnum):
    WELL_KNOWN = "well-known"
    WWW_AUTHENTICATE = "www-authenticate"


# ─── Server Descriptor ────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class ServerDescriptor:
    """Identity and reachability info for one MCP server.

    Process-based servers carry ``command``/``args``/``env``; HTTP-based
    servers carry ``url``/``headers``. When both are present the command
    wins, matching how MCP clients launch servers.
    """

    name: str
    command: str = ""
    args: list[str] = field(default_factory=list)
    env: dict[str, str] = field(default_factory=dict)
    url: str = ""
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def transport(self) -> Transport | None:
        if self.command:
            return Transport.STDIO
        if self.url:
            return Transport.STREAMABLE_HTTP
        return None

    @classmethod
    def from_dict(cls, name: str, raw: dict[str, object]) -> ServerDescriptor:
        """Build a descriptor from an IDE-config-shaped server entry."""
        if not isinstance(raw, dict):
            raise InvalidDescriptorError(
                f"Server '{name}' entry must be an object, got {type(raw).__name__}."
            )

        command = raw.get("command", "")
        url = raw.get("url", "")
        args = raw.get("args", [])
        env = raw.get("env", {})
        headers = raw.get("headers", {})

        if not isinstance(command, str) or not isinstance(url, str):
            raise InvalidDescriptorError(f"Server '{name}': 'command' and 'url' must be strings.")
        if not isinstance(args, list) or not all(isinstance(a, str) for a in args):
            raise InvalidDescriptorError(f"Server '{name}': 'args' must be a list of strings.")
        for label, mapping in (("env", env), ("headers", headers)):
            if not isinstance(mapping, dict) or not all(
                isinstance(k, str) and isinstance(v, str) for k, v in mapping.items()
            ):
                raise InvalidDescriptorError(
                    f"Server '{name}': '{label}' must map strings to strings."
                )

        return cls(
            name=name,
            command=command,
            args=list(args),
            env=dict(env),
            url=url,
            headers=dict(headers),
        )


# ─── Assessment Models ────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class TokenMetrics:
    """Context-window cost of one server's tool schemas."""

    tool_count: int
    schema_chars: int
    estimated_tokens: int
    assessed_at: str = field(default_factory=utc_now)
    package_name: str | None = None
    installed_version: str | None = None
    latest_version: str | None = None
    version_checked_at: str | None = None


@dataclass(frozen=True, slots=True)
class OAuthMetadata:
    """OAuth protected-resource metadata (RFC 9728) or a bare bearer challenge."""

    detected_via: OAuthDetection
    discovered_at: str = field(default_factory=utc_now)
    resource: str | None = None
    authorization_servers: list[str] = field(default_factory=list)
    scopes_supported: list[str] = field(default_factory=list)
    bearer_methods_supported: list[str] = field(default_factory=list)
    resource_documentation: str | None = None
    www_authenticate: str | None = None

    @property
    def is_valid(self) -> bool:
        if self.detected_via == OAuthDetection.WELL_KNOWN:
            return bool(self.authorization_servers)
        return bool(self.www_authenticate)


@dataclass(frozen=True, slots=True)
class SdkValidation:
    direct_fetch_tools: int
    sdk_transport_tools: int  # -1 when the reference client failed
    sdk_error: str | None = None


@dataclass(frozen=True, slots=True)
class RequestDiagnostics:
    """Human troubleshooting context. Sensitive headers are already masked."""

    request_url: str
    request_method: str
    request_headers: dict[str, str] = field(default_factory=dict)
    request_body: str | None = None
    response_body: str | None = None
    response_headers: dict[str, str] | None = None
    raw_error: str | None = None


@dataclass(frozen=True, slots=True)
class AssessmentError:
    type: AssessmentErrorType
    message: str
    error_at: str = field(default_factory=utc_now)
    status_code: int | None = None
    status_text: str | None = None
    oauth_metadata: OAuthMetadata | None = None
    sdk_validation: SdkValidation | None = None
    diagnostics: RequestDiagnostics | None = None


# Exactly one of these per assessment attempt.
Assessment = TokenMetrics | AssessmentError


# ─── Connection Test Models ───────────────────────────────────


@dataclass(frozen=True, slots=True)
class StepData:
    request: str | None = None
    response: str | None = None


@dataclass(frozen=True, slots=True)
class ConnectionStep:
    name: str
    success: bool
    details: str = ""
    duration_ms: int | None = None
    data: StepData | None = None


@dataclass(frozen=True, slots=True)
class ConnectionTestResult:
    success: bool
    mcp_name: str
    steps: list[ConnectionStep] = field(default_factory=list)
    error: AssessmentError | None = None
    duration_ms: int = 0


# ─── Savings Models ───────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class SavingsSummary:
    """Fleet-wide context-window savings from routing servers through the guard."""

    total_tokens_without_guard: int
    guard_tokens: int
    tokens_saved: int
    assessed_mcps: int
    guarded_mcps: int
    has_estimates: bool = False


@dataclass(frozen=True, slots=True)
class SweepOutcome:
    assessed: list[str] = field(default_factory=list)
    remaining: int = 0
