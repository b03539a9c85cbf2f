"""Runtime settings: timeouts, sweep bound and client identity.

Every value can be overridden through a ``MCP_ASSAY_*`` environment
variable. Invalid overrides are ignored with a warning.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, fields

logger = logging.getLogger(__name__)

_ENV_PREFIX = "MCP_ASSAY_"


@dataclass(frozen=True, slots=True)
class AssessmentSettings:
    reachability_timeout: float = 5.0
    request_timeout: float = 10.0
    oauth_timeout: float = 5.0
    sdk_timeout: float = 10.0
    stdio_timeout: float = 15.0
    sweep_limit: int = 3
    client_name: str = "mcp-assay"
    client_version: str = "1.0.0"


def load_settings(environ: Mapping[str, str] | None = None) -> AssessmentSettings:
    """Build settings from defaults plus ``MCP_ASSAY_<FIELD>`` overrides."""
    source = environ if environ is not None else os.environ
    defaults = AssessmentSettings()
    overrides: dict[str, object] = {}

    for f in fields(AssessmentSettings):
        raw = source.get(_ENV_PREFIX + f.name.upper())
        if raw is None or not raw.strip():
            continue
        default = getattr(defaults, f.name)
        try:
            if isinstance(default, float):
                value: object = float(raw)
            elif isinstance(default, int):
                value = int(raw)
            else:
                value = raw.strip()
        except ValueError:
            logger.warning("Ignoring invalid %s%s=%r", _ENV_PREFIX, f.name.upper(), raw)
            continue
        if isinstance(value, (int, float)) and value <= 0:
            logger.warning("Ignoring non-positive %s%s=%r", _ENV_PREFIX, f.name.upper(), raw)
            continue
        overrides[f.name] = value

    return AssessmentSettings(**overrides)
