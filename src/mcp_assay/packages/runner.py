"""Recognize package-runner launch commands and the package they run."""

from __future__ import annotations

from pathlib import PurePath

PACKAGE_RUNNERS = frozenset({"npx", "npx.cmd", "bunx", "pnpx"})

# Flags whose value names the package explicitly (npx -p pkg / --package pkg).
_PACKAGE_FLAGS = frozenset({"-p", "--package"})


def is_package_runner(command: str) -> bool:
    if not command:
        return False
    return PurePath(command.replace("\\", "/")).name.lower() in PACKAGE_RUNNERS


def strip_version(spec: str) -> str:
    """``@scope/pkg@1.2.3`` -> ``@scope/pkg``; ``pkg@latest`` -> ``pkg``."""
    at = spec.rfind("@")
    if at > 0:
        return spec[:at]
    return spec


def extract_package_name(args: list[str]) -> str | None:
    """Package name from runner args, or None when only flags are present."""
    expecting_value = False
    for arg in args:
        if expecting_value:
            return strip_version(arg) or None
        if arg in _PACKAGE_FLAGS:
            expecting_value = True
            continue
        if arg.startswith("--package="):
            return strip_version(arg.split("=", 1)[1]) or None
        if arg.startswith("-"):
            continue
        return strip_version(arg) or None
    return None
