"""Placeholder substitution for rendered manifests.

Placeholders take the form ``###ZARF_<KEY>###`` with an uppercase key.
Builtin keys describe the in-cluster registry and git server, ``VAR_`` keys
are deploy-time variables, and ``CONST_`` keys are package constants. The
placeholder syntax and names are kept compatible with existing packages.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

import structlog

from airgap_deployer.integrations.kubernetes.models.deploy import (
    DeployOptions,
    PackageVariable,
    VariableType,
)
from airgap_deployer.integrations.kubernetes.models.state import ClusterState

logger = structlog.get_logger()

PLACEHOLDER_PREFIX = "ZARF"
PLACEHOLDER_PATTERN = "###ZARF_[A-Z0-9_]+###"
YAML_SUFFIXES = (".yaml", ".yml")

# Kept for packages built before the marker name was corrected
LEGACY_DATA_INJECTION_MARKER = "DATA_INJECTON_MARKER"
DATA_INJECTION_MARKER = "DATA_INJECTION_MARKER"

SENSITIVE_BUILTINS = frozenset(
    {
        "REGISTRY_AUTH_PUSH",
        "REGISTRY_AUTH_PULL",
        "GIT_AUTH_PUSH",
        "GIT_AUTH_PULL",
    }
)


@dataclass(frozen=True)
class TextTemplate:
    """A value to substitute for one placeholder."""

    value: str
    sensitive: bool = False
    auto_indent: bool = False
    type: VariableType = VariableType.RAW

    @classmethod
    def from_variable(cls, variable: PackageVariable) -> TextTemplate:
        return cls(
            value=variable.value,
            sensitive=variable.sensitive,
            auto_indent=variable.auto_indent,
            type=variable.type,
        )


def placeholder(key: str, scope: str = "") -> str:
    """Build the placeholder text for a key, e.g. ``###ZARF_VAR_DOMAIN###``."""
    scoped = f"{scope}_{key}" if scope else key
    return f"###{PLACEHOLDER_PREFIX}_{scoped}###".upper()


def deprecated_aliases() -> dict[str, str]:
    """Map deprecated placeholders to their replacements."""
    return {placeholder(LEGACY_DATA_INJECTION_MARKER): placeholder(DATA_INJECTION_MARKER)}


def build_template_map(
    state: ClusterState | None,
    *,
    variables: Mapping[str, PackageVariable] | None = None,
    constants: Mapping[str, PackageVariable] | None = None,
    data_injection_marker: str = "",
) -> dict[str, TextTemplate]:
    """Build the placeholder to value map for a deployment.

    Args:
        state: Cluster state; builtin registry and git keys are only
            available once the cluster has state.
        variables: Deploy-time variables, exposed as ``###ZARF_VAR_<KEY>###``.
        constants: Package constants, exposed as ``###ZARF_CONST_<KEY>###``.
        data_injection_marker: Marker value for packages with data
            injections. Exposed under both the current and legacy names.

    Returns:
        Placeholder text to the template that replaces it.
    """
    templates: dict[str, TextTemplate] = {}

    if state is not None:
        registry = state.registry_info
        git = state.git_server
        builtins = {
            "STORAGE_CLASS": state.storage_class,
            "REGISTRY": registry.address,
            "NODEPORT": str(registry.node_port),
            "REGISTRY_AUTH_PUSH": registry.push_password,
            "REGISTRY_AUTH_PULL": registry.pull_password,
            "GIT_PUSH": git.push_username,
            "GIT_AUTH_PUSH": git.push_password,
            "GIT_PULL": git.pull_username,
            "GIT_AUTH_PULL": git.pull_password,
        }
        if data_injection_marker:
            builtins[LEGACY_DATA_INJECTION_MARKER] = data_injection_marker
            builtins[DATA_INJECTION_MARKER] = data_injection_marker

        for key, value in builtins.items():
            templates[placeholder(key)] = TextTemplate(
                value=value,
                sensitive=key in SENSITIVE_BUILTINS,
            )

    for key, variable in (variables or {}).items():
        templates[placeholder(key, "VAR")] = TextTemplate.from_variable(variable)

    for key, constant in (constants or {}).items():
        templates[placeholder(key, "CONST")] = TextTemplate.from_variable(constant)

    logger.debug(
        "built_template_map",
        placeholders={k: "**sanitized**" if t.sensitive else t.value for k, t in templates.items()},
    )
    return templates


def template_map_for(options: DeployOptions) -> dict[str, TextTemplate]:
    """Build the placeholder map from request-scoped deploy options."""
    return build_template_map(
        options.state,
        variables=options.variables,
        constants=options.constants,
        data_injection_marker=options.data_injection_marker,
    )


def _load_file_value(key: str, path: str) -> str | None:
    file_path = Path(path)
    try:
        raw = file_path.read_bytes()
    except OSError as e:
        logger.warning("template_file_unreadable", placeholder=key, path=path, error=str(e))
        return None
    if b"\x00" in raw:
        logger.warning("template_file_not_text", placeholder=key, path=path)
        return None
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        logger.warning("template_file_not_text", placeholder=key, path=path)
        return None


def replace_text_template(
    text: str,
    mappings: Mapping[str, TextTemplate],
    deprecations: Mapping[str, str] | None = None,
    pattern: str = PLACEHOLDER_PATTERN,
) -> str:
    """Replace placeholders in text, line by line.

    Deprecated placeholders are rewritten to their replacement first.
    Placeholders without a mapping are left in place. Auto-indented values
    have every continuation line indented to the placeholder's column.

    Args:
        text: Text to template.
        mappings: Placeholder to replacement.
        deprecations: Deprecated placeholder to current placeholder.
        pattern: Regular expression matching a placeholder.

    Returns:
        The templated text.
    """
    deprecations = deprecations or {}
    line_pattern = re.compile(f"(?P<pre>.*?)(?P<template>{pattern})(?P<post>.*)")
    warned: set[str] = set()
    output: list[str] = []

    for line in text.splitlines(keepends=True):
        ending = "\n" if line.endswith("\n") else ""
        remaining = line[: len(line) - len(ending)] if ending else line
        result = ""

        while True:
            match = line_pattern.match(remaining)
            if match is None:
                result += remaining
                break

            pre = match.group("pre")
            key = match.group("template")
            remaining = match.group("post")

            if key in deprecations:
                if key not in warned:
                    logger.warning(
                        "deprecated_placeholder",
                        placeholder=key,
                        replacement=deprecations[key],
                    )
                    warned.add(key)
                key = deprecations[key]

            template = mappings.get(key)
            if template is None:
                result += pre + key
                continue

            value: str | None = template.value
            if template.type is VariableType.FILE and value:
                value = _load_file_value(key, value)
                if value is None:
                    result += pre
                    continue

            if template.auto_indent:
                indent = " " * len(result + pre)
                value = value.replace("\n", "\n" + indent)

            result += pre + value

        output.append(result + ending)

    return "".join(output)


def replace_text_template_file(
    path: Path,
    mappings: Mapping[str, TextTemplate],
    deprecations: Mapping[str, str] | None = None,
    pattern: str = PLACEHOLDER_PATTERN,
) -> None:
    """Template a file in place."""
    text = path.read_text(encoding="utf-8")
    path.write_text(replace_text_template(text, mappings, deprecations, pattern), encoding="utf-8")


def replace_in_directory(
    directory: Path,
    mappings: Mapping[str, TextTemplate],
    deprecations: Mapping[str, str] | None = None,
    pattern: str = PLACEHOLDER_PATTERN,
) -> list[Path]:
    """Template every YAML file under a directory in place.

    Returns:
        The files that were templated, sorted.
    """
    files = sorted(p for p in directory.rglob("*") if p.is_file() and p.suffix in YAML_SUFFIXES)
    for file_path in files:
        replace_text_template_file(file_path, mappings, deprecations, pattern)
    return files
