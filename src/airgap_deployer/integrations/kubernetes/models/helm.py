"""Data models for Helm CLI results."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class HelmCommandResult:
    """Generic result from a Helm command."""

    success: bool
    stdout: str
    stderr: str = ""

    @property
    def output(self) -> str:
        """Return the primary output (stdout)."""
        return self.stdout


@dataclass
class HelmTemplateResult:
    """Result from ``helm template``."""

    rendered_yaml: str
    success: bool
    error: str | None = None
