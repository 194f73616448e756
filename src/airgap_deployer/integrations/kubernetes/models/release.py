"""Data models for charts, release revisions, and deploy results."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ReleaseStatus(StrEnum):
    """Status of a single stored release revision."""

    UNKNOWN = "unknown"
    DEPLOYED = "deployed"
    UNINSTALLED = "uninstalled"
    SUPERSEDED = "superseded"
    FAILED = "failed"
    UNINSTALLING = "uninstalling"
    PENDING_INSTALL = "pending-install"
    PENDING_UPGRADE = "pending-upgrade"
    PENDING_ROLLBACK = "pending-rollback"

    @classmethod
    def parse(cls, value: str | None) -> ReleaseStatus:
        """Parse a stored status string, mapping unrecognized values to UNKNOWN."""
        try:
            return cls(value or "unknown")
        except ValueError:
            return cls.UNKNOWN


class ChartDescriptor(BaseModel):
    """A single deployable chart.

    Immutable once an operation begins. ``release_name`` falls back to
    ``name`` when not given.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", str_strip_whitespace=True)

    name: str = Field(min_length=1, description="Chart name")
    namespace: str = Field(min_length=1, description="Target namespace")
    release_name: str = Field(default="", description="Release name (defaults to name)")
    version: str = Field(default="", description="Chart version")
    source_ref: str = Field(default="", description="Chart path, tarball, or repo reference")
    values_files: tuple[str, ...] = Field(default=(), description="Values files, in merge order")
    no_wait: bool = Field(default=False, description="Skip waiting for resources to be ready")

    @model_validator(mode="before")
    @classmethod
    def _default_release_name(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("release_name"):
            data = {**data, "release_name": data.get("name", "")}
        return data


class ConnectString(BaseModel):
    """How to reach a deployed service without knowing cluster-internal addressing."""

    model_config = ConfigDict(frozen=True)

    description: str = ""
    url: str = ""


ConnectStrings = dict[str, ConnectString]


@dataclass(frozen=True)
class ReleaseRevision:
    """One stored revision of a release.

    Revisions are values: use :meth:`with_status` or :meth:`next_revision`
    to derive a changed copy rather than editing a fetched one. ``raw`` holds
    the full stored record so fields this engine does not model survive a
    round trip through the release store.
    """

    release_name: str
    version: int
    status: ReleaseStatus
    manifest: str = ""
    description: str = ""
    timestamp: datetime | None = None
    namespace: str = ""
    chart_name: str = ""
    chart_version: str = ""
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    def with_status(self, status: ReleaseStatus) -> ReleaseRevision:
        """Return a copy of this revision carrying a new status."""
        return replace(self, status=status)

    def with_manifest(self, manifest: str) -> ReleaseRevision:
        """Return a copy of this revision carrying a new manifest."""
        return replace(self, manifest=manifest)

    def next_revision(
        self,
        *,
        manifest: str,
        description: str,
        status: ReleaseStatus = ReleaseStatus.DEPLOYED,
        timestamp: datetime | None = None,
    ) -> ReleaseRevision:
        """Return a new revision following this one with the given content."""
        return replace(
            self,
            version=self.version + 1,
            status=status,
            manifest=manifest,
            description=description,
            timestamp=timestamp or datetime.now(UTC),
        )


@dataclass(frozen=True)
class DeployResult:
    """Successful outcome of a release deployment."""

    release_name: str
    connect_strings: ConnectStrings = field(default_factory=dict)
    operation: str = ""
