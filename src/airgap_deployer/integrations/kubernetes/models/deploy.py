"""Request-scoped deploy options and remediation policy models."""

from __future__ import annotations

from enum import StrEnum
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field

from airgap_deployer.integrations.kubernetes.models.state import ClusterState

DEFAULT_INSTALL_RETRIES = 3
DEFAULT_UPGRADE_RETRIES = 5
DEFAULT_BACKOFF_SECONDS = 10.0
DEFAULT_TIMEOUT_SECONDS = 15 * 60
DEFAULT_ROLLBACK_TIMEOUT_SECONDS = 5 * 60


class Operation(StrEnum):
    """Release lifecycle operations."""

    INSTALL = "install"
    UPGRADE = "upgrade"
    ROLLBACK = "rollback"


class DeployPhase(StrEnum):
    """Phases reported through the executor's progress callback."""

    QUEUED = "queued"
    CHECKING_HISTORY = "checking_history"
    MIGRATING = "migrating"
    INSTALLING = "installing"
    UPGRADING = "upgrading"
    RETRYING = "retrying"
    ROLLING_BACK = "rolling_back"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class FixedRetries(BaseModel):
    """Retry a failed operation a fixed number of times."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["fixed"] = "fixed"
    retries: int = Field(ge=0)


class DefaultRemediation(BaseModel):
    """Use the built-in retry count for each operation."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["default"] = "default"


Remediation = Annotated[FixedRetries | DefaultRemediation, Field(discriminator="kind")]


class RetryPolicy(BaseModel):
    """Remediation applied to install and upgrade attempts.

    ``max_retries`` bounds attempts at ``retries + 1``. ``max_total_seconds``
    additionally caps the wall-clock time of the whole loop, checked between
    attempts. Rollback gets its own timeout and never shares that budget.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_retries: Remediation = Field(default_factory=DefaultRemediation)
    backoff_seconds: float = Field(default=DEFAULT_BACKOFF_SECONDS, ge=0)
    max_total_seconds: float | None = Field(default=None, gt=0)
    rollback_timeout_seconds: float = Field(default=DEFAULT_ROLLBACK_TIMEOUT_SECONDS, gt=0)

    def retries_for(self, operation: Operation) -> int:
        """Resolve the retry count for an operation."""
        if isinstance(self.max_retries, FixedRetries):
            return self.max_retries.retries
        if operation is Operation.INSTALL:
            return DEFAULT_INSTALL_RETRIES
        return DEFAULT_UPGRADE_RETRIES

    def attempts_for(self, operation: Operation) -> int:
        """Total attempts allowed for an operation."""
        return self.retries_for(operation) + 1


class VariableType(StrEnum):
    """How a package variable's value is interpreted."""

    RAW = "raw"
    FILE = "file"


class PackageVariable(BaseModel):
    """A deploy-time variable or package constant used for placeholder substitution."""

    model_config = ConfigDict(frozen=True)

    value: str = ""
    sensitive: bool = False
    auto_indent: bool = False
    type: VariableType = VariableType.RAW


class DeployOptions(BaseModel):
    """Configuration for a single deploy request.

    Passed explicitly to every collaborator so that concurrent deploys of
    independent releases never share mutable settings.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    state: ClusterState | None = None
    airgap_mode: bool = True
    yolo: bool = False
    adopt_existing_resources: bool = False
    timeout_seconds: float = Field(default=DEFAULT_TIMEOUT_SECONDS, gt=0)
    retry_policy: RetryPolicy = Field(default_factory=RetryPolicy)
    package_name: str = ""
    namespace_override: str = ""
    variables: dict[str, PackageVariable] = Field(default_factory=dict)
    constants: dict[str, PackageVariable] = Field(default_factory=dict)
    data_injection_marker: str = ""
    dry_run: bool = False

    @property
    def provisions_secrets(self) -> bool:
        """Whether per-namespace registry and git secrets should be written."""
        if not self.airgap_mode or self.state is None:
            return False
        return not (self.yolo and self.state.is_yolo)
