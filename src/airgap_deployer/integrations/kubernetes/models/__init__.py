"""Models for charts, releases, cluster state, and deploy options."""

from airgap_deployer.integrations.kubernetes.models.deploy import (
    DefaultRemediation,
    DeployOptions,
    DeployPhase,
    FixedRetries,
    Operation,
    PackageVariable,
    RetryPolicy,
    VariableType,
)
from airgap_deployer.integrations.kubernetes.models.helm import (
    HelmCommandResult,
    HelmTemplateResult,
)
from airgap_deployer.integrations.kubernetes.models.release import (
    ChartDescriptor,
    ConnectString,
    ConnectStrings,
    DeployResult,
    ReleaseRevision,
    ReleaseStatus,
)
from airgap_deployer.integrations.kubernetes.models.state import (
    ClusterState,
    GitServerInfo,
    RegistryInfo,
)

__all__ = [
    "ChartDescriptor",
    "ClusterState",
    "ConnectString",
    "ConnectStrings",
    "DefaultRemediation",
    "DeployOptions",
    "DeployPhase",
    "DeployResult",
    "FixedRetries",
    "GitServerInfo",
    "HelmCommandResult",
    "HelmTemplateResult",
    "Operation",
    "PackageVariable",
    "RegistryInfo",
    "ReleaseRevision",
    "ReleaseStatus",
    "RetryPolicy",
    "VariableType",
]
