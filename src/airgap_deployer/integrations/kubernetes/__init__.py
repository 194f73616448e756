"""Kubernetes integration - API client, Helm CLI, release storage, and configuration models."""

from airgap_deployer.integrations.kubernetes.chart_source import LocalChartSource, ResolvedChart
from airgap_deployer.integrations.kubernetes.client import KubernetesClient
from airgap_deployer.integrations.kubernetes.config import (
    ClusterConfig,
    DeployerConfig,
    KubernetesDefaultsConfig,
)
from airgap_deployer.integrations.kubernetes.exceptions import (
    ApplyError,
    ConfigurationError,
    CycleError,
    DeployError,
    DeployTimeoutError,
    HistoryError,
    InstallFailedError,
    KubernetesAuthError,
    KubernetesConflictError,
    KubernetesConnectionError,
    KubernetesError,
    KubernetesNotFoundError,
    KubernetesTimeoutError,
    KubernetesValidationError,
    NamespaceProvisionError,
    ReleaseNotFoundError,
    RenderError,
    RollbackError,
    SecretProvisionError,
    UpgradeFailedError,
)
from airgap_deployer.integrations.kubernetes.helm_client import HelmClient
from airgap_deployer.integrations.kubernetes.release_driver import HelmReleaseDriver
from airgap_deployer.integrations.kubernetes.release_store import SecretReleaseStore

__all__ = [
    "ApplyError",
    "ClusterConfig",
    "ConfigurationError",
    "CycleError",
    "DeployError",
    "DeployTimeoutError",
    "DeployerConfig",
    "HelmClient",
    "HelmReleaseDriver",
    "HistoryError",
    "InstallFailedError",
    "KubernetesAuthError",
    "KubernetesClient",
    "KubernetesConflictError",
    "KubernetesConnectionError",
    "KubernetesDefaultsConfig",
    "KubernetesError",
    "KubernetesNotFoundError",
    "KubernetesTimeoutError",
    "KubernetesValidationError",
    "LocalChartSource",
    "NamespaceProvisionError",
    "ReleaseNotFoundError",
    "RenderError",
    "ResolvedChart",
    "RollbackError",
    "SecretProvisionError",
    "SecretReleaseStore",
    "UpgradeFailedError",
]
