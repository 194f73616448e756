"""Deployer configuration models."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator

from airgap_deployer.integrations.kubernetes.models.deploy import (
    DEFAULT_BACKOFF_SECONDS,
    DEFAULT_ROLLBACK_TIMEOUT_SECONDS,
    DEFAULT_TIMEOUT_SECONDS,
    DefaultRemediation,
    DeployOptions,
    FixedRetries,
    RetryPolicy,
)
from airgap_deployer.integrations.kubernetes.models.state import ClusterState


class ClusterConfig(BaseModel):
    """Configuration for a single Kubernetes cluster."""

    model_config = ConfigDict(extra="forbid")

    context: str = ""
    kubeconfig: str = "~/.kube/config"
    namespace: str = "default"
    timeout: int = 300

    @field_validator("timeout")
    @classmethod
    def validate_timeout(cls, v: int) -> int:
        """Validate timeout is positive."""
        if v <= 0:
            raise ValueError("timeout must be positive")
        return v

    @field_validator("kubeconfig")
    @classmethod
    def validate_kubeconfig(cls, v: str) -> str:
        """Expand ~ in kubeconfig path."""
        return str(Path(v).expanduser())


class KubernetesDefaultsConfig(BaseModel):
    """Default settings for deploy operations.

    ``retry_attempts`` of None selects the default remediation for each
    operation instead of a fixed count.
    """

    model_config = ConfigDict(extra="forbid")

    timeout: int = DEFAULT_TIMEOUT_SECONDS
    retry_attempts: int | None = None
    backoff_seconds: float = DEFAULT_BACKOFF_SECONDS
    max_total_seconds: float | None = None
    rollback_timeout: int = DEFAULT_ROLLBACK_TIMEOUT_SECONDS
    helm_binary: str | None = None

    @field_validator("timeout", "rollback_timeout")
    @classmethod
    def validate_timeout(cls, v: int) -> int:
        """Validate timeouts are positive."""
        if v <= 0:
            raise ValueError("timeout must be positive")
        return v

    @field_validator("retry_attempts")
    @classmethod
    def validate_retry_attempts(cls, v: int | None) -> int | None:
        """Validate retry_attempts is non-negative."""
        if v is not None and v < 0:
            raise ValueError("retry_attempts must be non-negative")
        return v

    @field_validator("backoff_seconds")
    @classmethod
    def validate_backoff(cls, v: float) -> float:
        """Validate backoff is non-negative."""
        if v < 0:
            raise ValueError("backoff_seconds must be non-negative")
        return v


class DeployerConfig(BaseModel):
    """Complete deployer configuration."""

    model_config = ConfigDict(extra="forbid")

    clusters: dict[str, ClusterConfig] = {}
    active_cluster: str | None = None
    defaults: KubernetesDefaultsConfig = KubernetesDefaultsConfig()
    airgap_mode: bool = True
    adopt_existing_resources: bool = False

    @classmethod
    def from_env(cls, base_config: dict[str, Any] | None = None) -> DeployerConfig:
        """Create configuration with environment variable overrides.

        Environment variables take precedence over base_config values.

        Supported environment variables:
            AIRGAP_K8S_KUBECONFIG: Override kubeconfig path
            AIRGAP_K8S_CONTEXT: Override active Kubernetes context
            AIRGAP_K8S_NAMESPACE: Override default namespace
            AIRGAP_K8S_TIMEOUT: Default deploy timeout in seconds
            AIRGAP_K8S_RETRIES: Fixed retry count for install and upgrade
            AIRGAP_K8S_BACKOFF: Seconds to wait between attempts
            AIRGAP_K8S_HELM: Path to the helm binary
        """
        config_dict = base_config.copy() if base_config else {}
        config_dict["defaults"] = dict(config_dict.get("defaults") or {})
        config_dict.setdefault("clusters", {})

        kubeconfig_override = os.environ.get("AIRGAP_K8S_KUBECONFIG")
        namespace_override = os.environ.get("AIRGAP_K8S_NAMESPACE")

        if context := os.environ.get("AIRGAP_K8S_CONTEXT"):
            config_dict["active_cluster"] = context

        if timeout := os.environ.get("AIRGAP_K8S_TIMEOUT"):
            config_dict["defaults"]["timeout"] = int(timeout)

        if retries := os.environ.get("AIRGAP_K8S_RETRIES"):
            config_dict["defaults"]["retry_attempts"] = int(retries)

        if backoff := os.environ.get("AIRGAP_K8S_BACKOFF"):
            config_dict["defaults"]["backoff_seconds"] = float(backoff)

        if helm_binary := os.environ.get("AIRGAP_K8S_HELM"):
            config_dict["defaults"]["helm_binary"] = helm_binary

        instance = cls.model_validate(config_dict)

        if kubeconfig_override:
            for cluster_cfg in instance.clusters.values():
                cluster_cfg.kubeconfig = str(Path(kubeconfig_override).expanduser())

        if namespace_override:
            for cluster_cfg in instance.clusters.values():
                cluster_cfg.namespace = namespace_override

        return instance

    def get_active_context(self) -> str | None:
        """Get the active cluster context name.

        Returns the active_cluster if set, or the context from the first
        configured cluster, or None if no clusters are configured.
        """
        if self.active_cluster:
            if cluster := self.clusters.get(self.active_cluster):
                return cluster.context
            return self.active_cluster
        if self.clusters:
            first = next(iter(self.clusters.values()))
            return first.context
        return None

    def get_active_kubeconfig(self) -> str | None:
        """Get the kubeconfig path of the active cluster, if one is configured."""
        if self.active_cluster and self.active_cluster in self.clusters:
            return self.clusters[self.active_cluster].kubeconfig
        return None

    def get_active_namespace(self) -> str:
        """Get the default namespace for the active cluster."""
        if self.active_cluster and self.active_cluster in self.clusters:
            return self.clusters[self.active_cluster].namespace
        if self.clusters:
            first = next(iter(self.clusters.values()))
            return first.namespace
        return "default"

    def retry_policy(self) -> RetryPolicy:
        """Build the remediation policy from the configured defaults."""
        attempts = self.defaults.retry_attempts
        return RetryPolicy(
            max_retries=DefaultRemediation()
            if attempts is None
            else FixedRetries(retries=attempts),
            backoff_seconds=self.defaults.backoff_seconds,
            max_total_seconds=self.defaults.max_total_seconds,
            rollback_timeout_seconds=self.defaults.rollback_timeout,
        )

    def default_options(self, state: ClusterState | None = None, **overrides: Any) -> DeployOptions:
        """Build request-scoped deploy options from this configuration.

        Args:
            state: Cluster state used for placeholders and pull secrets.
            **overrides: Any other :class:`DeployOptions` field.
        """
        fields: dict[str, Any] = {
            "state": state,
            "airgap_mode": self.airgap_mode,
            "adopt_existing_resources": self.adopt_existing_resources,
            "timeout_seconds": self.defaults.timeout,
            "retry_policy": self.retry_policy(),
        }
        fields.update(overrides)
        return DeployOptions(**fields)
