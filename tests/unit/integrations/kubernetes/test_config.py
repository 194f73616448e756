"""Unit tests for deployer configuration models."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from airgap_deployer.integrations.kubernetes.config import (
    ClusterConfig,
    DeployerConfig,
    KubernetesDefaultsConfig,
)
from airgap_deployer.integrations.kubernetes.models.deploy import (
    DEFAULT_TIMEOUT_SECONDS,
    DefaultRemediation,
    FixedRetries,
    Operation,
)
from airgap_deployer.integrations.kubernetes.models.state import ClusterState


@pytest.mark.unit
@pytest.mark.kubernetes
class TestClusterConfig:
    """Test ClusterConfig Pydantic model."""

    def test_default_values(self) -> None:
        """Test default configuration values."""
        config = ClusterConfig()
        assert config.context == ""
        assert config.kubeconfig == "~/.kube/config"
        assert config.namespace == "default"
        assert config.timeout == 300

    def test_kubeconfig_path_expansion(self) -> None:
        """Test that tilde in kubeconfig path is expanded."""
        config = ClusterConfig(kubeconfig="~/custom/config")
        assert "~" not in config.kubeconfig
        assert config.kubeconfig == str(Path("~/custom/config").expanduser())

    def test_timeout_validation_zero(self) -> None:
        """Test that zero timeout raises ValidationError."""
        with pytest.raises(ValidationError) as exc_info:
            ClusterConfig(timeout=0)
        assert "timeout must be positive" in str(exc_info.value)

    def test_extra_fields_forbidden(self) -> None:
        """Test that unknown fields are rejected."""
        with pytest.raises(ValidationError):
            ClusterConfig(unknown="value")  # type: ignore[call-arg]


@pytest.mark.unit
@pytest.mark.kubernetes
class TestKubernetesDefaultsConfig:
    """Test KubernetesDefaultsConfig Pydantic model."""

    def test_default_values(self) -> None:
        """Test default configuration values."""
        config = KubernetesDefaultsConfig()
        assert config.timeout == DEFAULT_TIMEOUT_SECONDS
        assert config.retry_attempts is None
        assert config.helm_binary is None

    def test_negative_retry_attempts(self) -> None:
        """Test that negative retry_attempts raises ValidationError."""
        with pytest.raises(ValidationError) as exc_info:
            KubernetesDefaultsConfig(retry_attempts=-1)
        assert "retry_attempts must be non-negative" in str(exc_info.value)

    def test_zero_retry_attempts_allowed(self) -> None:
        """Test that zero retries is a valid fixed remediation."""
        assert KubernetesDefaultsConfig(retry_attempts=0).retry_attempts == 0

    def test_negative_backoff(self) -> None:
        """Test that negative backoff raises ValidationError."""
        with pytest.raises(ValidationError):
            KubernetesDefaultsConfig(backoff_seconds=-1)

    def test_rollback_timeout_positive(self) -> None:
        """Test that a zero rollback timeout raises ValidationError."""
        with pytest.raises(ValidationError):
            KubernetesDefaultsConfig(rollback_timeout=0)


@pytest.mark.unit
@pytest.mark.kubernetes
class TestDeployerConfig:
    """Test DeployerConfig Pydantic model."""

    def test_default_values(self) -> None:
        """Test default configuration values."""
        config = DeployerConfig()
        assert config.clusters == {}
        assert config.active_cluster is None
        assert config.airgap_mode is True
        assert config.adopt_existing_resources is False

    def test_get_active_context_explicit(self) -> None:
        """Test active context resolves through the named cluster."""
        config = DeployerConfig(
            clusters={"prod": ClusterConfig(context="prod-context")},
            active_cluster="prod",
        )
        assert config.get_active_context() == "prod-context"

    def test_get_active_context_unknown_cluster(self) -> None:
        """Test an unknown active cluster is used as a context name."""
        config = DeployerConfig(active_cluster="kind-dev")
        assert config.get_active_context() == "kind-dev"

    def test_get_active_context_first_cluster(self) -> None:
        """Test the first cluster is used when none is active."""
        config = DeployerConfig(
            clusters={
                "a": ClusterConfig(context="ctx-a"),
                "b": ClusterConfig(context="ctx-b"),
            }
        )
        assert config.get_active_context() == "ctx-a"

    def test_get_active_context_none(self) -> None:
        """Test no context without clusters."""
        assert DeployerConfig().get_active_context() is None

    def test_get_active_kubeconfig(self) -> None:
        """Test kubeconfig of the active cluster."""
        config = DeployerConfig(
            clusters={"prod": ClusterConfig(kubeconfig="/etc/kube/prod")},
            active_cluster="prod",
        )
        assert config.get_active_kubeconfig() == "/etc/kube/prod"
        assert DeployerConfig().get_active_kubeconfig() is None

    def test_get_active_namespace(self) -> None:
        """Test namespace of the active cluster with a default fallback."""
        config = DeployerConfig(
            clusters={"prod": ClusterConfig(namespace="apps")},
            active_cluster="prod",
        )
        assert config.get_active_namespace() == "apps"
        assert DeployerConfig().get_active_namespace() == "default"

    def test_retry_policy_default_remediation(self) -> None:
        """Test that unset retry attempts select the default remediation."""
        policy = DeployerConfig().retry_policy()
        assert isinstance(policy.max_retries, DefaultRemediation)
        assert policy.retries_for(Operation.INSTALL) == 3
        assert policy.retries_for(Operation.UPGRADE) == 5

    def test_retry_policy_fixed(self) -> None:
        """Test that configured retry attempts become a fixed remediation."""
        config = DeployerConfig(
            defaults=KubernetesDefaultsConfig(
                retry_attempts=2,
                backoff_seconds=1.5,
                max_total_seconds=120,
                rollback_timeout=60,
            )
        )

        policy = config.retry_policy()

        assert policy.max_retries == FixedRetries(retries=2)
        assert policy.backoff_seconds == 1.5
        assert policy.max_total_seconds == 120
        assert policy.rollback_timeout_seconds == 60

    def test_default_options(self) -> None:
        """Test deploy options built from configuration."""
        config = DeployerConfig(
            adopt_existing_resources=True,
            defaults=KubernetesDefaultsConfig(timeout=600),
        )
        state = ClusterState(distro="k3s")

        options = config.default_options(state, dry_run=True)

        assert options.state == state
        assert options.adopt_existing_resources is True
        assert options.timeout_seconds == 600
        assert options.dry_run is True
        assert options.airgap_mode is True


@pytest.mark.unit
@pytest.mark.kubernetes
class TestDeployerConfigFromEnv:
    """Test DeployerConfig.from_env environment overrides."""

    def test_from_env_no_overrides(self) -> None:
        """Test from_env without environment variables."""
        config = DeployerConfig.from_env()
        assert config.clusters == {}
        assert config.defaults.retry_attempts is None

    def test_from_env_context(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test AIRGAP_K8S_CONTEXT sets the active cluster."""
        monkeypatch.setenv("AIRGAP_K8S_CONTEXT", "staging")
        config = DeployerConfig.from_env()
        assert config.active_cluster == "staging"

    def test_from_env_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test numeric and helm overrides land in defaults."""
        monkeypatch.setenv("AIRGAP_K8S_TIMEOUT", "120")
        monkeypatch.setenv("AIRGAP_K8S_RETRIES", "1")
        monkeypatch.setenv("AIRGAP_K8S_BACKOFF", "0.5")
        monkeypatch.setenv("AIRGAP_K8S_HELM", "/opt/helm/bin/helm")

        config = DeployerConfig.from_env({"defaults": {"timeout": 999}})

        assert config.defaults.timeout == 120
        assert config.defaults.retry_attempts == 1
        assert config.defaults.backoff_seconds == 0.5
        assert config.defaults.helm_binary == "/opt/helm/bin/helm"

    def test_from_env_cluster_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test kubeconfig and namespace overrides apply to every cluster."""
        monkeypatch.setenv("AIRGAP_K8S_KUBECONFIG", "/tmp/kubeconfig")
        monkeypatch.setenv("AIRGAP_K8S_NAMESPACE", "apps")

        config = DeployerConfig.from_env({"clusters": {"a": {}, "b": {"namespace": "other"}}})

        for cluster in config.clusters.values():
            assert cluster.kubeconfig == "/tmp/kubeconfig"
            assert cluster.namespace == "apps"

    def test_from_env_does_not_mutate_base(self) -> None:
        """Test the base configuration dict is left untouched."""
        base = {"defaults": {"timeout": 60}}
        DeployerConfig.from_env(base)
        assert base == {"defaults": {"timeout": 60}}
