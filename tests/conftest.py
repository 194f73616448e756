"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import os
import shutil
import tempfile
from collections.abc import Generator
from pathlib import Path

import pytest

from airgap_deployer.integrations.kubernetes.models.release import ChartDescriptor
from airgap_deployer.integrations.kubernetes.models.state import (
    ClusterState,
    GitServerInfo,
    RegistryInfo,
)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    dir_path = Path(tempfile.mkdtemp())
    yield dir_path
    shutil.rmtree(dir_path, ignore_errors=True)


@pytest.fixture
def sample_chart() -> ChartDescriptor:
    """Return a chart descriptor for a simple release."""
    return ChartDescriptor(
        name="podinfo",
        namespace="podinfo",
        version="6.4.0",
        source_ref="charts/podinfo",
    )


@pytest.fixture
def cluster_state() -> ClusterState:
    """Return cluster state for an initialized air-gapped cluster."""
    return ClusterState(
        distro="k3s",
        storage_class="local-path",
        registry_info=RegistryInfo(
            address="127.0.0.1:31999",
            node_port=31999,
            internal_registry=True,
            push_username="zarf-push",
            push_password="push-secret",
            pull_username="zarf-pull",
            pull_password="pull-secret",
        ),
        git_server=GitServerInfo(
            address="http://zarf-gitea-http.zarf.svc.cluster.local:3000",
            push_username="zarf-git-user",
            push_password="git-push-secret",
            pull_username="zarf-git-read-user",
            pull_password="git-pull-secret",
        ),
    )


@pytest.fixture(autouse=True)
def reset_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Reset environment variables for each test."""
    # Clear any AIRGAP_ prefixed environment variables
    for key in list(os.environ.keys()):
        if key.startswith("AIRGAP_"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture
def capture_logs(caplog: pytest.LogCaptureFixture) -> pytest.LogCaptureFixture:
    """Fixture to capture log output."""
    import logging

    caplog.set_level(logging.DEBUG)
    return caplog
