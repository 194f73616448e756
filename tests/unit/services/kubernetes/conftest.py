"""Shared fixtures for Kubernetes service tests."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from airgap_deployer.integrations.kubernetes.client import KubernetesClient


@pytest.fixture
def mock_k8s_client() -> MagicMock:
    """Create a mock Kubernetes client.

    API calls go to ``core_v1`` sub-mocks; errors are translated the same
    way the real client translates them.
    """
    mock_client = MagicMock()
    mock_client.default_namespace = "default"
    mock_client.translate_api_exception.side_effect = KubernetesClient.translate_api_exception
    return mock_client
