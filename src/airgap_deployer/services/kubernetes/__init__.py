"""Kubernetes deploy services.

Provides the release deployment engine: the release executor, the
post-render pipeline, deprecated API migration, and the namespace and
secret managers they use.
"""

from airgap_deployer.services.kubernetes.deprecation_migrator import DeprecationMigrator
from airgap_deployer.services.kubernetes.namespace_manager import NamespaceManager
from airgap_deployer.services.kubernetes.post_renderer import (
    ClusterPostRenderer,
    LocalPostRenderer,
    NamespaceRecord,
    PostRenderer,
    PostRenderResult,
    new_post_renderer,
)
from airgap_deployer.services.kubernetes.release_executor import (
    ChartSource,
    ReleaseDriver,
    ReleaseExecutor,
    ReleaseStore,
)
from airgap_deployer.services.kubernetes.secret_manager import SecretManager

__all__ = [
    "ChartSource",
    "ClusterPostRenderer",
    "DeprecationMigrator",
    "LocalPostRenderer",
    "NamespaceManager",
    "NamespaceRecord",
    "PostRenderResult",
    "PostRenderer",
    "ReleaseDriver",
    "ReleaseExecutor",
    "ReleaseStore",
    "SecretManager",
    "new_post_renderer",
]
