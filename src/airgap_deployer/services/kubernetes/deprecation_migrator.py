"""Migration of removed Kubernetes APIs in stored release manifests.

Helm diffs an upgrade against the manifest stored with the latest
revision. If that manifest uses an API version the cluster no longer
serves, the upgrade fails before anything is applied. The migrator rewrites
the stored manifest to the replacement APIs (dropping resources whose API
has no replacement) and records the result as a new deployed revision, the
same way the helm mapkubeapis plugin does.
"""

from __future__ import annotations

import re
from importlib import resources
from typing import TYPE_CHECKING

import structlog
import yaml
from pydantic import BaseModel, ConfigDict, Field

from airgap_deployer.integrations.kubernetes.exceptions import HistoryError, KubernetesError
from airgap_deployer.integrations.kubernetes.models.release import (
    ReleaseRevision,
    ReleaseStatus,
)
from airgap_deployer.utils.manifests import (
    ManifestDocument,
    dump_resource,
    render_document,
    split_manifests,
)

if TYPE_CHECKING:
    from airgap_deployer.integrations.kubernetes.client import KubernetesClient
    from airgap_deployer.services.kubernetes.release_executor import ReleaseStore

logger = structlog.get_logger()

MIGRATION_DESCRIPTION = "Kubernetes deprecated API upgrade - DO NOT rollback from this version"
KUBERNETES_COMPONENT = "k8s"
DEPRECATIONS_RESOURCE = "deprecated_versions.yaml"

_VERSION_RE = re.compile(r"^v?(\d+)\.(\d+)(?:\.(\d+))?")


class DeprecatedVersion(BaseModel):
    """One removed API version of one kind."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str = Field(alias="version", description="API version, e.g. extensions/v1beta1")
    kind: str
    deprecated_in: str = Field(default="", alias="deprecated-in")
    removed_in: str = Field(default="", alias="removed-in")
    replacement_api: str = Field(default="", alias="replacement-api")
    component: str = ""


class DeprecationTable(BaseModel):
    """The full table of removed API versions."""

    model_config = ConfigDict(populate_by_name=True)

    deprecated_versions: list[DeprecatedVersion] = Field(
        default_factory=list, alias="deprecated-versions"
    )


def parse_version(value: str) -> tuple[int, int, int]:
    """Parse a Kubernetes version such as ``v1.28.3+k3s1`` to a comparable tuple.

    Raises:
        ValueError: If ``value`` does not start with a major.minor version.
    """
    match = _VERSION_RE.match(value.strip())
    if match is None:
        raise ValueError(f"invalid version: {value!r}")
    major, minor, patch = match.groups()
    return int(major), int(minor), int(patch or 0)


def load_deprecation_table() -> DeprecationTable:
    """Load the table of removed API versions shipped with the package."""
    text = resources.files("airgap_deployer").joinpath("data", DEPRECATIONS_RESOURCE).read_text(
        encoding="utf-8"
    )
    return DeprecationTable.model_validate(yaml.safe_load(text) or {})


class DeprecationMigrator:
    """Rewrites removed APIs in the latest stored revision of a release.

    Example:
        ```python
        migrator = DeprecationMigrator(store, client=client)
        if migrator.migrate(history[-1]):
            print("stored manifest migrated")
        ```
    """

    def __init__(
        self,
        store: ReleaseStore,
        *,
        client: KubernetesClient | None = None,
        cluster_version: str | None = None,
        table: DeprecationTable | None = None,
    ) -> None:
        """Initialize the migrator.

        Args:
            store: Release store to write migrated revisions to.
            client: Kubernetes client used to look up the cluster version.
            cluster_version: Cluster version, used instead of asking ``client``.
            table: Deprecation table; defaults to the packaged table.
        """
        if client is None and cluster_version is None:
            raise ValueError("either client or cluster_version is required")
        self._store = store
        self._client = client
        self._cluster_version = cluster_version
        self._table = table
        self._log = logger.bind(entity="deprecation_migrator")

    @property
    def table(self) -> DeprecationTable:
        if self._table is None:
            self._table = load_deprecation_table()
        return self._table

    def migrate(self, latest: ReleaseRevision) -> bool:
        """Migrate removed APIs in a revision's manifest.

        When anything changes, ``latest`` is stored again as superseded and
        a new deployed revision carrying the rewritten manifest is created.

        Args:
            latest: Latest stored revision of the release.

        Returns:
            True if a migrated revision was written.

        Raises:
            HistoryError: If the cluster version or the manifest cannot be
                read, or the migrated revision cannot be stored.
        """
        kube_version = self._resolve_cluster_version(latest)

        try:
            documents = split_manifests(latest.manifest)
        except ValueError as e:
            raise HistoryError(
                f"error re-rendering helm output: {e}",
                release_name=latest.release_name,
                namespace=latest.namespace,
            ) from e

        output: list[str] = []
        modified = False
        for document in documents:
            content, changed = self._migrate_document(document, kube_version)
            modified = modified or changed
            if content is not None:
                output.append(render_document(document.source, content))

        if not modified:
            self._log.debug("no_deprecated_apis", release=latest.release_name)
            return False

        self._log.warning(
            "detected_deprecated_apis",
            release=latest.release_name,
            version=latest.version,
        )
        self._store.update(latest.with_status(ReleaseStatus.SUPERSEDED))
        migrated = latest.next_revision(
            manifest="".join(output),
            description=MIGRATION_DESCRIPTION,
        )
        self._store.create(migrated)
        self._log.info(
            "migrated_deprecated_apis",
            release=latest.release_name,
            version=migrated.version,
        )
        return True

    def _resolve_cluster_version(self, latest: ReleaseRevision) -> tuple[int, int, int]:
        raw = self._cluster_version
        if raw is None:
            if self._client is None:
                raise ValueError("either client or cluster_version is required")
            try:
                raw = self._client.get_server_version()
            except KubernetesError as e:
                raise HistoryError(
                    f"unable to determine the cluster version: {e.message}",
                    release_name=latest.release_name,
                    namespace=latest.namespace,
                ) from e
        try:
            return parse_version(raw)
        except ValueError as e:
            raise HistoryError(
                f"unable to parse the cluster version: {e}",
                release_name=latest.release_name,
                namespace=latest.namespace,
            ) from e

    def _migrate_document(
        self, document: ManifestDocument, kube_version: tuple[int, int, int]
    ) -> tuple[str | None, bool]:
        """Return the document's new content (None to drop it) and whether it changed."""
        for deprecation in self.table.deprecated_versions:
            if (
                deprecation.component != KUBERNETES_COMPONENT
                or deprecation.kind != document.kind
                or deprecation.name != document.api_version
            ):
                continue

            try:
                removed_in = parse_version(deprecation.removed_in)
            except ValueError:
                self._log.error(
                    "unable_to_update_deprecated_resource",
                    resource=document.source,
                    removed_in=deprecation.removed_in,
                )
                continue

            if removed_in > kube_version:
                continue

            if not deprecation.replacement_api:
                self._log.info(
                    "dropping_removed_resource",
                    kind=document.kind,
                    name=document.name,
                    api_version=document.api_version,
                )
                return None, True

            data = dict(document.data)
            data["apiVersion"] = deprecation.replacement_api
            self._log.info(
                "rewriting_deprecated_api",
                kind=document.kind,
                name=document.name,
                api_version=document.api_version,
                replacement=deprecation.replacement_api,
            )
            return dump_resource(data), True

        return document.content, False
