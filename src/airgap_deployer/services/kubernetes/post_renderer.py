"""Post-render mutation of rendered chart output.

A post-renderer takes the manifest helm rendered for a chart and returns
the manifest that is actually applied. Along the way it substitutes
deploy-time placeholders, pulls Namespace resources out of the release so
the deployer owns them instead of helm, records connect strings declared
on Services, and makes sure every namespace the release touches exists and
carries the registry and git pull secrets.

Two variants exist. :class:`ClusterPostRenderer` talks to the cluster;
:class:`LocalPostRenderer` only substitutes placeholders and collects
connect strings, forwarding every resource unchanged. Use
:func:`new_post_renderer` to pick one.
"""

from __future__ import annotations

import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

import structlog

from airgap_deployer.integrations.kubernetes.exceptions import (
    KubernetesError,
    NamespaceProvisionError,
    RenderError,
)
from airgap_deployer.integrations.kubernetes.models.release import (
    ChartDescriptor,
    ConnectString,
    ConnectStrings,
)
from airgap_deployer.services.kubernetes.namespace_manager import (
    INSTANCE_LABEL,
    NamespaceManager,
    is_initial_namespace,
    managed_labels,
)
from airgap_deployer.services.kubernetes.secret_manager import SecretManager
from airgap_deployer.utils.manifests import ManifestDocument, join_documents, split_manifests
from airgap_deployer.utils.templating import (
    TextTemplate,
    deprecated_aliases,
    replace_in_directory,
    template_map_for,
)

if TYPE_CHECKING:
    from airgap_deployer.integrations.kubernetes.client import KubernetesClient
    from airgap_deployer.integrations.kubernetes.models.deploy import DeployOptions

logger = structlog.get_logger()

CONNECT_NAME_LABEL = "zarf.dev/connect-name"
CONNECT_DESCRIPTION_ANNOTATION = "zarf.dev/connect-description"
CONNECT_URL_ANNOTATION = "zarf.dev/connect-url"
SCRATCH_FILE = "chart.yaml"


@dataclass
class NamespaceRecord:
    """A namespace the release needs.

    Attributes:
        name: Namespace name.
        labels: Labels the namespace should carry.
        annotations: Annotations for a namespace created from the manifest.
        body: The namespace as declared or fetched. None when the namespace
            was only referenced by a resource and is not yet known to exist.
    """

    name: str
    labels: dict[str, str] = field(default_factory=managed_labels)
    annotations: dict[str, str] = field(default_factory=dict)
    body: dict[str, Any] | None = None


@dataclass(frozen=True)
class PostRenderResult:
    """Manifest to apply and the connect strings found while producing it."""

    manifest: str
    connect_strings: ConnectStrings = field(default_factory=dict)


class PostRenderer(Protocol):
    """Mutates rendered chart output before it is applied."""

    def run(self, manifest: str) -> PostRenderResult: ...


def connect_string_for(document: ManifestDocument) -> tuple[str, ConnectString] | None:
    """Extract the connect string a Service declares, if any."""
    if document.kind != "Service":
        return None
    key = document.labels.get(CONNECT_NAME_LABEL)
    if key is None:
        return None
    annotations = document.annotations
    return key, ConnectString(
        description=annotations.get(CONNECT_DESCRIPTION_ANNOTATION, ""),
        url=annotations.get(CONNECT_URL_ANNOTATION, ""),
    )


class _BasePostRenderer:
    """Placeholder substitution and re-splitting shared by both variants."""

    def __init__(self, chart: ChartDescriptor, options: DeployOptions) -> None:
        self._chart = chart
        self._options = options
        self._templates: dict[str, TextTemplate] = template_map_for(options)
        self._deprecations = deprecated_aliases()
        self._log = logger.bind(
            entity="post_renderer",
            release=chart.release_name,
            namespace=chart.namespace,
        )

    def _substitute(self, manifest: str) -> str:
        with tempfile.TemporaryDirectory(prefix="airgap-deployer-render-") as tmp:
            path = Path(tmp) / SCRATCH_FILE
            try:
                path.write_text(manifest, encoding="utf-8")
                replace_in_directory(Path(tmp), self._templates, self._deprecations)
                return path.read_text(encoding="utf-8")
            except OSError as e:
                raise RenderError(
                    f"error templating the helm chart: {e}",
                    release_name=self._chart.release_name,
                    namespace=self._chart.namespace,
                ) from e

    def _split(self, manifest: str) -> list[ManifestDocument]:
        try:
            return split_manifests(self._substitute(manifest), default_source=SCRATCH_FILE)
        except ValueError as e:
            raise RenderError(
                f"error re-rendering helm output: {e}",
                release_name=self._chart.release_name,
                namespace=self._chart.namespace,
            ) from e

    def _collect_connect_string(
        self, document: ManifestDocument, connect_strings: ConnectStrings
    ) -> None:
        found = connect_string_for(document)
        if found is None:
            return
        key, connect_string = found
        self._log.debug("matched_connect_service", service=document.name, connect_name=key)
        connect_strings[key] = connect_string


class LocalPostRenderer(_BasePostRenderer):
    """Post-renderer for dry runs and deploys without cluster access."""

    def run(self, manifest: str) -> PostRenderResult:
        documents = self._split(manifest)
        connect_strings: ConnectStrings = {}
        for document in documents:
            self._collect_connect_string(document, connect_strings)

        self._log.debug("post_render_complete", resources=len(documents), cluster=False)
        return PostRenderResult(
            manifest=join_documents(documents),
            connect_strings=connect_strings,
        )


class ClusterPostRenderer(_BasePostRenderer):
    """Post-renderer that reconciles namespaces and pull secrets in the cluster.

    The chart's own namespace is captured when the renderer is constructed,
    so a fresh renderer must be built for every attempt.
    """

    def __init__(
        self,
        chart: ChartDescriptor,
        options: DeployOptions,
        namespaces: NamespaceManager,
        secrets: SecretManager,
    ) -> None:
        """Initialize the renderer and capture the chart namespace.

        Raises:
            NamespaceProvisionError: If the chart namespace cannot be looked up.
        """
        super().__init__(chart, options)
        self._namespaces = namespaces
        self._secrets = secrets
        self.pending: dict[str, NamespaceRecord] = {}
        self._capture_chart_namespace()

    def _capture_chart_namespace(self) -> None:
        name = self._chart.namespace
        try:
            labels = self._namespaces.get_namespace_labels(name)
        except KubernetesError as e:
            raise NamespaceProvisionError(
                f"unable to check for existing namespace {name!r} in cluster: {e.message}",
                release_name=self._chart.release_name,
                namespace=name,
            ) from e

        if labels is None:
            self.pending[name] = NamespaceRecord(
                name=name,
                labels=self._managed_labels(),
                body={"metadata": {"name": name}},
            )
        elif self._options.adopt_existing_resources:
            self.pending[name] = NamespaceRecord(
                name=name,
                labels=self._managed_labels(labels),
                body={"metadata": {"name": name, "labels": labels}},
            )
        else:
            self.pending[name] = NamespaceRecord(name=name, labels=self._managed_labels())

    def run(self, manifest: str) -> PostRenderResult:
        """Mutate a rendered manifest and reconcile the namespaces it needs.

        Raises:
            RenderError: If the manifest cannot be templated or re-split.
            NamespaceProvisionError: If a namespace cannot be created or adopted.
        """
        documents = self._split(manifest)
        kept: list[ManifestDocument] = []
        connect_strings: ConnectStrings = {}

        for document in documents:
            if document.kind == "Namespace":
                self._track_declared_namespace(document)
                continue

            self._collect_connect_string(document, connect_strings)

            namespace = document.namespace
            if namespace and namespace not in self.pending:
                self.pending[namespace] = NamespaceRecord(
                    name=namespace, labels=self._managed_labels()
                )

            kept.append(document)

        self._reconcile_namespaces()

        self._log.debug(
            "post_render_complete",
            resources=len(kept),
            namespaces=sorted(self.pending),
            connect_strings=len(connect_strings),
        )
        return PostRenderResult(manifest=join_documents(kept), connect_strings=connect_strings)

    def _track_declared_namespace(self, document: ManifestDocument) -> None:
        if not document.name:
            self._log.warning("could_not_parse_namespace", source=document.source)
            return

        labels = self._managed_labels(document.labels)
        labels[INSTANCE_LABEL] = self._chart.release_name
        self._log.debug("matched_namespace_resource", name=document.name)
        self.pending[document.name] = NamespaceRecord(
            name=document.name,
            labels=labels,
            annotations=document.annotations,
            body=document.data,
        )

    def _managed_labels(self, labels: dict[str, str] | None = None) -> dict[str, str]:
        return managed_labels(labels, self._options.package_name)

    def _reconcile_namespaces(self) -> None:
        try:
            existing = self._namespaces.list_namespace_labels()
        except KubernetesError as e:
            raise NamespaceProvisionError(
                f"unable to list namespaces: {e.message}",
                release_name=self._chart.release_name,
            ) from e

        for name, record in self.pending.items():
            if name not in existing:
                self._create_namespace(record)
            elif self._options.adopt_existing_resources:
                self._adopt_namespace(record)

            state = self._options.state
            if self._options.provisions_secrets and state is not None:
                self._secrets.ensure_pull_secrets(name, state.registry_info, state.git_server)

    def _create_namespace(self, record: NamespaceRecord) -> None:
        try:
            self._namespaces.create_namespace(
                record.name,
                labels=record.labels,
                annotations=record.annotations,
            )
        except KubernetesError as e:
            raise NamespaceProvisionError(
                f"unable to create the missing namespace {record.name}: {e.message}",
                release_name=self._chart.release_name,
                namespace=record.name,
            ) from e

    def _adopt_namespace(self, record: NamespaceRecord) -> None:
        if is_initial_namespace(record.name):
            self._log.warning("refusing_to_adopt_initial_namespace", name=record.name)
            return
        try:
            self._namespaces.update_labels(record.name, record.labels)
        except KubernetesError as e:
            raise NamespaceProvisionError(
                f"unable to adopt the existing namespace {record.name}: {e.message}",
                release_name=self._chart.release_name,
                namespace=record.name,
            ) from e


def new_post_renderer(
    chart: ChartDescriptor,
    options: DeployOptions,
    client: KubernetesClient | None = None,
) -> PostRenderer:
    """Build the post-renderer for one attempt.

    Without a cluster client, or for a dry run, the local variant is used.

    Raises:
        NamespaceProvisionError: If the cluster variant cannot look up the
            chart namespace.
    """
    if client is None or options.dry_run:
        return LocalPostRenderer(chart, options)
    return ClusterPostRenderer(
        chart,
        options,
        NamespaceManager(client),
        SecretManager(client),
    )
