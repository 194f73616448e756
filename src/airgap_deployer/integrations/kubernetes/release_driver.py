"""Release driver backed by the Helm CLI.

Charts are rendered with ``helm template`` against the cluster's version and
mutated in-process by a post-renderer. Hook documents are left out of the
post-rendered stream; Helm runs hooks itself and never post-renders them.
The mutated manifest is then applied with ``helm install`` or
``helm upgrade`` through the replay hook, so Helm records and applies
exactly the post-rendered output.
"""

from __future__ import annotations

import tempfile
from pathlib import Path
from typing import TYPE_CHECKING

import structlog
import yaml

from airgap_deployer.integrations.kubernetes.exceptions import (
    ApplyError,
    RenderError,
)
from airgap_deployer.integrations.kubernetes.helm_client import HelmClient, HelmError
from airgap_deployer.integrations.kubernetes.models.deploy import Operation
from airgap_deployer.integrations.kubernetes.post_render_hook import hook_command
from airgap_deployer.utils.manifests import join_documents, split_manifests

if TYPE_CHECKING:
    from airgap_deployer.integrations.kubernetes.chart_source import ResolvedChart
    from airgap_deployer.integrations.kubernetes.client import KubernetesClient
    from airgap_deployer.integrations.kubernetes.models.deploy import DeployOptions
    from airgap_deployer.integrations.kubernetes.models.release import ChartDescriptor
    from airgap_deployer.services.kubernetes.post_renderer import (
        PostRenderer,
        PostRenderResult,
    )

logger = structlog.get_logger()

VALUES_FILE = "values.yaml"
MANIFEST_FILE = "post-rendered.yaml"
HOOK_ANNOTATION = "helm.sh/hook"


def strip_hooks(rendered: str) -> str:
    """Remove hook documents from a ``helm template`` stream.

    Raises:
        ValueError: If a document is not valid YAML.
    """
    documents = split_manifests(rendered)
    kept = [doc for doc in documents if HOOK_ANNOTATION not in doc.annotations]
    if len(kept) == len(documents):
        return rendered
    return join_documents(kept)


class HelmReleaseDriver:
    """Applies releases through the Helm CLI."""

    def __init__(self, helm: HelmClient, client: KubernetesClient | None = None) -> None:
        """Initialize the driver.

        Args:
            helm: Helm CLI wrapper.
            client: Kubernetes client used to render for the cluster's version.
                Without one, helm renders for its built-in default version.
        """
        self._helm = helm
        self._client = client
        self._log = logger.bind(entity="release_driver")

    def install(
        self,
        chart: ChartDescriptor,
        resolved: ResolvedChart,
        post_renderer: PostRenderer,
        options: DeployOptions,
    ) -> PostRenderResult:
        """Render, post-render, and install a release.

        Raises:
            RenderError: If the chart cannot be rendered.
            ApplyError: If helm rejects the install.
        """
        return self._apply(Operation.INSTALL, chart, resolved, post_renderer, options)

    def upgrade(
        self,
        chart: ChartDescriptor,
        resolved: ResolvedChart,
        post_renderer: PostRenderer,
        options: DeployOptions,
    ) -> PostRenderResult:
        """Render, post-render, and upgrade a release.

        Raises:
            RenderError: If the chart cannot be rendered.
            ApplyError: If helm rejects the upgrade.
        """
        return self._apply(Operation.UPGRADE, chart, resolved, post_renderer, options)

    def rollback(
        self,
        release_name: str,
        namespace: str,
        version: int,
        *,
        timeout_seconds: float,
        force: bool = True,
    ) -> None:
        """Roll a release back to a stored revision.

        Raises:
            ApplyError: If helm rejects the rollback.
        """
        self._log.info("performing_helm_rollback", release=release_name, version=version)
        try:
            self._helm.rollback(
                release_name,
                version,
                namespace=namespace,
                wait=True,
                timeout_seconds=timeout_seconds,
                force=force,
            )
        except HelmError as e:
            raise ApplyError(
                f"unable to rollback release to version {version}: {e.message}",
                operation=Operation.ROLLBACK.value,
                release_name=release_name,
                namespace=namespace,
            ) from e

    def uninstall(self, release_name: str, namespace: str, *, timeout_seconds: float) -> None:
        """Uninstall a release and its history.

        Raises:
            ApplyError: If helm rejects the uninstall.
        """
        self._log.info("performing_helm_uninstall", release=release_name, namespace=namespace)
        try:
            self._helm.uninstall(release_name, namespace=namespace, timeout_seconds=timeout_seconds)
        except HelmError as e:
            raise ApplyError(
                f"unable to uninstall release: {e.message}",
                release_name=release_name,
                namespace=namespace,
            ) from e

    def _apply(
        self,
        operation: Operation,
        chart: ChartDescriptor,
        resolved: ResolvedChart,
        post_renderer: PostRenderer,
        options: DeployOptions,
    ) -> PostRenderResult:
        with tempfile.TemporaryDirectory(prefix="airgap-deployer-") as tmp:
            workdir = Path(tmp)
            values_path = workdir / VALUES_FILE
            values_path.write_text(yaml.safe_dump(resolved.values), encoding="utf-8")

            kube_version = None if self._client is None else self._client.get_server_version()
            self._log.debug(
                "rendering_chart",
                release=chart.release_name,
                chart=resolved.reference,
                kube_version=kube_version,
            )
            rendered = self._helm.template(
                chart.release_name,
                resolved.reference,
                namespace=chart.namespace,
                values_files=[str(values_path)],
                version=chart.version or None,
                include_crds=False,
                is_upgrade=operation is Operation.UPGRADE,
                kube_version=kube_version,
            )
            if not rendered.success:
                raise RenderError(
                    f"unable to render chart: {rendered.error}",
                    operation=operation.value,
                    release_name=chart.release_name,
                    namespace=chart.namespace,
                )

            try:
                manifest = strip_hooks(rendered.rendered_yaml)
            except ValueError as e:
                raise RenderError(
                    f"unable to render chart: {e}",
                    operation=operation.value,
                    release_name=chart.release_name,
                    namespace=chart.namespace,
                ) from e

            result = post_renderer.run(manifest)
            if options.dry_run:
                self._log.info("dry_run_skipping_apply", release=chart.release_name)
                return result

            manifest_path = workdir / MANIFEST_FILE
            manifest_path.write_text(result.manifest, encoding="utf-8")

            kwargs = {
                "namespace": chart.namespace,
                "values_files": [str(values_path)],
                "version": chart.version or None,
                "wait": not chart.no_wait,
                "timeout_seconds": options.timeout_seconds,
                "post_renderer": hook_command(manifest_path),
                "take_ownership": options.adopt_existing_resources,
            }
            self._log.info(
                f"performing_helm_{operation.value}",
                release=chart.release_name,
                namespace=chart.namespace,
            )
            try:
                if operation is Operation.INSTALL:
                    self._helm.install(chart.release_name, resolved.reference, **kwargs)
                else:
                    self._helm.upgrade(chart.release_name, resolved.reference, **kwargs)
            except HelmError as e:
                raise ApplyError(
                    f"unable to {operation.value} chart: {e.message}",
                    operation=operation.value,
                    release_name=chart.release_name,
                    namespace=chart.namespace,
                ) from e

            return result
