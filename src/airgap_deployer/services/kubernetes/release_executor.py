"""Release executor: the install, upgrade, and rollback state machine.

``deploy`` looks up a release's stored history to decide between a first
install and an upgrade. Both paths render the chart, run the output through
a fresh post-renderer, and apply it, retrying the whole attempt under the
request's retry policy. An upgrade that never succeeds is rolled back to the
last revision that was successfully deployed.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Mapping, Sequence
from pathlib import Path
from typing import TYPE_CHECKING, Any, NoReturn, Protocol

import structlog

from airgap_deployer.integrations.kubernetes.exceptions import (
    ConfigurationError,
    HistoryError,
    InstallFailedError,
    KubernetesError,
    ReleaseNotFoundError,
    RollbackError,
    UpgradeFailedError,
)
from airgap_deployer.integrations.kubernetes.models.deploy import (
    DeployOptions,
    DeployPhase,
    Operation,
)
from airgap_deployer.integrations.kubernetes.models.release import (
    ChartDescriptor,
    DeployResult,
    ReleaseRevision,
    ReleaseStatus,
)
from airgap_deployer.services.kubernetes.deprecation_migrator import DeprecationMigrator
from airgap_deployer.services.kubernetes.post_renderer import (
    PostRenderer,
    PostRenderResult,
    new_post_renderer,
)
from airgap_deployer.services.kubernetes.retry import RetriesExhaustedError, run_with_retry
from airgap_deployer.utils.dependencies import sort_dependencies

if TYPE_CHECKING:
    from airgap_deployer.integrations.kubernetes.chart_source import ResolvedChart
    from airgap_deployer.integrations.kubernetes.client import KubernetesClient
    from airgap_deployer.integrations.kubernetes.config import DeployerConfig

logger = structlog.get_logger()

ProgressCallback = Callable[[DeployPhase, ChartDescriptor], None]
PostRendererFactory = Callable[[ChartDescriptor, DeployOptions], PostRenderer]

NO_ROLLBACK_TARGET = "unable to upgrade, and unable to determine a safe rollback target"
ROLLBACK_FAILED = "upgrade failed and rollback also failed"


# =============================================================================
# Collaborators
# =============================================================================


class ChartSource(Protocol):
    """Resolves a chart descriptor to something the driver can render."""

    def resolve(self, chart: ChartDescriptor, values: dict[str, Any]) -> ResolvedChart: ...


class ReleaseStore(Protocol):
    """Stored revision history of releases."""

    def history(self, release_name: str, namespace: str) -> list[ReleaseRevision]: ...

    def create(self, revision: ReleaseRevision) -> None: ...

    def update(self, revision: ReleaseRevision) -> None: ...


class ReleaseDriver(Protocol):
    """Applies rendered releases to the cluster."""

    def install(
        self,
        chart: ChartDescriptor,
        resolved: ResolvedChart,
        post_renderer: PostRenderer,
        options: DeployOptions,
    ) -> PostRenderResult: ...

    def upgrade(
        self,
        chart: ChartDescriptor,
        resolved: ResolvedChart,
        post_renderer: PostRenderer,
        options: DeployOptions,
    ) -> PostRenderResult: ...

    def rollback(
        self,
        release_name: str,
        namespace: str,
        version: int,
        *,
        timeout_seconds: float,
        force: bool = True,
    ) -> None: ...

    def uninstall(self, release_name: str, namespace: str, *, timeout_seconds: float) -> None: ...


def latest_deployed(history: Sequence[ReleaseRevision]) -> ReleaseRevision | None:
    """Return the highest-version revision with status deployed, if any."""
    deployed = [r for r in history if r.status is ReleaseStatus.DEPLOYED]
    return max(deployed, key=lambda r: r.version, default=None)


# =============================================================================
# Executor
# =============================================================================


class ReleaseExecutor:
    """Deploys charts as releases with retry and rollback.

    All per-request settings travel in :class:`DeployOptions`; the executor
    keeps no state between calls, so independent releases may be deployed
    from separate threads.

    Example:
        ```python
        executor = ReleaseExecutor.from_config(DeployerConfig.from_env())
        chart = ChartDescriptor(name="podinfo", namespace="podinfo", source_ref="charts/podinfo")
        result = executor.deploy(chart, {"replicaCount": 2})
        ```
    """

    def __init__(
        self,
        *,
        chart_source: ChartSource,
        store: ReleaseStore,
        driver: ReleaseDriver,
        options: DeployOptions | None = None,
        client: KubernetesClient | None = None,
        migrator: DeprecationMigrator | None = None,
        post_renderer_factory: PostRendererFactory | None = None,
        on_progress: ProgressCallback | None = None,
        sleep: Callable[[float], Any] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the executor.

        Args:
            chart_source: Resolves charts and merges values.
            store: Release history store.
            driver: Applies releases.
            options: Default deploy options for calls that pass none.
            client: Kubernetes client for post-rendering and migration.
                Without one, post-rendering runs locally and migration is
                skipped unless ``migrator`` is given.
            migrator: Deprecated API migrator run before upgrades.
            post_renderer_factory: Builds the post-renderer for each attempt.
            on_progress: Called at each phase transition. Errors it raises
                are logged and ignored.
            sleep: Sleeps between attempts.
            clock: Monotonic clock for the retry budget.
        """
        self._chart_source = chart_source
        self._store = store
        self._driver = driver
        self._options = options or DeployOptions()
        self._client = client
        if migrator is None and client is not None:
            migrator = DeprecationMigrator(store, client=client)
        self._migrator = migrator
        self._post_renderer_factory = post_renderer_factory or self._default_post_renderer
        self._on_progress = on_progress
        self._sleep = sleep
        self._clock = clock
        self._log = logger.bind(entity="release_executor")

    @classmethod
    def from_config(
        cls,
        config: DeployerConfig,
        *,
        base_dir: Path | None = None,
        options: DeployOptions | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> ReleaseExecutor:
        """Build an executor wired to the active cluster.

        Raises:
            ConfigurationError: If the cluster client or helm cannot be set up.
        """
        from airgap_deployer.integrations.kubernetes.chart_source import LocalChartSource
        from airgap_deployer.integrations.kubernetes.client import KubernetesClient
        from airgap_deployer.integrations.kubernetes.helm_client import HelmClient
        from airgap_deployer.integrations.kubernetes.release_driver import HelmReleaseDriver
        from airgap_deployer.integrations.kubernetes.release_store import SecretReleaseStore

        try:
            client = KubernetesClient(config)
            helm = HelmClient(
                config.defaults.helm_binary,
                kube_context=config.get_active_context(),
                kubeconfig=config.get_active_kubeconfig(),
            )
        except KubernetesError as e:
            raise ConfigurationError(f"unable to initialize cluster clients: {e.message}") from e

        return cls(
            chart_source=LocalChartSource(base_dir),
            store=SecretReleaseStore(client),
            driver=HelmReleaseDriver(helm, client),
            options=options or config.default_options(),
            client=client,
            on_progress=on_progress,
        )

    # =========================================================================
    # Deploy
    # =========================================================================

    def deploy(
        self,
        chart: ChartDescriptor,
        values: dict[str, Any] | None = None,
        options: DeployOptions | None = None,
    ) -> DeployResult:
        """Install or upgrade a chart.

        Args:
            chart: Chart to deploy.
            values: Values layered over the chart's values files.
            options: Deploy options; defaults to the executor's.

        Returns:
            The release name and the connect strings of its Services.

        Raises:
            HistoryError: If release history cannot be read, or migration fails.
            InstallFailedError: If every install attempt failed.
            UpgradeFailedError: If every upgrade attempt failed. The error
                says whether the release was rolled back.
            RollbackError: If the upgrade and the rollback both failed.
            DeployTimeoutError: If the retry budget elapsed.
            NamespaceProvisionError: If a namespace could not be created.
        """
        opts = options or self._options
        chart = self._with_namespace_override(chart, opts)
        values = values or {}
        log = self._log.bind(release=chart.release_name, namespace=chart.namespace)
        self._notify(DeployPhase.QUEUED, chart)

        try:
            self._notify(DeployPhase.CHECKING_HISTORY, chart)
            history = self._read_history(chart)

            if not history:
                log.info("installing_release", chart=chart.name, version=chart.version)
                result = self._install(chart, values, opts)
                operation = Operation.INSTALL
            else:
                latest = max(history, key=lambda r: r.version)
                log.info("upgrading_release", chart=chart.name, from_version=latest.version)
                result = self._upgrade(chart, values, opts, latest)
                operation = Operation.UPGRADE
        except Exception as e:
            log.error("deploy_failed", error=str(e), error_type=type(e).__name__)
            self._notify(DeployPhase.FAILED, chart)
            raise

        log.info(
            "deploy_succeeded",
            operation=operation.value,
            connect_strings=sorted(result.connect_strings),
        )
        self._notify(DeployPhase.SUCCEEDED, chart)
        return DeployResult(
            release_name=chart.release_name,
            connect_strings=result.connect_strings,
            operation=operation.value,
        )

    def deploy_many(
        self,
        graph: Mapping[str, Sequence[str]],
        charts: Mapping[str, ChartDescriptor],
        values: Mapping[str, dict[str, Any]] | None = None,
        options: DeployOptions | None = None,
    ) -> list[DeployResult]:
        """Deploy several releases, dependencies first.

        Args:
            graph: Namespaced release id to the ids it depends on.
            charts: Namespaced release id to chart. Ids in ``graph`` without
                a chart are treated as already deployed.
            values: Namespaced release id to values.
            options: Deploy options shared by every release.

        Returns:
            One result per deployed chart, in deploy order.

        Raises:
            CycleError: If the graph has a cycle.
            DeployError: From the first release that fails; later
                releases are not attempted.
        """
        nodes: dict[str, Sequence[str]] = dict(graph)
        for node in charts:
            nodes.setdefault(node, ())

        order = sort_dependencies(nodes)
        self._log.info("deploy_order_resolved", order=order)

        results: list[DeployResult] = []
        for node in order:
            chart = charts.get(node)
            if chart is None:
                self._log.debug("skipping_external_dependency", release=node)
                continue
            results.append(self.deploy(chart, dict((values or {}).get(node) or {}), options))
        return results

    def remove(self, chart: ChartDescriptor, options: DeployOptions | None = None) -> None:
        """Uninstall a release and its history.

        Raises:
            ApplyError: If the uninstall fails.
        """
        opts = options or self._options
        chart = self._with_namespace_override(chart, opts)
        self._log.info("removing_release", release=chart.release_name, namespace=chart.namespace)
        self._driver.uninstall(
            chart.release_name,
            chart.namespace,
            timeout_seconds=opts.timeout_seconds,
        )

    # =========================================================================
    # Install / Upgrade
    # =========================================================================

    def _read_history(self, chart: ChartDescriptor) -> list[ReleaseRevision]:
        try:
            return self._store.history(chart.release_name, chart.namespace)
        except ReleaseNotFoundError:
            return []

    def _install(
        self, chart: ChartDescriptor, values: dict[str, Any], options: DeployOptions
    ) -> PostRenderResult:
        self._notify(DeployPhase.INSTALLING, chart)

        def attempt(number: int) -> PostRenderResult:
            self._log.debug("install_attempt", release=chart.release_name, attempt=number)
            # A failed install leaves a stored revision that blocks another install
            upgrade = number > 1 and bool(self._read_history(chart))
            resolved = self._chart_source.resolve(chart, values)
            renderer = self._post_renderer_factory(chart, options)
            if upgrade:
                self._log.info("upgrading_failed_install", release=chart.release_name)
                return self._driver.upgrade(chart, resolved, renderer, options)
            return self._driver.install(chart, resolved, renderer, options)

        try:
            return self._run(attempt, Operation.INSTALL, chart, options)
        except RetriesExhaustedError as e:
            raise InstallFailedError(
                f"unable to install chart after {e.attempts} attempt(s): {e.last_error}",
                operation=Operation.INSTALL.value,
                release_name=chart.release_name,
                namespace=chart.namespace,
                attempts=e.attempts,
                elapsed_seconds=e.elapsed_seconds,
            ) from e.last_error

    def _upgrade(
        self,
        chart: ChartDescriptor,
        values: dict[str, Any],
        options: DeployOptions,
        latest: ReleaseRevision,
    ) -> PostRenderResult:
        self._migrate(chart, latest)
        self._notify(DeployPhase.UPGRADING, chart)

        def attempt(number: int) -> PostRenderResult:
            self._log.debug("upgrade_attempt", release=chart.release_name, attempt=number)
            resolved = self._chart_source.resolve(chart, values)
            renderer = self._post_renderer_factory(chart, options)
            return self._driver.upgrade(chart, resolved, renderer, options)

        try:
            return self._run(attempt, Operation.UPGRADE, chart, options)
        except RetriesExhaustedError as e:
            self._recover(chart, options, e)

    def _migrate(self, chart: ChartDescriptor, latest: ReleaseRevision) -> None:
        if self._migrator is None:
            self._log.debug("skipping_deprecation_migration", release=chart.release_name)
            return

        self._notify(DeployPhase.MIGRATING, chart)
        try:
            self._migrator.migrate(latest)
        except HistoryError:
            raise
        except KubernetesError as e:
            raise HistoryError(
                f"unable to migrate deprecated APIs: {e.message}",
                operation=Operation.UPGRADE.value,
                release_name=chart.release_name,
                namespace=chart.namespace,
            ) from e

    def _run(
        self,
        attempt: Callable[[int], PostRenderResult],
        operation: Operation,
        chart: ChartDescriptor,
        options: DeployOptions,
    ) -> PostRenderResult:
        return run_with_retry(
            attempt,
            operation=operation,
            policy=options.retry_policy,
            release_name=chart.release_name,
            namespace=chart.namespace,
            sleep=self._sleep,
            clock=self._clock,
            on_retry=lambda _number, _error: self._notify(DeployPhase.RETRYING, chart),
        )

    # =========================================================================
    # Rollback
    # =========================================================================

    def _recover(
        self,
        chart: ChartDescriptor,
        options: DeployOptions,
        failure: RetriesExhaustedError,
    ) -> NoReturn:
        """Roll back after exhausted upgrade attempts. Always raises."""
        common: dict[str, Any] = {
            "operation": Operation.UPGRADE.value,
            "release_name": chart.release_name,
            "namespace": chart.namespace,
            "attempts": failure.attempts,
            "elapsed_seconds": failure.elapsed_seconds,
        }

        try:
            target = latest_deployed(self._store.history(chart.release_name, chart.namespace))
        except HistoryError as e:
            self._log.warning(
                "rollback_history_unavailable", release=chart.release_name, error=str(e)
            )
            target = None

        tried = f"after {failure.attempts} attempt(s) in {failure.elapsed_seconds:.0f}s"
        if target is None:
            raise UpgradeFailedError(
                f"{NO_ROLLBACK_TARGET} {tried}: {failure.last_error}",
                **common,
            ) from failure.last_error

        self._notify(DeployPhase.ROLLING_BACK, chart)
        self._log.warning(
            "rolling_back_release",
            release=chart.release_name,
            version=target.version,
            attempts=failure.attempts,
        )
        try:
            self._driver.rollback(
                chart.release_name,
                chart.namespace,
                target.version,
                timeout_seconds=options.retry_policy.rollback_timeout_seconds,
                force=True,
            )
        except KubernetesError as e:
            raise RollbackError(
                f"{ROLLBACK_FAILED} {tried}: upgrade: {failure.last_error}; rollback: {e}",
                rollback_version=target.version,
                **common,
            ) from e

        raise UpgradeFailedError(
            f"unable to upgrade chart after {failure.attempts} attempt(s), "
            f"rolled back to version {target.version}: {failure.last_error}",
            rollback_attempted=True,
            rollback_succeeded=True,
            rollback_version=target.version,
            **common,
        ) from failure.last_error

    # =========================================================================
    # Helpers
    # =========================================================================

    def _with_namespace_override(
        self, chart: ChartDescriptor, options: DeployOptions
    ) -> ChartDescriptor:
        override = options.namespace_override
        if not override or override == chart.namespace:
            return chart
        self._log.debug(
            "overriding_release_namespace",
            release=chart.release_name,
            namespace=chart.namespace,
            override=override,
        )
        return chart.model_copy(update={"namespace": override})

    def _default_post_renderer(
        self, chart: ChartDescriptor, options: DeployOptions
    ) -> PostRenderer:
        return new_post_renderer(chart, options, self._client)

    def _notify(self, phase: DeployPhase, chart: ChartDescriptor) -> None:
        if self._on_progress is None:
            return
        try:
            self._on_progress(phase, chart)
        except Exception as e:
            self._log.warning(
                "progress_callback_failed",
                phase=phase.value,
                release=chart.release_name,
                error=str(e),
            )
