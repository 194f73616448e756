"""Helm CLI wrapper for rendering and release lifecycle operations.

Wraps the helm binary via subprocess for template, install, upgrade,
rollback and uninstall.
"""

from __future__ import annotations

import shutil
import subprocess
from collections.abc import Sequence
from pathlib import Path

import structlog

from airgap_deployer.integrations.kubernetes.exceptions import KubernetesError
from airgap_deployer.integrations.kubernetes.models.helm import (
    HelmCommandResult,
    HelmTemplateResult,
)

logger = structlog.get_logger()

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

HELM_TIMEOUT_SECONDS = 300
VERSION_TIMEOUT_SECONDS = 10
# Extra time given to the helm process beyond its own --timeout
PROCESS_GRACE_SECONDS = 30
# Same default as the Helm CLI
MAX_HELM_HISTORY = 10


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class HelmError(KubernetesError):
    """Base exception for Helm operations."""

    def __init__(
        self,
        message: str,
        stderr: str | None = None,
    ) -> None:
        super().__init__(message=message)
        self.stderr = stderr


class HelmBinaryNotFoundError(HelmError):
    """Raised when helm binary is not found in PATH."""

    def __init__(self) -> None:
        super().__init__(
            message=(
                "helm binary not found in PATH. Install from: https://helm.sh/docs/intro/install/"
            ),
        )


class HelmCommandError(HelmError):
    """Raised when a helm command fails."""


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


def format_duration(seconds: float) -> str:
    """Format seconds as a helm duration flag value (e.g. ``900s``)."""
    return f"{int(seconds)}s"


class HelmClient:
    """Client for interacting with the Helm CLI.

    Every call carries its namespace and kube context explicitly; the
    client holds no per-release state.
    """

    def __init__(
        self,
        binary_path: str | None = None,
        *,
        kube_context: str | None = None,
        kubeconfig: str | None = None,
    ) -> None:
        """Initialize Helm client.

        Args:
            binary_path: Optional explicit path to helm binary.
                If None, searches PATH.
            kube_context: Kubeconfig context passed to every command.
            kubeconfig: Kubeconfig path passed to every command.

        Raises:
            HelmBinaryNotFoundError: If binary not found.
        """
        self._binary = self._find_binary(binary_path)
        self._kube_context = kube_context
        self._kubeconfig = kubeconfig
        self._log = logger.bind(binary=self._binary)
        self._log.debug("helm_client_initialized")

    @staticmethod
    def _find_binary(binary_path: str | None) -> str:
        if binary_path:
            path = Path(binary_path)
            if not path.exists():
                raise HelmBinaryNotFoundError()
            return str(path.resolve())

        found = shutil.which("helm")
        if not found:
            raise HelmBinaryNotFoundError()

        return found

    def _run(
        self,
        args: list[str],
        *,
        timeout: float = HELM_TIMEOUT_SECONDS,
    ) -> subprocess.CompletedProcess[str]:
        """Run a helm command.

        Args:
            args: Command arguments (without the ``helm`` prefix).
            timeout: Timeout in seconds for the helm process.

        Returns:
            CompletedProcess result.

        Raises:
            HelmCommandError: On non-zero exit.
            HelmError: On timeout.
        """
        cmd = [self._binary, *args]
        if self._kube_context:
            cmd.extend(["--kube-context", self._kube_context])
        if self._kubeconfig:
            cmd.extend(["--kubeconfig", self._kubeconfig])
        self._log.debug("running_helm_command", args=args)

        try:
            return subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                check=True,
                timeout=timeout,
            )
        except subprocess.CalledProcessError as e:
            detail = e.stderr.strip() if e.stderr else f"exit code {e.returncode}"
            raise HelmCommandError(
                message=f"Helm command failed: {detail}",
                stderr=e.stderr,
            ) from e
        except subprocess.TimeoutExpired as e:
            raise HelmError(
                message=f"Helm command timed out after {timeout:g}s",
            ) from e

    # -----------------------------------------------------------------------
    # Version
    # -----------------------------------------------------------------------

    def get_version(self) -> str:
        """Get helm version string (e.g. ``v3.17.0``)."""
        result = self._run(["version", "--short"], timeout=VERSION_TIMEOUT_SECONDS)
        version = result.stdout.strip()
        # Strip build metadata (e.g., "v3.17.0+g301108e" -> "v3.17.0")
        if "+" in version:
            version = version.split("+")[0]
        return version

    # -----------------------------------------------------------------------
    # Rendering
    # -----------------------------------------------------------------------

    def template(
        self,
        release_name: str,
        chart: str,
        *,
        namespace: str | None = None,
        values_files: Sequence[str] | None = None,
        version: str | None = None,
        include_crds: bool = True,
        is_upgrade: bool = False,
        kube_version: str | None = None,
    ) -> HelmTemplateResult:
        """Render chart templates locally.

        Args:
            release_name: Release name for template rendering.
            chart: Chart reference.
            namespace: Target namespace.
            values_files: Paths to values YAML files.
            version: Chart version constraint.
            include_crds: Include CRDs in the rendered output.
            is_upgrade: Render with ``.Release.IsUpgrade`` set.
            kube_version: Kubernetes version for ``.Capabilities``.

        Returns:
            Template result with rendered YAML.
        """
        args = ["template", release_name, chart]
        if namespace:
            args.extend(["--namespace", namespace])
        if version:
            args.extend(["--version", version])
        for f in values_files or ():
            args.extend(["--values", f])
        if include_crds:
            args.append("--include-crds")
        if is_upgrade:
            args.append("--is-upgrade")
        if kube_version:
            args.extend(["--kube-version", kube_version])

        try:
            result = self._run(args)
            return HelmTemplateResult(rendered_yaml=result.stdout, success=True)
        except HelmError as e:
            return HelmTemplateResult(rendered_yaml="", success=False, error=e.message)

    # -----------------------------------------------------------------------
    # Release management
    # -----------------------------------------------------------------------

    def install(
        self,
        release_name: str,
        chart: str,
        *,
        namespace: str,
        values_files: Sequence[str] | None = None,
        version: str | None = None,
        wait: bool = True,
        timeout_seconds: float = HELM_TIMEOUT_SECONDS,
        post_renderer: Sequence[str] | None = None,
        skip_crds: bool = False,
        take_ownership: bool = False,
    ) -> HelmCommandResult:
        """Install a Helm chart.

        Args:
            release_name: Name for the release.
            chart: Chart reference (path, tarball, or repo/chart).
            namespace: Target namespace.
            values_files: Paths to values YAML files.
            version: Chart version constraint.
            wait: Wait for resources to be ready.
            timeout_seconds: Helm operation timeout.
            post_renderer: Post-renderer executable followed by its arguments.
            skip_crds: Do not install CRDs from the chart's crds/ directory.
            take_ownership: Adopt existing resources not owned by Helm.

        Returns:
            Command result.
        """
        args = ["install", release_name, chart]
        args.extend(
            self._build_release_args(
                namespace=namespace,
                values_files=values_files,
                version=version,
                wait=wait,
                timeout_seconds=timeout_seconds,
                post_renderer=post_renderer,
                skip_crds=skip_crds,
                take_ownership=take_ownership,
            )
        )

        result = self._run(args, timeout=timeout_seconds + PROCESS_GRACE_SECONDS)
        self._log.info("helm_install_success", release=release_name, chart=chart)
        return HelmCommandResult(success=True, stdout=result.stdout, stderr=result.stderr)

    def upgrade(
        self,
        release_name: str,
        chart: str,
        *,
        namespace: str,
        values_files: Sequence[str] | None = None,
        version: str | None = None,
        wait: bool = True,
        timeout_seconds: float = HELM_TIMEOUT_SECONDS,
        post_renderer: Sequence[str] | None = None,
        skip_crds: bool = True,
        take_ownership: bool = False,
        max_history: int = MAX_HELM_HISTORY,
    ) -> HelmCommandResult:
        """Upgrade a Helm release.

        Args:
            release_name: Name of the release.
            chart: Chart reference.
            namespace: Target namespace.
            values_files: Paths to values YAML files.
            version: Chart version constraint.
            wait: Wait for resources to be ready.
            timeout_seconds: Helm operation timeout.
            post_renderer: Post-renderer executable followed by its arguments.
            skip_crds: Do not touch CRDs on upgrade.
            take_ownership: Adopt existing resources not owned by Helm.
            max_history: Revisions kept in release history.

        Returns:
            Command result.
        """
        args = ["upgrade", release_name, chart]
        args.extend(
            self._build_release_args(
                namespace=namespace,
                values_files=values_files,
                version=version,
                wait=wait,
                timeout_seconds=timeout_seconds,
                post_renderer=post_renderer,
                skip_crds=skip_crds,
                take_ownership=take_ownership,
            )
        )
        args.extend(["--history-max", str(max_history)])

        result = self._run(args, timeout=timeout_seconds + PROCESS_GRACE_SECONDS)
        self._log.info("helm_upgrade_success", release=release_name, chart=chart)
        return HelmCommandResult(success=True, stdout=result.stdout, stderr=result.stderr)

    def rollback(
        self,
        release_name: str,
        revision: int,
        *,
        namespace: str,
        wait: bool = True,
        timeout_seconds: float = HELM_TIMEOUT_SECONDS,
        force: bool = True,
        cleanup_on_fail: bool = True,
        max_history: int = MAX_HELM_HISTORY,
    ) -> HelmCommandResult:
        """Rollback a release to a specific revision.

        Args:
            release_name: Name of the release.
            revision: Revision to roll back to.
            namespace: Target namespace.
            wait: Wait for resources to be ready.
            timeout_seconds: Helm operation timeout.
            force: Force resource updates through replacement.
            cleanup_on_fail: Delete new resources created during a failed rollback.
            max_history: Revisions kept in release history.

        Returns:
            Command result.
        """
        args = ["rollback", release_name, str(revision), "--namespace", namespace]
        if wait:
            args.append("--wait")
        args.extend(["--timeout", format_duration(timeout_seconds)])
        if force:
            args.append("--force")
        if cleanup_on_fail:
            args.append("--cleanup-on-fail")
        args.extend(["--history-max", str(max_history)])

        result = self._run(args, timeout=timeout_seconds + PROCESS_GRACE_SECONDS)
        self._log.info("helm_rollback_success", release=release_name, revision=revision)
        return HelmCommandResult(success=True, stdout=result.stdout, stderr=result.stderr)

    def uninstall(
        self,
        release_name: str,
        *,
        namespace: str,
        wait: bool = True,
        timeout_seconds: float = HELM_TIMEOUT_SECONDS,
    ) -> HelmCommandResult:
        """Uninstall a release, removing its history."""
        args = ["uninstall", release_name, "--namespace", namespace]
        if wait:
            args.append("--wait")
        args.extend(["--timeout", format_duration(timeout_seconds)])

        result = self._run(args, timeout=timeout_seconds + PROCESS_GRACE_SECONDS)
        self._log.info("helm_uninstall_success", release=release_name)
        return HelmCommandResult(success=True, stdout=result.stdout, stderr=result.stderr)

    # -----------------------------------------------------------------------
    # Helpers
    # -----------------------------------------------------------------------

    @staticmethod
    def _build_release_args(
        *,
        namespace: str,
        values_files: Sequence[str] | None,
        version: str | None,
        wait: bool,
        timeout_seconds: float,
        post_renderer: Sequence[str] | None,
        skip_crds: bool,
        take_ownership: bool,
    ) -> list[str]:
        """Build arguments shared by install and upgrade."""
        args: list[str] = ["--namespace", namespace]
        if version:
            args.extend(["--version", version])
        for f in values_files or ():
            args.extend(["--values", f])
        if wait:
            args.append("--wait")
        args.extend(["--timeout", format_duration(timeout_seconds)])
        if post_renderer:
            executable, *renderer_args = post_renderer
            args.extend(["--post-renderer", executable])
            for arg in renderer_args:
                args.extend(["--post-renderer-args", arg])
        if skip_crds:
            args.append("--skip-crds")
        if take_ownership:
            args.append("--take-ownership")
        return args
