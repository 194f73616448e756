"""Exceptions raised by the Kubernetes integration and the deploy engine."""

from __future__ import annotations

from typing import Any


class KubernetesError(Exception):
    """Base exception for Kubernetes operations.

    Attributes:
        message: Human-readable error message.
        status_code: HTTP status code from the Kubernetes API (if applicable).
        resource_type: Kind of resource involved (e.g., "Namespace", "Secret").
        resource_name: Name of the resource involved.
        namespace: Namespace of the resource (if applicable).
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        resource_type: str | None = None,
        resource_name: str | None = None,
        namespace: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.resource_type = resource_type
        self.resource_name = resource_name
        self.namespace = namespace

    def __str__(self) -> str:
        parts = [self.message]
        if self.status_code:
            parts.append(f"(status: {self.status_code})")
        if self.resource_type and self.resource_name:
            loc = f"[{self.resource_type}/{self.resource_name}"
            if self.namespace:
                loc += f" in {self.namespace}"
            loc += "]"
            parts.append(loc)
        return " ".join(parts)


class KubernetesConnectionError(KubernetesError):
    """Raised when the cluster cannot be reached or kubeconfig cannot be loaded."""

    def __init__(
        self,
        message: str = "Failed to connect to Kubernetes cluster",
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message=message)
        self.original_error = original_error


class KubernetesAuthError(KubernetesError):
    """Raised on 401/403 responses from the API server."""

    def __init__(
        self,
        message: str = "Kubernetes authentication/authorization failed",
        status_code: int | None = 401,
        reason: str | None = None,
    ) -> None:
        super().__init__(message=message, status_code=status_code)
        self.reason = reason


class KubernetesNotFoundError(KubernetesError):
    """Raised when a requested resource does not exist (404)."""

    def __init__(
        self,
        message: str = "Kubernetes resource not found",
        resource_type: str | None = None,
        resource_name: str | None = None,
        namespace: str | None = None,
    ) -> None:
        if resource_type and resource_name:
            message = f"{resource_type} '{resource_name}' not found"
            if namespace:
                message += f" in namespace '{namespace}'"
        super().__init__(
            message=message,
            status_code=404,
            resource_type=resource_type,
            resource_name=resource_name,
            namespace=namespace,
        )


class KubernetesValidationError(KubernetesError):
    """Raised when the API server rejects a resource spec (400/422)."""

    def __init__(
        self,
        message: str = "Invalid resource specification",
        validation_errors: dict[str, Any] | None = None,
        status_code: int | None = 422,
    ) -> None:
        super().__init__(message=message, status_code=status_code)
        self.validation_errors = validation_errors or {}


class KubernetesConflictError(KubernetesError):
    """Raised when a resource already exists or was modified concurrently (409)."""

    def __init__(
        self,
        message: str = "Resource conflict",
        resource_type: str | None = None,
        resource_name: str | None = None,
        namespace: str | None = None,
    ) -> None:
        if resource_type and resource_name:
            message = f"{resource_type} '{resource_name}' already exists"
            if namespace:
                message += f" in namespace '{namespace}'"
        super().__init__(
            message=message,
            status_code=409,
            resource_type=resource_type,
            resource_name=resource_name,
            namespace=namespace,
        )


class KubernetesTimeoutError(KubernetesError):
    """Raised when a Kubernetes operation exceeds its time budget."""

    def __init__(
        self,
        message: str = "Kubernetes operation timed out",
        timeout_seconds: float | None = None,
    ) -> None:
        if timeout_seconds:
            message = f"{message} (after {timeout_seconds:g}s)"
        super().__init__(message=message)
        self.timeout_seconds = timeout_seconds


# ---------------------------------------------------------------------------
# Release deployment errors
# ---------------------------------------------------------------------------


class DeployError(KubernetesError):
    """Base exception for release deployment failures.

    Attributes:
        operation: The lifecycle operation that failed (install, upgrade, rollback).
        release_name: Name of the release being deployed.
        attempts: Number of attempts made before giving up.
        elapsed_seconds: Wall-clock time spent before giving up.
    """

    def __init__(
        self,
        message: str,
        *,
        operation: str | None = None,
        release_name: str | None = None,
        namespace: str | None = None,
        attempts: int | None = None,
        elapsed_seconds: float | None = None,
    ) -> None:
        super().__init__(
            message=message,
            resource_type="Release" if release_name else None,
            resource_name=release_name,
            namespace=namespace,
        )
        self.operation = operation
        self.release_name = release_name
        self.attempts = attempts
        self.elapsed_seconds = elapsed_seconds


class ConfigurationError(DeployError):
    """The cluster client could not be initialized. Never retried."""


class RenderError(DeployError):
    """Chart data could not be loaded or templated. Retried."""


class ApplyError(DeployError):
    """The cluster rejected the rendered manifest. Retried."""


class HistoryError(DeployError):
    """Release history could not be read or written."""


class ReleaseNotFoundError(HistoryError):
    """The release has no stored history."""

    def __init__(self, release_name: str, namespace: str | None = None) -> None:
        super().__init__(
            f"release '{release_name}' not found",
            release_name=release_name,
            namespace=namespace,
        )


class InstallFailedError(DeployError):
    """Every install attempt failed."""


class UpgradeFailedError(DeployError):
    """Every upgrade attempt failed.

    Attributes:
        rollback_attempted: Whether a rollback was issued.
        rollback_succeeded: Whether the issued rollback completed.
        rollback_version: Revision targeted by the rollback, if any.
    """

    def __init__(
        self,
        message: str,
        *,
        rollback_attempted: bool = False,
        rollback_succeeded: bool = False,
        rollback_version: int | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.rollback_attempted = rollback_attempted
        self.rollback_succeeded = rollback_succeeded
        self.rollback_version = rollback_version


class RollbackError(UpgradeFailedError):
    """The upgrade failed and the automatic rollback failed as well."""

    def __init__(self, message: str, **kwargs: Any) -> None:
        kwargs.setdefault("rollback_attempted", True)
        kwargs.setdefault("rollback_succeeded", False)
        super().__init__(message, **kwargs)


class DeployTimeoutError(DeployError):
    """The overall retry budget elapsed before an attempt succeeded."""


class NamespaceProvisionError(DeployError):
    """A namespace required by the manifest could not be created. Never retried."""


class SecretProvisionError(DeployError):
    """A registry or git pull secret could not be written. Logged, not raised."""


class CycleError(ValueError):
    """Raised when the release dependency graph contains a cycle.

    Attributes:
        cycle: Node ids forming the cycle, first node repeated at the end.
    """

    def __init__(self, cycle: list[str]) -> None:
        super().__init__(f"dependency cycle detected: {' -> '.join(cycle)}")
        self.cycle = cycle
