"""Secret manager for per-namespace registry and git server credentials.

Workloads in an air-gapped cluster pull images from the in-cluster registry
and clone from the in-cluster git server. Every namespace a release touches
gets a ``private-registry`` image pull secret and a ``private-git-server``
credential secret generated from the cluster state.
"""

from __future__ import annotations

import base64
import json
from typing import TYPE_CHECKING

from airgap_deployer.integrations.kubernetes.exceptions import (
    KubernetesConflictError,
    KubernetesError,
    SecretProvisionError,
)
from airgap_deployer.services.kubernetes.base import K8sBaseManager
from airgap_deployer.services.kubernetes.namespace_manager import managed_labels

if TYPE_CHECKING:
    from airgap_deployer.integrations.kubernetes.models.state import (
        GitServerInfo,
        RegistryInfo,
    )

IMAGE_PULL_SECRET_NAME = "private-registry"
GIT_SERVER_SECRET_NAME = "private-git-server"
DOCKER_CONFIG_JSON_TYPE = "kubernetes.io/dockerconfigjson"
DOCKER_CONFIG_JSON_KEY = ".dockerconfigjson"
OPAQUE_TYPE = "Opaque"


def _b64(value: str | bytes) -> str:
    raw = value.encode("utf-8") if isinstance(value, str) else value
    return base64.b64encode(raw).decode("ascii")


def registry_pull_secret_data(registry: RegistryInfo) -> dict[str, str]:
    """Build the base64-encoded data of an image pull secret.

    The ``auth`` field is ``base64(username:password)`` as docker expects.
    """
    auth = _b64(f"{registry.pull_username}:{registry.pull_password}")
    docker_config = {"auths": {registry.address: {"auth": auth}}}
    return {DOCKER_CONFIG_JSON_KEY: _b64(json.dumps(docker_config, separators=(",", ":")))}


def git_pull_secret_data(git_server: GitServerInfo) -> dict[str, str]:
    """Build the base64-encoded data of a git server credential secret."""
    return {
        "username": _b64(git_server.pull_username),
        "password": _b64(git_server.pull_password),
    }


class SecretManager(K8sBaseManager):
    """Manager for the credential secrets the deployer provisions."""

    _entity_name = "secret"

    def get_secret_data(self, name: str, namespace: str) -> dict[str, str] | None:
        """Get a secret's base64-encoded data.

        Returns:
            The data, or None if the secret does not exist.
        """
        from kubernetes.client import ApiException

        self._log.debug("getting_secret", name=name, namespace=namespace)
        try:
            result = self._client.core_v1.read_namespaced_secret(name=name, namespace=namespace)
        except ApiException as e:
            if e.status == 404:
                return None
            self._handle_api_error(e, "Secret", name, namespace)
        except Exception as e:
            self._handle_api_error(e, "Secret", name, namespace)
        return dict(result.data or {})

    def create_or_update_secret(
        self,
        name: str,
        namespace: str,
        data: dict[str, str],
        *,
        secret_type: str = OPAQUE_TYPE,
    ) -> None:
        """Create a secret, replacing it if it already exists.

        Args:
            name: Secret name.
            namespace: Target namespace.
            data: Base64-encoded secret data.
            secret_type: Secret type.
        """
        from kubernetes.client import V1ObjectMeta, V1Secret

        body = V1Secret(
            metadata=V1ObjectMeta(name=name, namespace=namespace, labels=managed_labels()),
            type=secret_type,
            data=data,
        )

        self._log.info("creating_secret", name=name, namespace=namespace, type=secret_type)
        try:
            self._client.core_v1.create_namespaced_secret(namespace=namespace, body=body)
            self._log.info("created_secret", name=name, namespace=namespace)
            return
        except Exception as e:
            error = self._client.translate_api_exception(e, "Secret", name, namespace)
            if not isinstance(error, KubernetesConflictError):
                raise error from e

        self._log.info("updating_secret", name=name, namespace=namespace)
        try:
            self._client.core_v1.replace_namespaced_secret(
                name=name, namespace=namespace, body=body
            )
            self._log.info("updated_secret", name=name, namespace=namespace)
        except Exception as e:
            self._handle_api_error(e, "Secret", name, namespace)

    def ensure_pull_secrets(
        self,
        namespace: str,
        registry: RegistryInfo,
        git_server: GitServerInfo,
    ) -> None:
        """Make sure the registry and git secrets in a namespace match the cluster state.

        Both secrets are rewritten when the registry secret is missing or
        stale. Failures are logged as warnings and never raised.
        """
        registry_data = registry_pull_secret_data(registry)
        try:
            current = self.get_secret_data(IMAGE_PULL_SECRET_NAME, namespace)
        except KubernetesError as e:
            self._log.debug("secret_lookup_failed", namespace=namespace, error=str(e))
            current = None

        if current == registry_data:
            self._log.debug("pull_secrets_current", namespace=namespace)
            return

        self._provision(
            IMAGE_PULL_SECRET_NAME,
            namespace,
            registry_data,
            DOCKER_CONFIG_JSON_TYPE,
            "registry",
        )
        self._provision(
            GIT_SERVER_SECRET_NAME,
            namespace,
            git_pull_secret_data(git_server),
            OPAQUE_TYPE,
            "git server",
        )

    def _provision(
        self,
        name: str,
        namespace: str,
        data: dict[str, str],
        secret_type: str,
        purpose: str,
    ) -> None:
        try:
            self.create_or_update_secret(name, namespace, data, secret_type=secret_type)
        except KubernetesError as e:
            error = SecretProvisionError(
                f"problem creating {purpose} secret for the {namespace} namespace: {e.message}",
                namespace=namespace,
            )
            self._log.warning(
                "secret_provision_failed", secret=name, namespace=namespace, error=str(error)
            )
