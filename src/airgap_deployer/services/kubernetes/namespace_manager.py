"""Namespace manager for deploy-time namespace reconciliation.

Lists, creates, and relabels namespaces. Namespaces created or adopted by
the deployer carry the ``app.kubernetes.io/managed-by=zarf`` label.
"""

from __future__ import annotations

from collections.abc import Mapping

from airgap_deployer.services.kubernetes.base import K8sBaseManager

MANAGED_BY_LABEL = "app.kubernetes.io/managed-by"
MANAGED_BY_VALUE = "zarf"
INSTANCE_LABEL = "app.kubernetes.io/instance"
PACKAGE_LABEL = "zarf.dev/package"

# https://kubernetes.io/docs/concepts/overview/working-with-objects/namespaces/#initial-namespaces
INITIAL_NAMESPACES = frozenset({"default", "kube-node-lease", "kube-public", "kube-system"})


def managed_labels(
    labels: Mapping[str, str] | None = None, package_name: str = ""
) -> dict[str, str]:
    """Return a copy of ``labels`` with the managed-by label set.

    When ``package_name`` is given the package label is set too.
    """
    adopted = dict(labels or {})
    adopted[MANAGED_BY_LABEL] = MANAGED_BY_VALUE
    if package_name:
        adopted[PACKAGE_LABEL] = package_name
    return adopted


def is_initial_namespace(name: str) -> bool:
    """Whether a namespace is one of the namespaces every cluster starts with."""
    return name in INITIAL_NAMESPACES


class NamespaceManager(K8sBaseManager):
    """Manager for namespaces the deployer creates or adopts."""

    _entity_name = "namespace"

    def list_namespace_labels(self) -> dict[str, dict[str, str]]:
        """List every namespace in the cluster with its labels.

        Returns:
            Namespace name to labels.
        """
        self._log.debug("listing_namespaces")
        try:
            result = self._client.core_v1.list_namespace()
        except Exception as e:
            self._handle_api_error(e, "Namespace", None, None)

        namespaces = {ns.metadata.name: dict(ns.metadata.labels or {}) for ns in result.items}
        self._log.debug("listed_namespaces", count=len(namespaces))
        return namespaces

    def get_namespace_labels(self, name: str) -> dict[str, str] | None:
        """Get a namespace's labels.

        Returns:
            The labels, or None if the namespace does not exist.
        """
        from kubernetes.client import ApiException

        self._log.debug("getting_namespace", name=name)
        try:
            result = self._client.core_v1.read_namespace(name=name)
        except ApiException as e:
            if e.status == 404:
                return None
            self._handle_api_error(e, "Namespace", name, None)
        except Exception as e:
            self._handle_api_error(e, "Namespace", name, None)
        return dict(result.metadata.labels or {})

    def create_namespace(
        self,
        name: str,
        *,
        labels: Mapping[str, str] | None = None,
        annotations: Mapping[str, str] | None = None,
    ) -> None:
        """Create a namespace.

        Args:
            name: Namespace name.
            labels: Namespace labels.
            annotations: Namespace annotations.
        """
        from kubernetes.client import V1Namespace, V1ObjectMeta

        body = V1Namespace(
            metadata=V1ObjectMeta(
                name=name,
                labels=dict(labels or {}),
                annotations=dict(annotations) if annotations else None,
            )
        )

        self._log.info("creating_namespace", name=name)
        try:
            self._client.core_v1.create_namespace(body=body)
            self._log.info("created_namespace", name=name)
        except Exception as e:
            self._handle_api_error(e, "Namespace", name, None)

    def update_labels(self, name: str, labels: Mapping[str, str]) -> None:
        """Merge labels onto an existing namespace.

        Args:
            name: Namespace name.
            labels: Labels to set; existing labels not named here are kept.
        """
        self._log.info("updating_namespace_labels", name=name)
        try:
            self._client.core_v1.patch_namespace(
                name=name,
                body={"metadata": {"labels": dict(labels)}},
            )
            self._log.info("updated_namespace_labels", name=name)
        except Exception as e:
            self._handle_api_error(e, "Namespace", name, None)
