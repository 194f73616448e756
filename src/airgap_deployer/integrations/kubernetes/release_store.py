"""Release history stored as Helm v3 storage-format Secrets.

Each revision lives in a Secret named ``sh.helm.release.v1.<name>.v<N>``
labeled ``owner=helm,name=<release>``. The ``release`` data key holds the
release record as base64(gzip(json)), the same encoding the Helm CLI
writes, so revisions written here are read back by ``helm history`` and
vice versa.
"""

from __future__ import annotations

import base64
import copy
import gzip
import json
import zlib
from datetime import datetime
from typing import TYPE_CHECKING, Any

import structlog

from airgap_deployer.integrations.kubernetes.exceptions import (
    HistoryError,
    KubernetesError,
    ReleaseNotFoundError,
)
from airgap_deployer.integrations.kubernetes.models.release import (
    ReleaseRevision,
    ReleaseStatus,
)

if TYPE_CHECKING:
    from airgap_deployer.integrations.kubernetes.client import KubernetesClient

logger = structlog.get_logger()

SECRET_TYPE = "helm.sh/release.v1"
SECRET_NAME_PREFIX = "sh.helm.release.v1"
RELEASE_DATA_KEY = "release"
OWNER_LABEL = "owner"
OWNER_VALUE = "helm"
GZIP_MAGIC = b"\x1f\x8b\x08"


def secret_name(release_name: str, version: int) -> str:
    """Name of the Secret holding one revision."""
    return f"{SECRET_NAME_PREFIX}.{release_name}.v{version}"


def _format_timestamp(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _parse_timestamp(value: Any) -> datetime | None:
    if not value or not isinstance(value, str):
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def encode_release(revision: ReleaseRevision) -> str:
    """Encode a revision as base64(gzip(json)) in Helm's storage format."""
    record = copy.deepcopy(revision.raw)
    record["name"] = revision.release_name
    record["namespace"] = revision.namespace
    record["version"] = revision.version
    record["manifest"] = revision.manifest

    info = dict(record.get("info") or {})
    info["status"] = revision.status.value
    info["description"] = revision.description
    if revision.timestamp is not None:
        info["last_deployed"] = _format_timestamp(revision.timestamp)
        info.setdefault("first_deployed", info["last_deployed"])
    record["info"] = info

    if revision.chart_name or revision.chart_version:
        chart = dict(record.get("chart") or {})
        metadata = dict(chart.get("metadata") or {})
        metadata.setdefault("name", revision.chart_name)
        metadata.setdefault("version", revision.chart_version)
        chart["metadata"] = metadata
        record["chart"] = chart

    payload = gzip.compress(json.dumps(record).encode("utf-8"))
    return base64.b64encode(payload).decode("ascii")


def decode_release(encoded: str) -> ReleaseRevision:
    """Decode a Helm storage-format payload into a revision.

    Raises:
        ValueError: If the payload is not valid base64, gzip, or JSON.
    """
    data = base64.b64decode(encoded)
    if data[:3] == GZIP_MAGIC:
        try:
            data = gzip.decompress(data)
        except (OSError, EOFError, zlib.error) as e:
            raise ValueError(f"release record is not valid gzip: {e}") from e
    record = json.loads(data)
    if not isinstance(record, dict):
        raise ValueError("release record is not an object")

    info = record.get("info") or {}
    metadata = (record.get("chart") or {}).get("metadata") or {}
    return ReleaseRevision(
        release_name=record.get("name", ""),
        version=int(record.get("version", 0)),
        status=ReleaseStatus.parse(info.get("status")),
        manifest=record.get("manifest", ""),
        description=info.get("description", ""),
        timestamp=_parse_timestamp(info.get("last_deployed")),
        namespace=record.get("namespace", ""),
        chart_name=metadata.get("name", ""),
        chart_version=metadata.get("version", ""),
        raw=record,
    )


class SecretReleaseStore:
    """Reads and writes release revisions through the Kubernetes Secrets API."""

    def __init__(self, client: KubernetesClient) -> None:
        self._client = client
        self._log = logger.bind(entity="release_store")

    def history(self, release_name: str, namespace: str) -> list[ReleaseRevision]:
        """Return every stored revision of a release, oldest first.

        Raises:
            ReleaseNotFoundError: If the release has no stored revisions.
            HistoryError: If history cannot be listed or decoded.
        """
        self._log.debug("reading_release_history", release=release_name, namespace=namespace)
        try:
            result = self._client.core_v1.list_namespaced_secret(
                namespace=namespace,
                label_selector=f"{OWNER_LABEL}={OWNER_VALUE},name={release_name}",
            )
        except Exception as e:
            error = self._client.translate_api_exception(e, "Secret", None, namespace)
            raise HistoryError(
                f"unable to read history for release '{release_name}': {error.message}",
                release_name=release_name,
                namespace=namespace,
            ) from e

        revisions: list[ReleaseRevision] = []
        for secret in result.items:
            encoded = (secret.data or {}).get(RELEASE_DATA_KEY)
            if not encoded:
                continue
            try:
                # Secret data is base64 on the wire on top of Helm's own base64
                revisions.append(decode_release(base64.b64decode(encoded).decode("ascii")))
            except (ValueError, UnicodeDecodeError) as e:
                raise HistoryError(
                    f"unable to decode release '{secret.metadata.name}': {e}",
                    release_name=release_name,
                    namespace=namespace,
                ) from e

        if not revisions:
            raise ReleaseNotFoundError(release_name, namespace)

        revisions.sort(key=lambda r: r.version)
        self._log.debug("read_release_history", release=release_name, revisions=len(revisions))
        return revisions

    def create(self, revision: ReleaseRevision) -> None:
        """Store a new revision.

        Raises:
            HistoryError: If the revision cannot be written.
        """
        body = self._build_secret(revision)
        self._log.info(
            "creating_release_revision",
            release=revision.release_name,
            version=revision.version,
            status=revision.status.value,
        )
        try:
            self._client.core_v1.create_namespaced_secret(namespace=revision.namespace, body=body)
        except Exception as e:
            self._raise_write_error(e, revision, "create")

    def update(self, revision: ReleaseRevision) -> None:
        """Overwrite a stored revision.

        Raises:
            HistoryError: If the revision cannot be written.
        """
        body = self._build_secret(revision)
        self._log.info(
            "updating_release_revision",
            release=revision.release_name,
            version=revision.version,
            status=revision.status.value,
        )
        try:
            self._client.core_v1.replace_namespaced_secret(
                name=secret_name(revision.release_name, revision.version),
                namespace=revision.namespace,
                body=body,
            )
        except Exception as e:
            self._raise_write_error(e, revision, "update")

    def _raise_write_error(self, e: Exception, revision: ReleaseRevision, action: str) -> None:
        name = secret_name(revision.release_name, revision.version)
        error: KubernetesError = self._client.translate_api_exception(
            e, "Secret", name, revision.namespace
        )
        raise HistoryError(
            f"unable to {action} release revision {revision.version}: {error.message}",
            release_name=revision.release_name,
            namespace=revision.namespace,
        ) from e

    @staticmethod
    def _build_secret(revision: ReleaseRevision) -> Any:
        from kubernetes.client import V1ObjectMeta, V1Secret

        payload = encode_release(revision)
        return V1Secret(
            metadata=V1ObjectMeta(
                name=secret_name(revision.release_name, revision.version),
                namespace=revision.namespace,
                labels={
                    "name": revision.release_name,
                    OWNER_LABEL: OWNER_VALUE,
                    "status": revision.status.value,
                    "version": str(revision.version),
                },
            ),
            type=SECRET_TYPE,
            data={RELEASE_DATA_KEY: base64.b64encode(payload.encode("ascii")).decode("ascii")},
        )
