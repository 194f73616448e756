"""Cluster state models.

The cluster state describes the in-cluster registry and git server that an
air-gapped deployment pushes to and pulls from. It supplies placeholder
values during post-render and the material for per-namespace pull secrets.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

YOLO_DISTRO = "YOLO"


class RegistryInfo(BaseModel):
    """Connection details for the image registry."""

    model_config = ConfigDict(extra="ignore")

    address: str = ""
    node_port: int = 0
    internal_registry: bool = False
    push_username: str = ""
    push_password: str = Field(default="", repr=False)
    pull_username: str = ""
    pull_password: str = Field(default="", repr=False)
    secret: str = Field(default="", repr=False)


class GitServerInfo(BaseModel):
    """Connection details for the git server."""

    model_config = ConfigDict(extra="ignore")

    address: str = ""
    push_username: str = ""
    push_password: str = Field(default="", repr=False)
    pull_username: str = ""
    pull_password: str = Field(default="", repr=False)


class ClusterState(BaseModel):
    """Cluster-wide state captured when the cluster was initialized."""

    model_config = ConfigDict(extra="ignore")

    distro: str = ""
    storage_class: str = ""
    registry_info: RegistryInfo = Field(default_factory=RegistryInfo)
    git_server: GitServerInfo = Field(default_factory=GitServerInfo)

    @property
    def is_yolo(self) -> bool:
        """Whether the cluster was initialized without registry or git services."""
        return self.distro == YOLO_DISTRO
