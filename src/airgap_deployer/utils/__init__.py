"""Utility functions for airgap_deployer."""

from airgap_deployer.utils.dependencies import (
    build_dependency_graph,
    namespaced_name,
    sort_dependencies,
)
from airgap_deployer.utils.manifests import (
    ManifestDocument,
    join_documents,
    render_document,
    split_manifests,
)
from airgap_deployer.utils.merge import deep_merge, merge_all
from airgap_deployer.utils.templating import (
    TextTemplate,
    build_template_map,
    deprecated_aliases,
    replace_text_template,
)

__all__ = [
    "ManifestDocument",
    "TextTemplate",
    "build_dependency_graph",
    "build_template_map",
    "deep_merge",
    "deprecated_aliases",
    "join_documents",
    "merge_all",
    "namespaced_name",
    "render_document",
    "replace_text_template",
    "sort_dependencies",
    "split_manifests",
]
