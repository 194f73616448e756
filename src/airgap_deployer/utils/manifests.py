"""Splitting and reassembling rendered manifest streams.

A rendered release manifest is a multi-document YAML stream in which each
document is usually preceded by a ``# Source: <template path>`` comment.
These helpers split such a stream into discrete resources, keeping the
order the renderer produced, and write resources back out in the same shape.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

import yaml

# Helm's document separator: "---" at the start of a line, optionally preceded by blank space
DOCUMENT_SEPARATOR = re.compile(r"(?:^|\s*\n)---\s*")
SOURCE_COMMENT = re.compile(r"^#\s*Source:\s*(?P<source>.+?)\s*$", re.MULTILINE)


@dataclass(frozen=True)
class ManifestDocument:
    """A single resource document from a rendered manifest.

    Attributes:
        source: Template path the document was rendered from.
        content: YAML text of the resource without its source comment.
        data: Parsed resource.
    """

    source: str
    content: str
    data: dict[str, Any]

    @property
    def kind(self) -> str:
        return str(self.data.get("kind") or "")

    @property
    def api_version(self) -> str:
        return str(self.data.get("apiVersion") or "")

    @property
    def name(self) -> str:
        return str((self.data.get("metadata") or {}).get("name") or "")

    @property
    def namespace(self) -> str:
        return str((self.data.get("metadata") or {}).get("namespace") or "")

    @property
    def labels(self) -> dict[str, str]:
        return dict((self.data.get("metadata") or {}).get("labels") or {})

    @property
    def annotations(self) -> dict[str, str]:
        return dict((self.data.get("metadata") or {}).get("annotations") or {})


def split_manifests(text: str, default_source: str = "manifest") -> list[ManifestDocument]:
    """Split a rendered manifest stream into resource documents.

    Empty documents and documents that do not parse to a mapping are dropped.
    Documents without a ``# Source:`` comment are named after
    ``default_source`` and their position in the stream.

    Args:
        text: Multi-document YAML text.
        default_source: Fallback source name.

    Returns:
        Resources in stream order.

    Raises:
        ValueError: If a document is not valid YAML.
    """
    documents: list[ManifestDocument] = []
    for index, chunk in enumerate(DOCUMENT_SEPARATOR.split(text)):
        source_match = SOURCE_COMMENT.search(chunk)
        content = SOURCE_COMMENT.sub("", chunk, count=1).strip("\n")
        if not content.strip():
            continue

        try:
            data = yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise ValueError(f"failed to parse manifest document {index}: {e}") from e
        if not isinstance(data, dict):
            continue

        source = source_match.group("source") if source_match else f"{default_source}-{index}"
        documents.append(ManifestDocument(source=source, content=content, data=data))
    return documents


def render_document(source: str, content: str) -> str:
    """Write one resource back out with its source comment."""
    return f"---\n# Source: {source}\n{content.rstrip()}\n"


def join_documents(documents: list[ManifestDocument]) -> str:
    """Reassemble resources into a manifest stream, preserving their text."""
    return "".join(render_document(doc.source, doc.content) for doc in documents)


def dump_resource(data: dict[str, Any]) -> str:
    """Serialize a resource mapping to YAML, keeping key order."""
    return yaml.safe_dump(data, default_flow_style=False, sort_keys=False)
