"""Resolve a chart descriptor to a chart reference and merged values."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog
import yaml

from airgap_deployer.integrations.kubernetes.exceptions import RenderError
from airgap_deployer.integrations.kubernetes.models.release import ChartDescriptor
from airgap_deployer.utils.merge import merge_all

logger = structlog.get_logger()

REMOTE_PREFIXES = ("oci://", "https://", "http://")


@dataclass(frozen=True)
class ResolvedChart:
    """A chart ready for rendering.

    Attributes:
        reference: Chart path, tarball, or repository reference for helm.
        values: Fully merged values.
    """

    reference: str
    values: dict[str, Any] = field(default_factory=dict)


class LocalChartSource:
    """Resolves charts from an extracted package directory.

    ``source_ref`` (or the chart name when unset) is looked up relative to
    ``base_dir``. References that do not exist locally are passed through to
    helm when they look like ``repo/chart`` or a remote URL.

    Values are layered in order: each of ``values_files``, then the values
    passed to :meth:`resolve`. Later layers win, nested mappings merge.
    """

    def __init__(self, base_dir: Path | None = None) -> None:
        self._base_dir = base_dir or Path.cwd()
        self._log = logger.bind(entity="chart_source", base_dir=str(self._base_dir))

    def resolve(self, chart: ChartDescriptor, values: dict[str, Any]) -> ResolvedChart:
        """Resolve a chart and merge its values.

        Raises:
            RenderError: If the chart or a values file cannot be loaded.
        """
        reference = self._resolve_reference(chart)
        layers = [self._load_values_file(chart, f) for f in chart.values_files]
        layers.append(values)
        merged = merge_all(layers)
        self._log.debug(
            "resolved_chart",
            chart=chart.name,
            reference=reference,
            values_files=len(chart.values_files),
        )
        return ResolvedChart(reference=reference, values=merged)

    def _resolve_reference(self, chart: ChartDescriptor) -> str:
        ref = chart.source_ref or chart.name
        if ref.startswith(REMOTE_PREFIXES):
            return ref

        path = Path(ref)
        if not path.is_absolute():
            path = self._base_dir / path
        if path.exists():
            return str(path)

        if not Path(ref).is_absolute() and ref.count("/") == 1:
            return ref

        raise RenderError(
            f"unable to load chart data: chart '{ref}' not found",
            release_name=chart.release_name,
            namespace=chart.namespace,
        )

    def _load_values_file(self, chart: ChartDescriptor, values_file: str) -> dict[str, Any]:
        path = Path(values_file)
        if not path.is_absolute():
            path = self._base_dir / path
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError) as e:
            raise RenderError(
                f"unable to load chart data: values file '{values_file}': {e}",
                release_name=chart.release_name,
                namespace=chart.namespace,
            ) from e

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise RenderError(
                f"unable to load chart data: values file '{values_file}' is not a mapping",
                release_name=chart.release_name,
                namespace=chart.namespace,
            )
        return data
