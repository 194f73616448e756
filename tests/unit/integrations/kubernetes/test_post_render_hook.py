"""Unit tests for the helm post-renderer replay hook."""

from __future__ import annotations

import io
import sys
from pathlib import Path

import pytest

from airgap_deployer.integrations.kubernetes.post_render_hook import (
    HOOK_MODULE,
    hook_command,
    main,
)


@pytest.mark.unit
@pytest.mark.kubernetes
class TestPostRenderHook:
    """Tests for the post-renderer entry point."""

    def test_hook_command(self, tmp_path: Path) -> None:
        """Should run this module with the current interpreter."""
        path = tmp_path / "post-rendered.yaml"

        assert hook_command(path) == [sys.executable, "-m", HOOK_MODULE, str(path)]

    def test_replays_manifest(
        self,
        tmp_path: Path,
        monkeypatch: pytest.MonkeyPatch,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        """Should discard stdin and write the prepared manifest."""
        manifest = tmp_path / "post-rendered.yaml"
        manifest.write_text("kind: ConfigMap\n")
        monkeypatch.setattr(sys, "stdin", io.StringIO("kind: Original\n"))

        assert main([str(manifest)]) == 0

        assert capsys.readouterr().out == "kind: ConfigMap\n"

    def test_missing_manifest(
        self,
        tmp_path: Path,
        monkeypatch: pytest.MonkeyPatch,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        """Should fail when the prepared manifest cannot be read."""
        monkeypatch.setattr(sys, "stdin", io.StringIO(""))

        assert main([str(tmp_path / "missing.yaml")]) == 1

        captured = capsys.readouterr()
        assert captured.out == ""
        assert "unable to read post-rendered manifest" in captured.err

    def test_usage(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Should print usage when not given exactly one path."""
        assert main([]) == 2

        assert "usage" in capsys.readouterr().err
