"""Unit tests for placeholder substitution."""

from __future__ import annotations

from pathlib import Path

import pytest

from airgap_deployer.integrations.kubernetes.models.deploy import (
    DeployOptions,
    PackageVariable,
    VariableType,
)
from airgap_deployer.integrations.kubernetes.models.state import ClusterState
from airgap_deployer.utils.templating import (
    TextTemplate,
    build_template_map,
    deprecated_aliases,
    placeholder,
    replace_in_directory,
    replace_text_template,
    template_map_for,
)

# =============================================================================
# Template map
# =============================================================================


@pytest.mark.unit
class TestPlaceholder:
    """Tests for placeholder."""

    def test_builtin(self) -> None:
        """Should wrap an unscoped key."""
        assert placeholder("REGISTRY") == "###ZARF_REGISTRY###"

    def test_scoped_and_uppercased(self) -> None:
        """Should prefix the scope and uppercase the key."""
        assert placeholder("domain", "VAR") == "###ZARF_VAR_DOMAIN###"

    def test_deprecated_marker_alias(self) -> None:
        """Should map the misspelled injection marker to the current one."""
        assert deprecated_aliases() == {
            "###ZARF_DATA_INJECTON_MARKER###": "###ZARF_DATA_INJECTION_MARKER###"
        }


@pytest.mark.unit
class TestBuildTemplateMap:
    """Tests for build_template_map."""

    def test_no_state_has_no_builtins(self) -> None:
        """Should only expose variables and constants without cluster state."""
        templates = build_template_map(
            None,
            variables={"DOMAIN": PackageVariable(value="example.com")},
        )

        assert set(templates) == {"###ZARF_VAR_DOMAIN###"}

    def test_builtins_from_state(self, cluster_state: ClusterState) -> None:
        """Should expose registry and git values from the cluster state."""
        templates = build_template_map(cluster_state)

        assert templates["###ZARF_REGISTRY###"].value == "127.0.0.1:31999"
        assert templates["###ZARF_NODEPORT###"].value == "31999"
        assert templates["###ZARF_STORAGE_CLASS###"].value == "local-path"
        assert templates["###ZARF_GIT_PULL###"].value == "zarf-git-read-user"

    def test_credentials_marked_sensitive(self, cluster_state: ClusterState) -> None:
        """Should mark auth builtins sensitive and leave the rest plain."""
        templates = build_template_map(cluster_state)

        assert templates["###ZARF_REGISTRY_AUTH_PULL###"].sensitive
        assert templates["###ZARF_GIT_AUTH_PUSH###"].sensitive
        assert not templates["###ZARF_REGISTRY###"].sensitive

    def test_data_injection_marker_under_both_names(self, cluster_state: ClusterState) -> None:
        """Should expose the marker under the current and legacy names."""
        templates = build_template_map(cluster_state, data_injection_marker="###marker###")

        assert templates["###ZARF_DATA_INJECTION_MARKER###"].value == "###marker###"
        assert templates["###ZARF_DATA_INJECTON_MARKER###"].value == "###marker###"

    def test_constants_scoped(self) -> None:
        """Should expose constants under the CONST scope."""
        templates = build_template_map(None, constants={"VERSION": PackageVariable(value="1.2")})

        assert templates["###ZARF_CONST_VERSION###"].value == "1.2"

    def test_template_map_for_options(self, cluster_state: ClusterState) -> None:
        """Should read state and variables from deploy options."""
        options = DeployOptions(
            state=cluster_state,
            variables={"DOMAIN": PackageVariable(value="example.com")},
        )

        templates = template_map_for(options)

        assert templates["###ZARF_VAR_DOMAIN###"].value == "example.com"
        assert "###ZARF_REGISTRY###" in templates


# =============================================================================
# Substitution
# =============================================================================


@pytest.mark.unit
class TestReplaceTextTemplate:
    """Tests for replace_text_template."""

    def test_replaces_placeholders(self) -> None:
        """Should replace every known placeholder on a line."""
        mappings = {
            "###ZARF_REGISTRY###": TextTemplate(value="127.0.0.1:31999"),
            "###ZARF_VAR_TAG###": TextTemplate(value="6.4.0"),
        }

        result = replace_text_template(
            "image: ###ZARF_REGISTRY###/podinfo:###ZARF_VAR_TAG###\n", mappings
        )

        assert result == "image: 127.0.0.1:31999/podinfo:6.4.0\n"

    def test_unknown_placeholder_left_in_place(self) -> None:
        """Should keep placeholders that have no mapping."""
        text = "host: ###ZARF_VAR_MISSING###\n"

        assert replace_text_template(text, {}) == text

    def test_preserves_missing_trailing_newline(self) -> None:
        """Should not add a newline the input did not have."""
        mappings = {"###ZARF_VAR_A###": TextTemplate(value="x")}

        assert replace_text_template("a: ###ZARF_VAR_A###", mappings) == "a: x"

    def test_auto_indent(self) -> None:
        """Should indent continuation lines to the placeholder's column."""
        mappings = {
            "###ZARF_VAR_CERT###": TextTemplate(value="line1\nline2", auto_indent=True),
        }

        result = replace_text_template("  cert: ###ZARF_VAR_CERT###\n", mappings)

        assert result == "  cert: line1\n        line2\n"

    def test_deprecated_placeholder_rewritten(self) -> None:
        """Should substitute through a deprecated alias."""
        mappings = {"###ZARF_DATA_INJECTION_MARKER###": TextTemplate(value="marker")}

        result = replace_text_template(
            "m: ###ZARF_DATA_INJECTON_MARKER###\n", mappings, deprecated_aliases()
        )

        assert result == "m: marker\n"

    def test_file_variable(self, tmp_path: Path) -> None:
        """Should substitute the contents of a file variable."""
        source = tmp_path / "motd.txt"
        source.write_text("hello")
        mappings = {
            "###ZARF_VAR_MOTD###": TextTemplate(value=str(source), type=VariableType.FILE),
        }

        assert replace_text_template("motd: ###ZARF_VAR_MOTD###\n", mappings) == "motd: hello\n"

    def test_binary_file_variable_skipped(self, tmp_path: Path) -> None:
        """Should substitute nothing for a file that is not text."""
        source = tmp_path / "blob.bin"
        source.write_bytes(b"\x00\x01\x02")
        mappings = {
            "###ZARF_VAR_BLOB###": TextTemplate(value=str(source), type=VariableType.FILE),
        }

        assert replace_text_template("blob: ###ZARF_VAR_BLOB###\n", mappings) == "blob: \n"

    def test_missing_file_variable_skipped(self, tmp_path: Path) -> None:
        """Should substitute nothing for a file that cannot be read."""
        mappings = {
            "###ZARF_VAR_GONE###": TextTemplate(
                value=str(tmp_path / "gone.txt"), type=VariableType.FILE
            ),
        }

        assert replace_text_template("x: ###ZARF_VAR_GONE###\n", mappings) == "x: \n"


@pytest.mark.unit
class TestReplaceInDirectory:
    """Tests for replace_in_directory."""

    def test_templates_yaml_files_only(self, tmp_path: Path) -> None:
        """Should rewrite YAML files and leave other files untouched."""
        (tmp_path / "nested").mkdir()
        manifest = tmp_path / "nested" / "chart.yaml"
        manifest.write_text("value: ###ZARF_VAR_A###\n")
        other = tmp_path / "notes.txt"
        other.write_text("value: ###ZARF_VAR_A###\n")
        mappings = {"###ZARF_VAR_A###": TextTemplate(value="replaced")}

        files = replace_in_directory(tmp_path, mappings)

        assert files == [manifest]
        assert manifest.read_text() == "value: replaced\n"
        assert other.read_text() == "value: ###ZARF_VAR_A###\n"
