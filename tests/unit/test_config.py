"""Unit tests for config loading and legacy checkpoint names."""

from __future__ import annotations

import os
from pathlib import Path
from unittest.mock import patch

import pytest
import yaml

from kindplane.compat import CHECKPOINTS, normalize_checkpoint
from kindplane.config import (
    DEFAULT_REGISTRY_PORT,
    Config,
    get_config_path,
    load_config,
    parse_config,
)
from kindplane.errors import ConfigError

FULL_YAML = """\
cluster:
  name: dev
  kubernetesVersion: "1.29.2"
  nodes:
    controlPlane: 1
    workers: 2
  portMappings:
    - containerPort: 80
      hostPort: 8080
  registry:
    enabled: true
  trustedCAs:
    workloads:
      - name: corp
        caFile: ./corp.crt
crossplane:
  version: "1.15.0"
  providers:
    - name: provider-nop
      package: xpkg.upbound.io/crossplane-contrib/provider-nop:v0.2.1
  registryCaBundle:
    workloadCARefs: [corp]
  imageCache:
    additionalImages: [nginx:1.25]
charts:
  - name: cert-manager
    repo: https://charts.jetstack.io
    chart: cert-manager
    namespace: cert-manager
    phase: pre-crossplane
    values:
      installCRDs: true
  - name: app
    repo: oci://ghcr.io/example/charts
    chart: app
    namespace: apps
compositions:
  sources:
    - type: local
      path: ./compositions
    - type: git
      repo: https://github.com/example/platform.git
      path: apis
"""


class TestNormalizeCheckpoint:
    """Tests for checkpoint name compatibility."""

    def test_canonical_names_unchanged(self):
        """Test canonical names map to themselves."""
        for name in CHECKPOINTS:
            assert normalize_checkpoint(name) == name

    def test_empty_means_final(self):
        """Test a missing phase defaults to final."""
        assert normalize_checkpoint(None) == "final"
        assert normalize_checkpoint("") == "final"

    @pytest.mark.parametrize(
        ("legacy", "canonical"),
        [
            ("pre-crossplane", "pre-control-plane"),
            ("post-crossplane", "post-control-plane"),
            ("post-providers", "post-dependency-install"),
            ("post-eso", "final"),
        ],
    )
    def test_legacy_names(self, legacy, canonical):
        """Test legacy checkpoint names are rewritten."""
        assert normalize_checkpoint(legacy, chart="x") == canonical

    def test_unknown_passes_through(self):
        """Test unknown names are left for the loader to reject."""
        assert normalize_checkpoint("whenever") == "whenever"


class TestParseConfig:
    """Tests for parse_config."""

    def test_defaults(self):
        """Test an empty document yields defaults."""
        config = parse_config({})
        assert config.cluster.name == "kindplane"
        assert config.cluster.context_name == "kind-kindplane"
        assert config.cluster.registry.port == DEFAULT_REGISTRY_PORT
        assert config.crossplane.image_cache.enabled
        assert config.charts == []

    def test_full_document(self):
        """Test every section is parsed."""
        config = parse_config(yaml.safe_load(FULL_YAML), source="kindplane.yaml")

        assert config.cluster.name == "dev"
        assert config.cluster.worker_nodes == 2
        assert config.cluster.port_mappings[0].host_port == 8080
        assert config.cluster.registry.enabled
        assert config.crossplane.providers[0].name == "provider-nop"
        assert config.crossplane.image_cache.additional_images == ["nginx:1.25"]
        assert config.charts[0].phase == "pre-control-plane"
        assert config.charts[0].values == {"installCRDs": True}
        assert config.charts[1].phase == "final"
        assert config.compositions[1].describe() == "https://github.com/example/platform.git@main:apis"
        assert config.source == "kindplane.yaml"

    def test_charts_for(self):
        """Test charts are grouped by checkpoint."""
        config = parse_config(
            {
                "charts": [
                    {"name": "a", "repo": "r", "chart": "a", "namespace": "n", "phase": "post-eso"},
                    {"name": "b", "repo": "r", "chart": "b", "namespace": "n", "phase": "post-providers"},
                ]
            }
        )
        assert [c.name for c in config.charts_for("final")] == ["a"]
        assert [c.name for c in config.charts_for("post-dependency-install")] == ["b"]

    def test_unknown_chart_phase(self):
        """Test an unknown chart phase is rejected."""
        with pytest.raises(ConfigError, match="is not one of"):
            parse_config({"charts": [{"name": "a", "repo": "r", "chart": "a", "namespace": "n", "phase": "later"}]})

    def test_missing_required_key(self):
        """Test required chart keys are enforced."""
        with pytest.raises(ConfigError, match=r"charts\[0\]\.namespace is required"):
            parse_config({"charts": [{"name": "a", "repo": "r", "chart": "a"}]})

    def test_wrong_shape(self):
        """Test sections of the wrong type are rejected."""
        with pytest.raises(ConfigError, match="cluster must be a mapping"):
            parse_config({"cluster": ["nope"]})
        with pytest.raises(ConfigError, match="charts must be a list"):
            parse_config({"charts": {"a": 1}})

    def test_bad_composition_type(self):
        """Test composition sources must be local or git."""
        with pytest.raises(ConfigError, match="must be 'local' or 'git'"):
            parse_config({"compositions": {"sources": [{"type": "s3", "path": "x"}]}})

    def test_unknown_workload_ca_ref(self):
        """Test CA bundle references must name a workload CA."""
        with pytest.raises(ConfigError, match="unknown workload CA 'corp'"):
            parse_config({"crossplane": {"registryCaBundle": {"workloadCARefs": ["corp"]}}})

    def test_invalid_number(self):
        """Test non-numeric ports become a ConfigError."""
        with pytest.raises(ConfigError, match="invalid configuration"):
            parse_config({"cluster": {"registry": {"port": "abc"}}})


class TestLoadConfig:
    """Tests for locating and loading the config file."""

    def test_explicit_path_wins(self, tmp_path):
        """Test an explicit path is used as given."""
        assert get_config_path(tmp_path / "x.yaml") == tmp_path / "x.yaml"

    def test_env_path(self, tmp_path):
        """Test KINDPLANE_CONFIG is used when no path is given."""
        with patch.dict(os.environ, {"KINDPLANE_CONFIG": str(tmp_path / "env.yaml")}):
            assert get_config_path() == tmp_path / "env.yaml"

    def test_default_path(self):
        """Test the working directory default."""
        with patch.dict(os.environ, {}, clear=True):
            assert get_config_path() == Path.cwd() / "kindplane.yaml"

    def test_load_file(self, tmp_path):
        """Test loading a file records its path as the source."""
        path = tmp_path / "kindplane.yaml"
        path.write_text("cluster:\n  name: local\n")
        with patch.dict(os.environ, {}, clear=True):
            config = load_config(path)
        assert isinstance(config, Config)
        assert config.cluster.name == "local"
        assert config.source == str(path)

    def test_cluster_name_env_override(self, tmp_path):
        """Test KINDPLANE_CLUSTER_NAME overrides the file."""
        path = tmp_path / "kindplane.yaml"
        path.write_text("cluster:\n  name: local\n")
        with patch.dict(os.environ, {"KINDPLANE_CLUSTER_NAME": "ci"}):
            assert load_config(path).cluster.name == "ci"

    def test_missing_file(self, tmp_path):
        """Test a missing file raises ConfigError."""
        with pytest.raises(ConfigError, match="config file not found"):
            load_config(tmp_path / "missing.yaml")

    def test_invalid_yaml(self, tmp_path):
        """Test unparsable YAML raises ConfigError."""
        path = tmp_path / "kindplane.yaml"
        path.write_text("cluster: [unclosed\n")
        with pytest.raises(ConfigError, match="cannot read"):
            load_config(path)
