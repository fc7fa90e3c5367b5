"""Unit tests for kind cluster config building and the kind provider."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest

from kindplane.cluster.kind import (
    CERTS_DIR,
    KIND_API_VERSION,
    REGISTRY_CONTAINERD_PATCH,
    KindClusterProvider,
    build_kind_config,
    node_image,
    parse_kind_step,
    validate_trusted_cas,
)
from kindplane.config import Config, ExtraMount, PortMapping, RegistryCA, WorkloadCA
from kindplane.errors import ConfigError
from kindplane.shared.process import CommandResult


class TestNodeImage:
    """Tests for node image selection."""

    def test_explicit_image(self):
        """Test an explicit node image wins."""
        config = Config()
        config.cluster.node_image = "kindest/node:v1.28.0@sha256:abc"
        config.cluster.kubernetes_version = "1.29.2"
        assert node_image(config) == ("kindest/node:v1.28.0@sha256:abc", "explicitly configured")

    def test_derived_from_version(self):
        """Test a Kubernetes version derives the kindest/node tag."""
        config = Config()
        config.cluster.kubernetes_version = "v1.29.2"
        image, source = node_image(config)
        assert image == "kindest/node:v1.29.2"
        assert "kubernetesVersion" in source

    def test_kind_default(self):
        """Test no image means kind's default."""
        assert node_image(Config())[0] == ""


class TestBuildKindConfig:
    """Tests for build_kind_config."""

    def test_minimal(self):
        """Test a default config has one control-plane node."""
        doc = build_kind_config(Config())
        assert doc["apiVersion"] == KIND_API_VERSION
        assert [n["role"] for n in doc["nodes"]] == ["control-plane"]
        assert "containerdConfigPatches" not in doc

    def test_nodes_ports_and_mounts(self):
        """Test workers, port mappings and mounts are laid out."""
        config = Config()
        config.cluster.worker_nodes = 2
        config.cluster.port_mappings = [PortMapping(80, 8080)]
        config.cluster.extra_mounts = [ExtraMount("/data", "/mnt/data", read_only=True)]
        config.cluster.ingress = True

        nodes = build_kind_config(config)["nodes"]

        assert [n["role"] for n in nodes] == ["control-plane", "worker", "worker"]
        assert nodes[0]["extraPortMappings"] == [{"containerPort": 80, "hostPort": 8080, "protocol": "TCP"}]
        assert "extraPortMappings" not in nodes[1]
        assert nodes[1]["extraMounts"][0]["containerPath"] == "/mnt/data"
        assert nodes[0]["labels"] == {"ingress-ready": "true"}

    def test_registry_patch(self):
        """Test the local registry adds the containerd config_path patch."""
        config = Config()
        config.cluster.registry.enabled = True
        assert build_kind_config(config)["containerdConfigPatches"] == [REGISTRY_CONTAINERD_PATCH]

    def test_trusted_cas(self, tmp_path):
        """Test registry CAs get a mount plus a TLS patch, workload CAs a mount."""
        ca = tmp_path / "ca.crt"
        ca.write_text("-----BEGIN CERTIFICATE-----\n")
        config = Config()
        config.cluster.trusted_cas.registries = [RegistryCA("registry.corp:5000", str(ca))]
        config.cluster.trusted_cas.workloads = [WorkloadCA("corp", str(ca))]

        doc = build_kind_config(config)

        paths = [m["containerPath"] for m in doc["nodes"][0]["extraMounts"]]
        assert f"{CERTS_DIR}/registry.corp:5000/ca.crt" in paths
        assert "/usr/local/share/ca-certificates/corp.crt" in paths
        assert 'configs."registry.corp:5000".tls' in doc["containerdConfigPatches"][0]

    def test_raw_config_base(self, tmp_path):
        """Test a raw kind config is the starting point."""
        raw = tmp_path / "kind.yaml"
        raw.write_text("kind: Cluster\napiVersion: kind.x-k8s.io/v1alpha4\nnetworking:\n  disableDefaultCNI: true\n")
        config = Config()
        config.cluster.raw_config_path = str(raw)
        doc = build_kind_config(config)
        assert doc["networking"] == {"disableDefaultCNI": True}
        assert len(doc["nodes"]) == 1

    def test_raw_config_missing(self, tmp_path):
        """Test an unreadable raw config raises ConfigError."""
        config = Config()
        config.cluster.raw_config_path = str(tmp_path / "missing.yaml")
        with pytest.raises(ConfigError):
            build_kind_config(config)


class TestTrustedCAs:
    """Tests for CA file validation."""

    def test_counts(self, tmp_path):
        """Test valid files are counted per kind."""
        ca = tmp_path / "ca.crt"
        ca.write_text("pem")
        config = Config()
        config.cluster.trusted_cas.registries = [RegistryCA("r1", str(ca)), RegistryCA("r2", str(ca))]
        config.cluster.trusted_cas.workloads = [WorkloadCA("w", str(ca))]
        summary = validate_trusted_cas(config)
        assert (summary.registry_count, summary.workload_count) == (2, 1)

    def test_missing_file(self, tmp_path):
        """Test a missing CA file is a ConfigError naming the CA."""
        config = Config()
        config.cluster.trusted_cas.workloads = [WorkloadCA("corp", str(tmp_path / "nope.crt"))]
        with pytest.raises(ConfigError, match="workload CA 'corp'"):
            validate_trusted_cas(config)


class TestParseKindStep:
    """Tests for kind progress line parsing."""

    @pytest.mark.parametrize(
        ("line", "expected"),
        [
            (" ✓ Ensuring node image (kindest/node:v1.29.2) 🖼", "Ensuring node image"),
            (" • Preparing nodes 📦  ...", "Preparing nodes"),
            (" ✓ Installing CNI 🔌", "Installing CNI"),
            ("Creating cluster \"dev\" ...", "Creating cluster \"dev\""),
            ("", ""),
            (" ✓ ", ""),
        ],
    )
    def test_parse(self, line, expected):
        """Test decorations are stripped from step lines."""
        assert parse_kind_step(line) == expected


class TestKindClusterProvider:
    """Tests for KindClusterProvider command handling."""

    @pytest.mark.asyncio
    async def test_exists(self):
        """Test cluster existence comes from kind get clusters."""
        with patch(
            "kindplane.cluster.kind.run_command",
            AsyncMock(return_value=CommandResult(["kind"], 0, "dev\nother\n")),
        ):
            provider = KindClusterProvider()
            assert await provider.exists("dev")
            assert not await provider.exists("prod")

    @pytest.mark.asyncio
    async def test_create_streams_steps(self):
        """Test stderr step lines are reported once each."""

        async def fake_run(command, *, input=None, on_stderr_line=None, **kwargs):
            for line in [" • Preparing nodes 📦  ...", " ✓ Preparing nodes 📦", " • Writing configuration 📜  ..."]:
                await on_stderr_line(line)
            return CommandResult(list(command), 0)

        steps = []

        async def on_step(step):
            steps.append(step)

        with patch("kindplane.cluster.kind.run_command", side_effect=fake_run) as run:
            config = Config()
            config.cluster.name = "dev"
            await KindClusterProvider().create(config, on_step)

        assert steps == ["Preparing nodes", "Writing configuration"]
        command = run.call_args.args[0]
        assert command[:5] == ["kind", "create", "cluster", "--name", "dev"]
        assert "control-plane" in run.call_args.kwargs["input"]

    @pytest.mark.asyncio
    async def test_update_ca_certificates(self):
        """Test CA certificates are refreshed on every node."""
        results = [
            CommandResult(["docker"], 0, "dev-control-plane\ndev-worker\n"),
            CommandResult(["docker"], 0),
            CommandResult(["docker"], 0),
        ]
        with patch("kindplane.cluster.kind.run_command", AsyncMock(side_effect=results)) as run:
            await KindClusterProvider().update_ca_certificates("dev")
        execs = [c.args[0] for c in run.call_args_list[1:]]
        assert execs == [
            ["docker", "exec", "dev-control-plane", "update-ca-certificates"],
            ["docker", "exec", "dev-worker", "update-ca-certificates"],
        ]
