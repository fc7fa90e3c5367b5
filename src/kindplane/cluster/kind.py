"""Kind cluster provider.

Builds the kind cluster config from kindplane.yaml and drives the ``kind``
CLI. Cluster creation streams kind's step lines back to the caller so the
dashboard can show what kind is doing.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from ..bootstrap.interfaces import MessageCallback
from ..config import Config
from ..errors import ConfigError
from ..shared.logging import get_logger
from ..shared.process import run_command

logger = get_logger(__name__)

KIND_API_VERSION = "kind.x-k8s.io/v1alpha4"
MANAGED_BY_LABEL = "kindplane.io/managed-by=kindplane"
CERTS_DIR = "/etc/containerd/certs.d"
SYSTEM_CA_DIR = "/usr/local/share/ca-certificates"

REGISTRY_CONTAINERD_PATCH = (
    '[plugins."io.containerd.grpc.v1.cri".registry]\n' f'  config_path = "{CERTS_DIR}"'
)

# Decorations kind puts around its step lines
_STEP_MARKERS = ("✓", "✗", "•")
_STEP_EMOJI = ("📦", "📜", "🕹️", "🔌", "💾", "🚀", "⚙️", "🖼")


@dataclass
class TrustedCAsSummary:
    registry_count: int = 0
    workload_count: int = 0


# ── Config building ──


def node_image(config: Config) -> tuple[str, str]:
    """Node image kind will use, and how it was chosen.

    Returns:
        (image, source); image is empty when kind's default applies.
    """
    cluster = config.cluster
    if cluster.node_image:
        return cluster.node_image, "explicitly configured"
    if cluster.kubernetes_version:
        version = cluster.kubernetes_version.removeprefix("v")
        return (
            f"kindest/node:v{version}",
            f"derived from kubernetesVersion ({cluster.kubernetes_version})",
        )
    return "", "Kind default (not specified)"


def _label_patch(labels: str) -> str:
    return (
        "kind: InitConfiguration\n"
        "nodeRegistration:\n"
        "  kubeletExtraArgs:\n"
        f'    node-labels: "{labels}"'
    )


def _ca_mounts(config: Config) -> list[dict[str, Any]]:
    mounts = []
    for reg in config.cluster.trusted_cas.registries:
        mounts.append(
            {
                "hostPath": str(Path(reg.ca_file).resolve()),
                "containerPath": f"{CERTS_DIR}/{reg.host}/ca.crt",
                "readOnly": True,
            }
        )
    for workload in config.cluster.trusted_cas.workloads:
        mounts.append(
            {
                "hostPath": str(Path(workload.ca_file).resolve()),
                "containerPath": f"{SYSTEM_CA_DIR}/{workload.name}.crt",
                "readOnly": True,
            }
        )
    return mounts


def _registry_tls_patch(config: Config) -> str | None:
    registries = config.cluster.trusted_cas.registries
    if not registries:
        return None
    return "\n".join(
        f'[plugins."io.containerd.grpc.v1.cri".registry.configs."{reg.host}".tls]\n'
        f'  ca_file = "{CERTS_DIR}/{reg.host}/ca.crt"'
        for reg in registries
    )


def _build_nodes(config: Config) -> list[dict[str, Any]]:
    cluster = config.cluster
    image, _ = node_image(config)

    mounts: list[dict[str, Any]] = [
        {"hostPath": m.host_path, "containerPath": m.container_path, "readOnly": m.read_only}
        for m in cluster.extra_mounts
    ]
    mounts.extend(_ca_mounts(config))
    port_mappings = [
        {"containerPort": p.container_port, "hostPort": p.host_port, "protocol": p.protocol}
        for p in cluster.port_mappings
    ]

    def node(role: str, first: bool = False) -> dict[str, Any]:
        spec: dict[str, Any] = {"role": role}
        if image:
            spec["image"] = image
        if first and port_mappings:
            spec["extraPortMappings"] = port_mappings
        if mounts:
            spec["extraMounts"] = mounts
        if first and cluster.ingress:
            spec["labels"] = {"ingress-ready": "true"}
            spec["kubeadmConfigPatches"] = [_label_patch(f"ingress-ready=true,{MANAGED_BY_LABEL}")]
        else:
            spec["kubeadmConfigPatches"] = [_label_patch(MANAGED_BY_LABEL)]
        return spec

    nodes = [node("control-plane", first=(i == 0)) for i in range(cluster.control_plane_nodes)]
    nodes.extend(node("worker") for _ in range(cluster.worker_nodes))
    return nodes


def build_kind_config(config: Config) -> dict[str, Any]:
    """Kind cluster config as a dict.

    A raw kind config, when configured, is the starting point; node layout,
    registry and CA settings from kindplane.yaml are applied over it.

    Raises:
        ConfigError: The raw kind config cannot be read.
    """
    doc: dict[str, Any] = {"kind": "Cluster", "apiVersion": KIND_API_VERSION}
    if config.cluster.raw_config_path:
        path = Path(config.cluster.raw_config_path)
        try:
            doc = yaml.safe_load(path.read_text()) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"failed to load raw kind config: {e}", path=str(path)) from e

    patches: list[str] = list(doc.get("containerdConfigPatches") or [])
    if config.cluster.registry.enabled:
        patches.append(REGISTRY_CONTAINERD_PATCH)
    tls_patch = _registry_tls_patch(config)
    if tls_patch:
        patches.append(tls_patch)

    doc["nodes"] = _build_nodes(config)
    if patches:
        doc["containerdConfigPatches"] = patches
    return doc


def render_kind_config(config: Config) -> str:
    return yaml.safe_dump(build_kind_config(config), default_flow_style=False, sort_keys=False)


def has_trusted_cas(config: Config) -> bool:
    return config.cluster.trusted_cas.configured


def validate_trusted_cas(config: Config) -> TrustedCAsSummary:
    """Check every configured CA file exists.

    Raises:
        ConfigError: A CA file is missing or unreadable.
    """
    summary = TrustedCAsSummary()
    for reg in config.cluster.trusted_cas.registries:
        _check_ca_file(reg.ca_file, f"registry CA for '{reg.host}'")
        summary.registry_count += 1
    for workload in config.cluster.trusted_cas.workloads:
        _check_ca_file(workload.ca_file, f"workload CA '{workload.name}'")
        summary.workload_count += 1
    return summary


def _check_ca_file(ca_file: str, label: str) -> None:
    path = Path(ca_file).resolve()
    if not path.is_file():
        raise ConfigError(f"{label}: file not found: {path}", path=str(path))
    try:
        path.read_bytes()
    except OSError as e:
        raise ConfigError(f"{label}: cannot read {path}: {e}", path=str(path)) from e


def parse_kind_step(line: str) -> str:
    """Reduce a kind progress line to its step name; empty if it is not one.

    `` ✓ Preparing nodes 📦 `` -> ``Preparing nodes``
    """
    message = line.strip()
    for marker in _STEP_MARKERS:
        message = message.removeprefix(marker)
    message = message.strip().removesuffix("...").strip()
    for emoji in _STEP_EMOJI:
        message = message.replace(emoji, "")
    message = message.strip()
    paren = message.find("(")
    if paren > 0:
        message = message[:paren].strip()
    return message if len(message) >= 3 else ""


# ── Provider ──


class KindClusterProvider:
    """Cluster lifecycle over the kind and docker CLIs."""

    def __init__(self, kind: str = "kind", docker: str = "docker"):
        self.kind = kind
        self.docker = docker

    async def exists(self, name: str) -> bool:
        result = await run_command([self.kind, "get", "clusters"])
        return name in result.stdout.split()

    async def create(self, config: Config, on_step: MessageCallback) -> None:
        manifest = render_kind_config(config)
        last_step = ""

        async def report(line: str) -> None:
            nonlocal last_step
            step = parse_kind_step(line)
            if step and step != last_step:
                last_step = step
                await on_step(step)

        await run_command(
            [self.kind, "create", "cluster", "--name", config.cluster.name, "--config", "-"],
            input=manifest,
            on_stderr_line=report,
        )
        logger.info("Kind cluster created", cluster=config.cluster.name)

    async def delete(self, name: str) -> None:
        await run_command([self.kind, "delete", "cluster", "--name", name])
        logger.info("Kind cluster deleted", cluster=name)

    async def node_containers(self, name: str) -> list[str]:
        result = await run_command(
            [
                self.docker,
                "ps",
                "--filter",
                f"label=io.x-k8s.kind.cluster={name}",
                "--format",
                "{{.Names}}",
            ]
        )
        return [line for line in result.stdout.splitlines() if line.strip()]

    async def update_ca_certificates(self, name: str) -> None:
        """Regenerate the system CA bundle on each node from the mounted CAs."""
        for node in await self.node_containers(name):
            await run_command([self.docker, "exec", node, "update-ca-certificates"])
