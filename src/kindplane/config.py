"""kindplane configuration.

Loads kindplane.yaml into dataclasses. Precedence for the file location:
``--config`` flag, then KINDPLANE_CONFIG, then ./kindplane.yaml.
A few values can be overridden from the environment.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .compat import CHECKPOINTS, normalize_checkpoint
from .errors import ConfigError
from .shared.paths import DEFAULT_CONFIG_NAME

DEFAULT_REGISTRY_PORT = 5001
DEFAULT_REGISTRY_NAME = "kind-registry"
DEFAULT_CROSSPLANE_REPO = "https://charts.crossplane.io/stable"
DEFAULT_CROSSPLANE_NAMESPACE = "crossplane-system"
DEFAULT_CHART_TIMEOUT = "5m"

# Environment variable mappings
ENV_VARS = {
    "config": "KINDPLANE_CONFIG",
    "cluster_name": "KINDPLANE_CLUSTER_NAME",
    "timeout": "KINDPLANE_TIMEOUT",
}


@dataclass
class RegistryConfig:
    """Local container registry."""

    enabled: bool = False
    port: int = DEFAULT_REGISTRY_PORT
    name: str = DEFAULT_REGISTRY_NAME
    persistent: bool = False


@dataclass
class RegistryCA:
    host: str
    ca_file: str


@dataclass
class WorkloadCA:
    name: str
    ca_file: str


@dataclass
class TrustedCAsConfig:
    registries: list[RegistryCA] = field(default_factory=list)
    workloads: list[WorkloadCA] = field(default_factory=list)

    @property
    def configured(self) -> bool:
        return bool(self.registries or self.workloads)


@dataclass
class PortMapping:
    container_port: int
    host_port: int
    protocol: str = "TCP"


@dataclass
class ExtraMount:
    host_path: str
    container_path: str
    read_only: bool = False


@dataclass
class ClusterConfig:
    """Kind cluster settings."""

    name: str = "kindplane"
    kubernetes_version: str = ""
    node_image: str = ""
    control_plane_nodes: int = 1
    worker_nodes: int = 0
    port_mappings: list[PortMapping] = field(default_factory=list)
    extra_mounts: list[ExtraMount] = field(default_factory=list)
    ingress: bool = False
    raw_config_path: str = ""
    registry: RegistryConfig = field(default_factory=RegistryConfig)
    trusted_cas: TrustedCAsConfig = field(default_factory=TrustedCAsConfig)

    @property
    def context_name(self) -> str:
        return f"kind-{self.name}"


@dataclass
class ProviderConfig:
    name: str
    package: str


@dataclass
class RegistryCaBundleConfig:
    ca_files: list[str] = field(default_factory=list)
    workload_ca_refs: list[str] = field(default_factory=list)

    def resolve(self, workloads: list[WorkloadCA]) -> list[str]:
        """CA file paths from direct entries plus referenced workload CAs.

        Raises:
            ConfigError: A reference names an unknown workload CA.
        """
        files = list(self.ca_files)
        by_name = {w.name: w.ca_file for w in workloads}
        for ref in self.workload_ca_refs:
            if ref not in by_name:
                raise ConfigError(
                    f"registryCaBundle references unknown workload CA '{ref}'"
                )
            files.append(by_name[ref])
        return files


@dataclass
class ImageCacheConfig:
    enabled: bool = True
    preload_crossplane: bool = True
    preload_providers: bool = True
    additional_images: list[str] = field(default_factory=list)
    overrides: dict[str, list[str]] = field(default_factory=dict)


@dataclass
class CrossplaneConfig:
    version: str = ""
    repo: str = DEFAULT_CROSSPLANE_REPO
    namespace: str = DEFAULT_CROSSPLANE_NAMESPACE
    values: dict[str, Any] = field(default_factory=dict)
    values_files: list[str] = field(default_factory=list)
    providers: list[ProviderConfig] = field(default_factory=list)
    registry_ca_bundle: RegistryCaBundleConfig | None = None
    image_cache: ImageCacheConfig = field(default_factory=ImageCacheConfig)


@dataclass
class ChartConfig:
    """A Helm chart installed at one of the checkpoints."""

    name: str
    repo: str
    chart: str
    namespace: str
    version: str = ""
    create_namespace: bool = True
    phase: str = "final"
    wait: bool = True
    timeout: str = DEFAULT_CHART_TIMEOUT
    values: dict[str, Any] = field(default_factory=dict)
    values_files: list[str] = field(default_factory=list)


@dataclass
class CompositionSource:
    type: str
    path: str = ""
    repo: str = ""
    branch: str = "main"

    def describe(self) -> str:
        if self.type == "git":
            return f"{self.repo}@{self.branch}:{self.path or '.'}"
        return self.path


@dataclass
class Config:
    """Resolved kindplane configuration. Read-only once loaded."""

    cluster: ClusterConfig = field(default_factory=ClusterConfig)
    crossplane: CrossplaneConfig = field(default_factory=CrossplaneConfig)
    charts: list[ChartConfig] = field(default_factory=list)
    compositions: list[CompositionSource] = field(default_factory=list)
    source: str = ""

    def charts_for(self, checkpoint: str) -> list[ChartConfig]:
        return [c for c in self.charts if c.phase == checkpoint]


# ── Parsing ──


def _mapping(data: Any, where: str) -> dict[str, Any]:
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"{where} must be a mapping")
    return data


def _list(data: Any, where: str) -> list[Any]:
    if data is None:
        return []
    if not isinstance(data, list):
        raise ConfigError(f"{where} must be a list")
    return data


def _required(data: dict[str, Any], key: str, where: str) -> Any:
    value = data.get(key)
    if value in (None, ""):
        raise ConfigError(f"{where}.{key} is required")
    return value


def _parse_cluster(data: dict[str, Any]) -> ClusterConfig:
    nodes = _mapping(data.get("nodes"), "cluster.nodes")
    registry = _mapping(data.get("registry"), "cluster.registry")
    trusted = _mapping(data.get("trustedCAs"), "cluster.trustedCAs")

    cluster = ClusterConfig(
        name=str(data.get("name") or "kindplane"),
        kubernetes_version=str(data.get("kubernetesVersion") or ""),
        node_image=str(data.get("nodeImage") or "").strip(),
        control_plane_nodes=int(nodes.get("controlPlane", 1)),
        worker_nodes=int(nodes.get("workers", 0)),
        ingress=bool(_mapping(data.get("ingress"), "cluster.ingress").get("enabled", False)),
        raw_config_path=str(data.get("rawConfigPath") or ""),
        registry=RegistryConfig(
            enabled=bool(registry.get("enabled", False)),
            port=int(registry.get("port") or DEFAULT_REGISTRY_PORT),
            name=str(registry.get("name") or DEFAULT_REGISTRY_NAME),
            persistent=bool(registry.get("persistent", False)),
        ),
    )

    for i, item in enumerate(_list(data.get("portMappings"), "cluster.portMappings")):
        where = f"cluster.portMappings[{i}]"
        item = _mapping(item, where)
        cluster.port_mappings.append(
            PortMapping(
                container_port=int(_required(item, "containerPort", where)),
                host_port=int(_required(item, "hostPort", where)),
                protocol=str(item.get("protocol") or "TCP"),
            )
        )
    for i, item in enumerate(_list(data.get("extraMounts"), "cluster.extraMounts")):
        where = f"cluster.extraMounts[{i}]"
        item = _mapping(item, where)
        cluster.extra_mounts.append(
            ExtraMount(
                host_path=str(_required(item, "hostPath", where)),
                container_path=str(_required(item, "containerPath", where)),
                read_only=bool(item.get("readOnly", False)),
            )
        )
    for i, item in enumerate(_list(trusted.get("registries"), "cluster.trustedCAs.registries")):
        where = f"cluster.trustedCAs.registries[{i}]"
        item = _mapping(item, where)
        cluster.trusted_cas.registries.append(
            RegistryCA(host=str(_required(item, "host", where)), ca_file=str(_required(item, "caFile", where)))
        )
    for i, item in enumerate(_list(trusted.get("workloads"), "cluster.trustedCAs.workloads")):
        where = f"cluster.trustedCAs.workloads[{i}]"
        item = _mapping(item, where)
        cluster.trusted_cas.workloads.append(
            WorkloadCA(name=str(_required(item, "name", where)), ca_file=str(_required(item, "caFile", where)))
        )
    return cluster


def _parse_crossplane(data: dict[str, Any]) -> CrossplaneConfig:
    crossplane = CrossplaneConfig(
        version=str(data.get("version") or ""),
        repo=str(data.get("repo") or DEFAULT_CROSSPLANE_REPO),
        values=_mapping(data.get("values"), "crossplane.values"),
        values_files=[str(f) for f in _list(data.get("valuesFiles"), "crossplane.valuesFiles")],
    )
    for i, item in enumerate(_list(data.get("providers"), "crossplane.providers")):
        where = f"crossplane.providers[{i}]"
        item = _mapping(item, where)
        crossplane.providers.append(
            ProviderConfig(
                name=str(_required(item, "name", where)),
                package=str(_required(item, "package", where)),
            )
        )

    bundle = data.get("registryCaBundle")
    if bundle is not None:
        bundle = _mapping(bundle, "crossplane.registryCaBundle")
        crossplane.registry_ca_bundle = RegistryCaBundleConfig(
            ca_files=[str(f) for f in _list(bundle.get("caFiles"), "registryCaBundle.caFiles")],
            workload_ca_refs=[
                str(r) for r in _list(bundle.get("workloadCARefs"), "registryCaBundle.workloadCARefs")
            ],
        )

    cache = _mapping(data.get("imageCache"), "crossplane.imageCache")
    overrides = _mapping(cache.get("imageOverrides"), "crossplane.imageCache.imageOverrides")
    crossplane.image_cache = ImageCacheConfig(
        enabled=bool(cache.get("enabled", True)),
        preload_crossplane=bool(cache.get("preloadCrossplane", True)),
        preload_providers=bool(cache.get("preloadProviders", True)),
        additional_images=[str(i) for i in _list(cache.get("additionalImages"), "additionalImages")],
        overrides={str(k): [str(i) for i in _list(v, f"imageOverrides[{k}]")] for k, v in overrides.items()},
    )
    return crossplane


def _parse_chart(item: Any, index: int) -> ChartConfig:
    where = f"charts[{index}]"
    item = _mapping(item, where)
    name = str(_required(item, "name", where))
    phase = normalize_checkpoint(item.get("phase"), chart=name)
    if phase not in CHECKPOINTS:
        raise ConfigError(
            f"{where}.phase '{item.get('phase')}' is not one of: {', '.join(CHECKPOINTS)}"
        )
    return ChartConfig(
        name=name,
        repo=str(_required(item, "repo", where)),
        chart=str(_required(item, "chart", where)),
        namespace=str(_required(item, "namespace", where)),
        version=str(item.get("version") or ""),
        create_namespace=bool(item.get("createNamespace", True)),
        phase=phase,
        wait=bool(item.get("wait", True)),
        timeout=str(item.get("timeout") or DEFAULT_CHART_TIMEOUT),
        values=_mapping(item.get("values"), f"{where}.values"),
        values_files=[str(f) for f in _list(item.get("valuesFiles"), f"{where}.valuesFiles")],
    )


def _parse_source(item: Any, index: int) -> CompositionSource:
    where = f"compositions.sources[{index}]"
    item = _mapping(item, where)
    kind = str(_required(item, "type", where))
    if kind == "local":
        return CompositionSource(type=kind, path=str(_required(item, "path", where)))
    if kind == "git":
        return CompositionSource(
            type=kind,
            repo=str(_required(item, "repo", where)),
            path=str(item.get("path") or ""),
            branch=str(item.get("branch") or "main"),
        )
    raise ConfigError(f"{where}.type must be 'local' or 'git', got '{kind}'")


def parse_config(data: dict[str, Any], source: str = "") -> Config:
    """Build a Config from an already-parsed YAML document.

    Raises:
        ConfigError: If a section has the wrong shape or a required key is missing.
    """
    data = _mapping(data, "config")
    try:
        config = Config(
            cluster=_parse_cluster(_mapping(data.get("cluster"), "cluster")),
            crossplane=_parse_crossplane(_mapping(data.get("crossplane"), "crossplane")),
            charts=[_parse_chart(c, i) for i, c in enumerate(_list(data.get("charts"), "charts"))],
            compositions=[
                _parse_source(s, i)
                for i, s in enumerate(
                    _list(_mapping(data.get("compositions"), "compositions").get("sources"), "sources")
                )
            ],
            source=source,
        )
    except (TypeError, ValueError) as e:
        raise ConfigError(f"invalid configuration: {e}", path=source or None) from e

    if config.crossplane.registry_ca_bundle is not None:
        config.crossplane.registry_ca_bundle.resolve(config.cluster.trusted_cas.workloads)
    return config


def get_config_path(path: str | Path | None = None) -> Path:
    """Resolve which config file to load.

    Returns:
        Path from the argument, KINDPLANE_CONFIG, or ./kindplane.yaml
    """
    if path:
        return Path(path)
    if os.environ.get(ENV_VARS["config"]):
        return Path(os.environ[ENV_VARS["config"]])
    return Path.cwd() / DEFAULT_CONFIG_NAME


def load_config(path: str | Path | None = None) -> Config:
    """Load kindplane configuration.

    Precedence (highest to lowest):
    1. Environment variables (cluster name)
    2. Config file
    3. Defaults

    Raises:
        ConfigError: If the file is missing, unreadable or invalid.
    """
    config_path = get_config_path(path)
    if not config_path.exists():
        raise ConfigError(f"config file not found: {config_path}", path=str(config_path))

    try:
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"cannot read {config_path}: {e}", path=str(config_path)) from e

    config = parse_config(data, source=str(config_path))

    if os.environ.get(ENV_VARS["cluster_name"]):
        config.cluster.name = os.environ[ENV_VARS["cluster_name"]]
    return config
