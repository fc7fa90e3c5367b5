"""Crossplane control plane and provider installers."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from .bootstrap.events import INDETERMINATE
from .bootstrap.interfaces import InstallOptions, KubeClient, ProviderStatus, StepCallback
from .bootstrap.poller import Readiness
from .cluster.kubectl import pod_is_ready, summarize_pod
from .config import ChartConfig, CrossplaneConfig, WorkloadCA
from .errors import ConfigError
from .helm import HelmChartInstaller, is_oci, repo_name
from .shared.logging import get_logger

logger = get_logger(__name__)

CROSSPLANE_NAMESPACE = "crossplane-system"
CROSSPLANE_CHART = "crossplane"
CROSSPLANE_POD_SELECTOR = "app=crossplane"

CA_BUNDLE_CONFIGMAP = "crossplane-registry-ca-bundle"
CA_BUNDLE_KEY = "ca-bundle"

PROVIDER_RESOURCE = "providers.pkg.crossplane.io"


def build_ca_bundle(ca_files: list[str]) -> str:
    """Concatenate PEM files into one bundle, one certificate per file.

    Raises:
        ConfigError: A CA file cannot be read.
    """
    parts = []
    for ca_file in ca_files:
        try:
            content = Path(ca_file).read_text()
        except OSError as e:
            raise ConfigError(f"failed to read CA file {ca_file}: {e}", path=ca_file) from e
        parts.append(content if content.endswith("\n") else content + "\n")
    return "".join(parts)


def ca_bundle_manifest(bundle: str, namespace: str = CROSSPLANE_NAMESPACE) -> str:
    return yaml.safe_dump(
        {
            "apiVersion": "v1",
            "kind": "ConfigMap",
            "metadata": {"name": CA_BUNDLE_CONFIGMAP, "namespace": namespace},
            "data": {CA_BUNDLE_KEY: bundle},
        },
        sort_keys=False,
    )


class CrossplaneInstaller:
    """Installs the Crossplane Helm chart and reports pod readiness."""

    def __init__(
        self,
        config: CrossplaneConfig,
        kube: KubeClient,
        charts: HelmChartInstaller,
        workload_cas: list[WorkloadCA] | None = None,
    ):
        self.config = config
        self.kube = kube
        self.charts = charts
        self.workload_cas = workload_cas or []

    @property
    def namespace(self) -> str:
        return self.config.namespace

    def chart(self) -> ChartConfig:
        return ChartConfig(
            name=CROSSPLANE_CHART,
            repo=self.config.repo,
            chart=CROSSPLANE_CHART,
            namespace=self.namespace,
            version=self.config.version,
            values=self.config.values,
            values_files=self.config.values_files,
            # pod readiness is polled separately so progress stays visible
            wait=False,
        )

    def _values_transformer(self, options: InstallOptions):
        inner = options.values_transformer

        def transform(values: dict[str, Any]) -> dict[str, Any]:
            if inner is not None:
                values = inner(values)
            if self.config.registry_ca_bundle is not None:
                values = {
                    **values,
                    "registryCaBundleConfig": {"name": CA_BUNDLE_CONFIGMAP, "key": CA_BUNDLE_KEY},
                }
            return values

        return transform

    async def install(self, on_step: StepCallback, options: InstallOptions | None = None) -> None:
        """Repo, namespace, optional CA bundle, then the chart itself."""
        options = options or InstallOptions()
        steps = ["Adding Helm repository", "Creating namespace"]
        if self.config.registry_ca_bundle is not None:
            steps.append("Creating registry CA bundle")
        steps.append("Installing Helm chart")

        for i, step in enumerate(steps):
            await on_step(step, i / len(steps))
            if step == "Adding Helm repository":
                if not is_oci(self.config.repo):
                    await self.charts.add_repo(repo_name(self.config.repo), self.config.repo)
            elif step == "Creating namespace":
                await self.kube.ensure_namespace(self.namespace)
            elif step == "Creating registry CA bundle":
                files = self.config.registry_ca_bundle.resolve(self.workload_cas)
                await self.kube.apply(ca_bundle_manifest(build_ca_bundle(files), self.namespace))
            else:
                await self.charts.install(
                    self.chart(),
                    InstallOptions(
                        values_transformer=self._values_transformer(options),
                        values_logger=options.values_logger,
                    ),
                )
        await on_step("Crossplane chart installed", INDETERMINATE)

    async def pod_readiness(self) -> Readiness:
        pods = await self.kube.list_pods(self.namespace, CROSSPLANE_POD_SELECTOR)
        ready = bool(pods) and all(pod_is_ready(p) for p in pods)
        return Readiness(snapshot=[summarize_pod(p) for p in pods], all_ready=ready)


def provider_manifest(name: str, package: str) -> str:
    return yaml.safe_dump(
        {
            "apiVersion": "pkg.crossplane.io/v1",
            "kind": "Provider",
            "metadata": {"name": name},
            "spec": {"package": package},
        },
        sort_keys=False,
    )


def provider_status(obj: dict[str, Any]) -> ProviderStatus:
    """Health of a Provider object from its ``Healthy`` condition."""
    status = ProviderStatus(
        name=obj.get("metadata", {}).get("name", ""),
        package=obj.get("spec", {}).get("package", ""),
        revision=obj.get("status", {}).get("currentRevision", ""),
    )
    for cond in obj.get("status", {}).get("conditions", []) or []:
        if cond.get("type") == "Healthy":
            status.healthy = cond.get("status") == "True"
            status.message = cond.get("message", "")
    return status


class CrossplaneProviderInstaller:
    """Creates Provider objects and reads back their health."""

    def __init__(self, kube: KubeClient):
        self.kube = kube

    async def install_provider(self, name: str, package: str) -> None:
        await self.kube.apply(provider_manifest(name, package))
        logger.info("Provider applied", provider=name, package=package)

    async def get_status(self) -> list[ProviderStatus]:
        return [provider_status(p) for p in await self.kube.list_resources(PROVIDER_RESOURCE)]
