"""Helm chart installer.

Installs charts with ``helm upgrade --install``. Values are merged from the
configured values files (in order) and then inline values, and handed to
helm on stdin so nothing is written to disk.
"""

from __future__ import annotations

import copy
import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from .bootstrap.interfaces import InstallOptions
from .config import ChartConfig
from .errors import CommandError, ConfigError
from .shared.logging import get_logger
from .shared.process import run_command

logger = get_logger(__name__)


def load_values_file(path: str | Path) -> dict[str, Any]:
    """Read one values file.

    Raises:
        ConfigError: The file is missing, unparsable or not a mapping.
    """
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"failed to read values file {path}: {e}", path=str(path)) from e
    if not isinstance(data, dict):
        raise ConfigError(f"values file {path} must contain a mapping", path=str(path))
    return data


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge ``override`` into a copy of ``base``; override wins."""
    result = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = copy.deepcopy(value)
    return result


def merge_values(values_files: list[str], inline: dict[str, Any] | None = None) -> dict[str, Any]:
    """Merge values files in order, then inline values (highest priority)."""
    result: dict[str, Any] = {}
    for path in values_files:
        result = deep_merge(result, load_values_file(path))
    if inline:
        result = deep_merge(result, inline)
    return result


def repo_name(url: str) -> str:
    """Stable local repo alias for a chart repository URL.

    ``https://charts.example.com/stable`` -> ``charts-example-com-1a2b3c4d``
    """
    digest = hashlib.sha256(url.encode()).hexdigest()[:8]
    host = url.removeprefix("https://").removeprefix("http://").split("/", 1)[0]
    return f"{host.replace('.', '-')[:20]}-{digest}"


def is_oci(repo: str) -> bool:
    return repo.startswith("oci://")


class HelmChartInstaller:
    """Chart installs and release queries over the helm CLI."""

    def __init__(self, kube_context: str, binary: str = "helm"):
        self.kube_context = kube_context
        self.binary = binary
        self._repos: set[str] = set()

    def _helm_cmd(self, *args: str) -> list[str]:
        return [self.binary, "--kube-context", self.kube_context, *args]

    async def add_repo(self, name: str, url: str) -> None:
        if name in self._repos:
            return
        await run_command([self.binary, "repo", "add", name, url, "--force-update"])
        await run_command([self.binary, "repo", "update", name])
        self._repos.add(name)

    async def install(self, chart: ChartConfig, options: InstallOptions | None = None) -> None:
        """Install or upgrade one chart release.

        Args:
            chart: Chart to install; ``chart.name`` is the release name.
            options: Values transformer and merged-values logger hooks.

        Raises:
            ConfigError: A values file could not be read.
            CommandError: helm failed.
        """
        options = options or InstallOptions()
        values = merge_values(chart.values_files, chart.values)
        if options.values_transformer is not None:
            values = options.values_transformer(values)
        if options.values_logger is not None:
            await options.values_logger(chart.name, values)

        if is_oci(chart.repo):
            ref = f"{chart.repo.rstrip('/')}/{chart.chart}"
        else:
            alias = repo_name(chart.repo)
            await self.add_repo(alias, chart.repo)
            ref = f"{alias}/{chart.chart}"

        cmd = self._helm_cmd(
            "upgrade", "--install", chart.name, ref, "--namespace", chart.namespace, "-f", "-"
        )
        if chart.create_namespace:
            cmd.append("--create-namespace")
        if chart.version:
            cmd.extend(["--version", chart.version])
        if chart.wait:
            cmd.extend(["--wait", "--timeout", chart.timeout])

        logger.info("Installing chart", release=chart.name, chart=ref, namespace=chart.namespace)
        await run_command(cmd, input=yaml.safe_dump(values, sort_keys=False))

    async def release_status(self, name: str, namespace: str) -> dict[str, Any] | None:
        try:
            result = await run_command(
                self._helm_cmd("status", name, "--namespace", namespace, "-o", "json")
            )
        except CommandError as e:
            if "not found" in e.stderr.lower():
                return None
            raise
        return json.loads(result.stdout)
