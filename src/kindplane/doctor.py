"""Pre-flight checks for ``kindplane doctor``.

Detects the container runtime, the CLIs kindplane shells out to, free disk
space and, when the configured cluster exists, whether its API answers and
Crossplane is installed.
"""

from __future__ import annotations

import json
import shutil
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path

from .bootstrap.interfaces import KubeClient
from .crossplane import CROSSPLANE_POD_SELECTOR
from .errors import CommandError
from .shared.logging import get_logger
from .shared.process import run_command

logger = get_logger(__name__)

# A kind node image plus Crossplane and provider images
MIN_FREE_DISK_GB = 5.0
VERSION_WIDTH = 30


@dataclass
class CheckResult:
    """Outcome of one pre-flight check."""

    name: str
    passed: bool
    message: str
    required: bool = True
    details: str = ""
    suggestion: str = ""


def _first_line(text: str) -> str:
    line = text.strip().splitlines()[0] if text.strip() else ""
    return line if len(line) <= VERSION_WIDTH else line[:VERSION_WIDTH] + "..."


def _kubectl_version(stdout: str) -> str:
    try:
        return json.loads(stdout)["clientVersion"]["gitVersion"]
    except (ValueError, KeyError, TypeError):
        return _first_line(stdout)


async def check_binary(
    name: str,
    command: Sequence[str],
    *,
    required: bool = True,
    install_hint: str = "",
    parse: Callable[[str], str] = _first_line,
) -> CheckResult:
    """Check an executable is on PATH and answers a version query."""
    if shutil.which(command[0]) is None:
        return CheckResult(
            name,
            passed=False,
            message=f"{command[0]} not found in PATH",
            required=required,
            suggestion=install_hint,
        )
    try:
        result = await run_command(command)
    except CommandError as e:
        return CheckResult(name, passed=False, message="version check failed", required=required, details=str(e))
    return CheckResult(name, passed=True, message=f"Found ({parse(result.stdout)})", required=required)


async def check_docker() -> CheckResult:
    if shutil.which("docker") is None:
        return CheckResult(
            "Docker daemon",
            passed=False,
            message="Docker not found in PATH",
            suggestion="Install Docker: https://docs.docker.com/get-docker/",
        )
    result = await run_command(["docker", "info", "--format", "{{.ServerVersion}}"], check=False)
    if not result.ok:
        return CheckResult(
            "Docker daemon",
            passed=False,
            message="Docker daemon not running",
            details=_first_line(result.stderr),
            suggestion="Start Docker and retry",
        )
    return CheckResult("Docker daemon", passed=True, message=f"Running (v{result.stdout.strip()})")


def check_disk_space(path: str | Path = ".", minimum_gb: float = MIN_FREE_DISK_GB) -> CheckResult:
    try:
        free_gb = shutil.disk_usage(path).free / 1024**3
    except OSError:
        return CheckResult("Disk space", passed=True, message="Unable to check (skipped)")
    if free_gb < minimum_gb:
        return CheckResult(
            "Disk space",
            passed=False,
            message=f"{free_gb:.1f} GB available ({minimum_gb:.1f} GB required)",
            suggestion="Free up disk space before creating a cluster",
        )
    return CheckResult("Disk space", passed=True, message=f"{free_gb:.1f} GB available")


async def check_cluster(kube: KubeClient, crossplane_namespace: str) -> list[CheckResult]:
    """API reachability and Crossplane presence for an existing cluster."""
    try:
        await kube.ping()
    except Exception as e:
        return [
            CheckResult("Kubernetes API", passed=False, message="Unreachable", required=False, details=str(e))
        ]
    results = [CheckResult("Kubernetes API", passed=True, message="Reachable", required=False)]

    try:
        pods = await kube.list_pods(crossplane_namespace, CROSSPLANE_POD_SELECTOR)
    except Exception as e:
        logger.debug("Crossplane lookup failed", error=str(e))
        pods = []
    if pods:
        results.append(CheckResult("Crossplane", passed=True, message="Installed", required=False))
    else:
        results.append(
            CheckResult(
                "Crossplane",
                passed=True,
                message="Not installed",
                required=False,
                details="Run 'kindplane up' to install Crossplane",
            )
        )
    return results


async def run_checks() -> list[CheckResult]:
    """Host checks that need no cluster."""
    return [
        await check_docker(),
        await check_binary(
            "kind binary",
            ["kind", "version"],
            install_hint="Install kind: https://kind.sigs.k8s.io/docs/user/quick-start/#installation",
        ),
        await check_binary(
            "kubectl binary",
            ["kubectl", "version", "--client", "-o", "json"],
            install_hint="Install kubectl: https://kubernetes.io/docs/tasks/tools/",
            parse=_kubectl_version,
        ),
        await check_binary(
            "helm binary",
            ["helm", "version", "--short"],
            install_hint="Install Helm: https://helm.sh/docs/intro/install/",
        ),
        await check_binary(
            "git binary",
            ["git", "--version"],
            required=False,
            install_hint="Install git to use git composition sources",
        ),
        check_disk_space(),
    ]
