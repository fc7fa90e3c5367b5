"""kubectl-backed Kubernetes client.

Every call pins ``--context kind-<cluster>`` so the user's current
kubeconfig context is never consulted.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import yaml

from ..bootstrap.events import PodSummary
from ..shared.logging import get_logger
from ..shared.process import run_command

logger = get_logger(__name__)


class KubectlClient:
    """Kubernetes access through the kubectl CLI."""

    def __init__(
        self,
        context: str,
        kubeconfig: str | None = None,
        binary: str = "kubectl",
        request_timeout: str = "10s",
    ):
        """Initialize kubectl client.

        Args:
            context: kubeconfig context, e.g. ``kind-kindplane``.
            kubeconfig: Path to kubeconfig file.
            binary: kubectl executable.
            request_timeout: Per-request API timeout.
        """
        self.context = context
        self.kubeconfig = kubeconfig
        self.binary = binary
        self.request_timeout = request_timeout

    def _kubectl_cmd(self) -> list[str]:
        """Build base kubectl command."""
        cmd = [self.binary, "--context", self.context, f"--request-timeout={self.request_timeout}"]
        if self.kubeconfig:
            cmd.extend(["--kubeconfig", self.kubeconfig])
        return cmd

    async def _get_json(self, args: list[str]) -> dict[str, Any]:
        result = await run_command(self._kubectl_cmd() + args + ["-o", "json"])
        return json.loads(result.stdout or "{}")

    async def ping(self) -> None:
        await run_command(self._kubectl_cmd() + ["get", "--raw", "/readyz"])

    async def list_pods(self, namespace: str, label_selector: str = "") -> list[dict[str, Any]]:
        args = ["-n", namespace, "get", "pods"]
        if label_selector:
            args.extend(["-l", label_selector])
        return (await self._get_json(args)).get("items", [])

    async def pod_logs(self, namespace: str, pod: str, container: str, tail: int) -> list[str]:
        result = await run_command(
            self._kubectl_cmd() + ["-n", namespace, "logs", pod, "-c", container, f"--tail={tail}"]
        )
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    async def list_resources(self, resource: str, namespace: str = "") -> list[dict[str, Any]]:
        args = ["get", resource]
        if namespace:
            args[:0] = ["-n", namespace]
        return (await self._get_json(args)).get("items", [])

    async def node_names(self) -> list[str]:
        items = (await self._get_json(["get", "nodes"])).get("items", [])
        return [item["metadata"]["name"] for item in items if item.get("metadata", {}).get("name")]

    async def ensure_namespace(self, name: str) -> None:
        manifest = {"apiVersion": "v1", "kind": "Namespace", "metadata": {"name": name}}
        await self.apply(yaml.safe_dump(manifest))

    async def apply(self, manifest: str) -> None:
        """Server-side apply of manifests read from stdin."""
        await run_command(
            self._kubectl_cmd() + ["apply", "--server-side", "--force-conflicts", "-f", "-"],
            input=manifest,
        )

    async def apply_file(self, path: Path) -> None:
        await run_command(
            self._kubectl_cmd() + ["apply", "--server-side", "--force-conflicts", "-f", str(path)]
        )
        logger.debug("Applied manifest", path=str(path))


def pod_is_ready(pod: dict[str, Any]) -> bool:
    for cond in pod.get("status", {}).get("conditions", []) or []:
        if cond.get("type") == "Ready":
            return cond.get("status") == "True"
    return False


def summarize_pod(pod: dict[str, Any]) -> PodSummary:
    """Condense a pod object into the row shown in pod status panels."""
    status = pod.get("status", {})
    containers = status.get("containerStatuses", []) or []
    total = len(pod.get("spec", {}).get("containers", []) or []) or len(containers)
    ready = sum(1 for c in containers if c.get("ready"))
    return PodSummary(
        name=pod.get("metadata", {}).get("name", ""),
        namespace=pod.get("metadata", {}).get("namespace", ""),
        phase=status.get("phase", "Unknown"),
        ready=f"{ready}/{total}",
        restarts=sum(int(c.get("restartCount", 0)) for c in containers),
    )
