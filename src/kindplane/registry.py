"""Local container registry for kind clusters.

A ``registry:2`` container bound to ``127.0.0.1:<port>`` and attached to
the ``kind`` docker network. Nodes resolve ``localhost:<port>`` to the
container through a containerd hosts.toml entry.
"""

from __future__ import annotations

import asyncio

import httpx
import yaml

from .bootstrap.interfaces import KubeClient
from .bootstrap.poller import Readiness
from .config import RegistryConfig
from .errors import CommandError
from .shared.logging import get_logger
from .shared.process import run_command

logger = get_logger(__name__)

REGISTRY_IMAGE = "registry:2"
REGISTRY_INTERNAL_PORT = 5000
HOSTING_CONFIGMAP = "local-registry-hosting"
HOSTING_NAMESPACE = "kube-public"
HOSTING_HELP = "https://kind.sigs.k8s.io/docs/user/local-registry/"


def hosts_toml(name: str) -> str:
    return f'[host."http://{name}:{REGISTRY_INTERNAL_PORT}"]\n'


def hosting_manifest(port: int) -> str:
    """The ConfigMap that tells cluster tooling where the local registry lives."""
    return yaml.safe_dump(
        {
            "apiVersion": "v1",
            "kind": "ConfigMap",
            "metadata": {"name": HOSTING_CONFIGMAP, "namespace": HOSTING_NAMESPACE},
            "data": {
                "localRegistryHosting.v1": f'host: "localhost:{port}"\nhelp: "{HOSTING_HELP}"\n',
            },
        },
        sort_keys=False,
    )


class LocalRegistry:
    """Manages the registry container through the docker CLI."""

    def __init__(
        self,
        config: RegistryConfig,
        docker: str = "docker",
        node_attempts: int = 5,
        node_backoff_seconds: float = 1.0,
        probe_timeout_seconds: float = 2.0,
    ):
        """Initialize local registry manager.

        Args:
            config: Registry settings (name, host port).
            docker: docker executable.
            node_attempts: Tries per node while containerd settles.
            node_backoff_seconds: Initial delay between node tries, doubled each time.
            probe_timeout_seconds: Timeout for each ``/v2/`` request.
        """
        self.config = config
        self.docker = docker
        self.node_attempts = node_attempts
        self.node_backoff_seconds = node_backoff_seconds
        self.probe_timeout_seconds = probe_timeout_seconds

    @property
    def host(self) -> str:
        return f"localhost:{self.config.port}"

    @property
    def url(self) -> str:
        return f"http://{self.host}/v2/"

    async def _state(self) -> str | None:
        """Container state (``running``, ``exited``...), None if absent."""
        result = await run_command(
            [self.docker, "inspect", "-f", "{{.State.Status}}", self.config.name], check=False
        )
        if not result.ok:
            return None
        return result.stdout.strip()

    async def create(self) -> None:
        """Start the registry, reusing an existing container."""
        state = await self._state()
        if state == "running":
            logger.info("Registry already running", name=self.config.name)
            return
        if state is not None:
            logger.info("Starting existing registry", name=self.config.name, state=state)
            await run_command([self.docker, "start", self.config.name])
            return

        await run_command(
            [
                self.docker, "run", "-d", "--restart=always",
                "-p", f"127.0.0.1:{self.config.port}:{REGISTRY_INTERNAL_PORT}",
                "--network", "bridge",
                "--name", self.config.name,
                REGISTRY_IMAGE,
            ]
        )
        logger.info("Registry created", name=self.config.name, host=self.host)

    async def probe(self) -> Readiness:
        """One ``GET /v2/`` against the registry API."""
        try:
            async with httpx.AsyncClient(timeout=self.probe_timeout_seconds) as client:
                response = await client.get(self.url)
        except (httpx.ConnectError, httpx.TimeoutException) as e:
            return Readiness(snapshot=str(e) or type(e).__name__, all_ready=False)
        return Readiness(snapshot=response.status_code, all_ready=response.status_code == 200)

    async def connect_to_network(self, network: str = "kind") -> None:
        result = await run_command(
            [
                self.docker, "inspect", "-f",
                f"{{{{json .NetworkSettings.Networks.{network}}}}}",
                self.config.name,
            ]
        )
        if result.stdout.strip() != "null":
            logger.debug("Registry already on network", network=network)
            return
        await run_command([self.docker, "network", "connect", network, self.config.name])
        logger.info("Registry connected", network=network)

    async def _configure_node(self, node: str) -> None:
        certs_dir = f"/etc/containerd/certs.d/{self.host}"
        await run_command([self.docker, "exec", node, "mkdir", "-p", certs_dir])
        await run_command(
            [self.docker, "exec", "-i", node, "cp", "/dev/stdin", f"{certs_dir}/hosts.toml"],
            input=hosts_toml(self.config.name),
        )

    async def configure_nodes(self, nodes: list[str]) -> None:
        """Point every node's containerd at the registry container.

        Raises:
            CommandError: A node could not be configured after all attempts.
        """
        for node in nodes:
            delay = self.node_backoff_seconds
            for attempt in range(1, self.node_attempts + 1):
                try:
                    await self._configure_node(node)
                    break
                except CommandError as e:
                    if attempt == self.node_attempts:
                        raise
                    logger.debug("Node not ready for registry config", node=node, error=str(e))
                    await asyncio.sleep(delay)
                    delay *= 2
        logger.info("Registry configured on nodes", nodes=len(nodes))

    async def publish_hosting(self, kube: KubeClient) -> None:
        await kube.apply(hosting_manifest(self.config.port))

    async def remove(self) -> None:
        if await self._state() is None:
            return
        await run_command([self.docker, "stop", self.config.name], check=False)
        await run_command([self.docker, "rm", self.config.name])
        logger.info("Registry removed", name=self.config.name)
