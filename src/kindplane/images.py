"""Image pre-loading from the local docker daemon into the cluster.

Images already present locally are either pushed to the local registry
(when one is enabled) or loaded straight into the kind nodes. Images that
are not available locally are reported as missing so the caller can
decide whether to pull them first.
"""

from __future__ import annotations

import asyncio
import json
import platform

from .bootstrap.interfaces import MessageCallback, PreloadResult
from .config import Config
from .errors import CommandError
from .shared.logging import get_logger
from .shared.process import run_command

logger = get_logger(__name__)

_ARCH_ALIASES = {"x86_64": "amd64", "aarch64": "arm64"}


def normalize_arch(arch: str) -> str:
    return _ARCH_ALIASES.get(arch, arch)


def short_image_name(image: str) -> str:
    """``xpkg.upbound.io/upbound/provider-aws:v1`` -> ``upbound/provider-aws:v1``"""
    parts = image.split("/")
    if len(parts) >= 3 and "." in parts[0]:
        return "/".join(parts[-2:])
    return image


def derive_crossplane_images(version: str) -> list[str]:
    if not version.startswith("v"):
        version = f"v{version}"
    return [
        f"crossplane/crossplane:{version}",
        f"crossplane/crossplane-rbac-manager:{version}",
    ]


def derive_provider_images(package: str) -> list[str]:
    """The package itself plus its controller image by naming convention.

    ``registry/publisher/name:tag`` adds ``registry/publisher/name-controller:tag``.
    Packages that don't follow the convention are returned as-is.
    """
    parts = package.split("/")
    if len(parts) < 3 or ":" not in parts[2]:
        return [package]
    name, tag = parts[2].split(":", 1)
    return [package, f"{parts[0]}/{parts[1]}/{name}-controller:{tag}"]


def retag_for_registry(image: str, registry_host: str) -> str:
    """Swap an explicit registry prefix for the local one, or prefix Hub images."""
    first, sep, rest = image.partition("/")
    if sep and "." in first:
        return f"{registry_host}/{rest}"
    return f"{registry_host}/{image}"


def collect_images(config: Config) -> list[str]:
    """Images to preload in a stable, de-duplicated order."""
    cache = config.crossplane.image_cache
    images: list[str] = []

    if cache.preload_crossplane and config.crossplane.version:
        images.extend(derive_crossplane_images(config.crossplane.version))
    if cache.preload_providers:
        for provider in config.crossplane.providers:
            images.extend(cache.overrides.get(provider.package) or derive_provider_images(provider.package))
    images.extend(cache.additional_images)

    return list(dict.fromkeys(images))


def has_images_to_preload(config: Config) -> bool:
    cache = config.crossplane.image_cache
    return bool(
        (cache.preload_providers and config.crossplane.providers)
        or cache.preload_crossplane
        or cache.additional_images
    )


class DockerImagePreloader:
    """Moves locally cached images into a kind cluster with docker and kind."""

    def __init__(
        self,
        config: Config,
        registry_host: str | None = None,
        docker: str = "docker",
        kind: str = "kind",
        load_attempts: int = 3,
        backoff_seconds: float = 1.0,
    ):
        """Initialize image preloader.

        Args:
            config: Full config; image cache settings and providers are read from it.
            registry_host: ``localhost:<port>`` of the local registry, or None
                to load images directly into the nodes.
            docker: docker executable.
            kind: kind executable.
            load_attempts: Tries per image for ``kind load``.
            backoff_seconds: Initial retry delay, doubled after each failure.
        """
        self.config = config
        self.registry_host = registry_host
        self.docker = docker
        self.kind = kind
        self.load_attempts = load_attempts
        self.backoff_seconds = backoff_seconds

    async def is_local(self, image: str) -> bool:
        result = await run_command([self.docker, "image", "inspect", image], check=False)
        return result.ok

    async def node_arch(self, cluster_name: str) -> str:
        """Architecture of the cluster's control plane node, host arch as fallback."""
        node = f"{cluster_name}-control-plane"
        try:
            result = await run_command([self.docker, "exec", node, "uname", "-m"])
        except CommandError as e:
            logger.warning("Could not detect node architecture", node=node, error=str(e))
            return normalize_arch(platform.machine())
        return normalize_arch(result.stdout.strip())

    async def image_arch(self, image: str) -> str:
        result = await run_command([self.docker, "image", "inspect", image, "--format", "{{json .}}"])
        return normalize_arch(json.loads(result.stdout).get("Architecture", ""))

    async def _ensure_arch(self, image: str, arch: str, on_step: MessageCallback) -> bool:
        """Re-pull ``image`` for ``arch`` when the local copy doesn't match."""
        try:
            current = await self.image_arch(image)
        except (CommandError, ValueError) as e:
            logger.warning("Could not check image architecture", image=image, error=str(e))
            return True
        if not current or current == arch:
            return True

        await on_step(f"Re-pulling {short_image_name(image)} for linux/{arch}...")
        try:
            await run_command([self.docker, "pull", "--platform", f"linux/{arch}", image])
        except CommandError as e:
            logger.warning("Re-pull failed", image=image, arch=arch, error=str(e))
            return False
        return True

    async def _push(self, image: str) -> None:
        target = retag_for_registry(image, self.registry_host or "")
        await run_command([self.docker, "tag", image, target])
        await run_command([self.docker, "push", target])

    async def _load(self, cluster_name: str, image: str) -> None:
        delay = self.backoff_seconds
        for attempt in range(1, self.load_attempts + 1):
            try:
                await run_command([self.kind, "load", "docker-image", image, "--name", cluster_name])
                return
            except CommandError as e:
                if attempt == self.load_attempts:
                    raise
                logger.debug("kind load failed, retrying", image=image, attempt=attempt, error=str(e))
                await asyncio.sleep(delay)
                delay *= 2

    async def preload(self, cluster_name: str, on_step: MessageCallback) -> PreloadResult:
        """Load every locally available image into the cluster.

        Individual image failures are recorded in the result and never raised.
        """
        result = PreloadResult()
        images = collect_images(self.config)
        if not images:
            return result

        arch = await self.node_arch(cluster_name)
        local: list[str] = []
        for image in images:
            if not await self.is_local(image):
                result.missing.append(image)
            elif await self._ensure_arch(image, arch, on_step):
                local.append(image)
            else:
                result.failed.append(image)

        if not local:
            logger.info("No images found locally", expected=len(images))
            return result

        await on_step(f"Found {len(local)}/{len(images)} images locally")
        for i, image in enumerate(local, 1):
            name = short_image_name(image)
            try:
                if self.registry_host:
                    await on_step(f"Caching {name} in local registry ({i}/{len(local)})...")
                    await self._push(image)
                else:
                    await on_step(f"Loading {name} into nodes ({i}/{len(local)})...")
                    await self._load(cluster_name, image)
            except CommandError as e:
                logger.warning("Image preload failed", image=image, error=str(e))
                result.failed.append(image)
                continue
            result.loaded.append(image)

        logger.info(
            "Images preloaded",
            loaded=len(result.loaded),
            missing=len(result.missing),
            failed=len(result.failed),
            mode="registry" if self.registry_host else "direct",
        )
        return result

    async def pull(self, images: list[str], on_step: MessageCallback) -> int:
        """Pull images from their remote registries; returns how many succeeded."""
        pulled = 0
        for i, image in enumerate(images, 1):
            await on_step(f"Pulling {short_image_name(image)} ({i}/{len(images)})...")
            try:
                await run_command([self.docker, "pull", image])
            except CommandError as e:
                logger.warning("Failed to pull image", image=image, error=str(e))
                continue
            pulled += 1
        return pulled
