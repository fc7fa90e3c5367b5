"""Composition sources: local directories or shallow git checkouts."""

from __future__ import annotations

import shutil
from pathlib import Path

from .bootstrap.interfaces import KubeClient
from .config import CompositionSource
from .errors import ConfigError
from .shared.logging import get_logger
from .shared.paths import get_checkout_dir
from .shared.process import run_command

logger = get_logger(__name__)

MANIFEST_SUFFIXES = (".yaml", ".yml")


def manifest_files(path: Path) -> list[Path]:
    """YAML files to apply, in a stable order.

    Raises:
        ConfigError: The path does not exist.
    """
    if not path.exists():
        raise ConfigError(f"composition path not found: {path}", path=str(path))
    if path.is_file():
        return [path]
    return sorted(p for p in path.rglob("*") if p.is_file() and p.suffix.lower() in MANIFEST_SUFFIXES)


class GitCompositionApplier:
    """Applies composition manifests with kubectl, cloning git sources first."""

    def __init__(self, git: str = "git", checkout_root: Path | None = None):
        self.git = git
        self.checkout_root = checkout_root

    async def checkout(self, repo: str, branch: str) -> Path:
        """Fresh ``git clone --depth 1`` of one branch."""
        dest = get_checkout_dir(repo, branch)
        if self.checkout_root is not None:
            dest = self.checkout_root / dest.name
        if dest.exists():
            shutil.rmtree(dest)
        dest.parent.mkdir(parents=True, exist_ok=True)
        await run_command(
            [self.git, "clone", "--depth", "1", "--branch", branch, repo, str(dest)],
            env={"GIT_TERMINAL_PROMPT": "0"},
        )
        return dest

    async def resolve(self, source: CompositionSource) -> Path:
        if source.type == "git":
            root = await self.checkout(source.repo, source.branch)
            return root / source.path if source.path else root
        return Path(source.path)

    async def apply(self, source: CompositionSource, kube: KubeClient) -> int:
        files = manifest_files(await self.resolve(source))
        for path in files:
            await kube.apply_file(path)
        logger.info("Compositions applied", source=source.describe(), files=len(files))
        return len(files)
