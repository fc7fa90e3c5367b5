"""Path management for kindplane.

Manages the ~/.kindplane/ directory structure.
"""

from pathlib import Path

# Base directory for all kindplane data
KINDPLANE_DIR = Path.home() / ".kindplane"

# Log directory
LOG_DIR = KINDPLANE_DIR / "logs"

# Git checkouts for composition sources
CACHE_DIR = KINDPLANE_DIR / "cache"

# Default config file name, looked up in the working directory
DEFAULT_CONFIG_NAME = "kindplane.yaml"


def ensure_dirs() -> None:
    """Create directory structure if missing.

    Creates:
    - ~/.kindplane/ (mode 0o700 - user-only access)
    - ~/.kindplane/logs/
    - ~/.kindplane/cache/
    """
    KINDPLANE_DIR.mkdir(mode=0o700, exist_ok=True)
    LOG_DIR.mkdir(exist_ok=True)
    CACHE_DIR.mkdir(exist_ok=True)


def get_log_file(name: str = "kindplane") -> Path:
    """Get path to a log file.

    Args:
        name: Log file name (without extension)

    Returns:
        Path to the log file
    """
    return LOG_DIR / f"{name}.log"


def get_checkout_dir(repo: str, branch: str) -> Path:
    """Get the checkout directory for a git composition source."""
    slug = repo.rstrip("/").removesuffix(".git").split("/")[-1] or "repo"
    return CACHE_DIR / "compositions" / f"{slug}-{branch.replace('/', '-')}"
