"""Backwards-compatible names accepted in kindplane.yaml.

Chart checkpoints were originally named after Crossplane stages, and a
"post-eso" checkpoint existed while External Secrets was installed by
kindplane itself. Old names are rewritten to the canonical checkpoints
when the config is loaded; nothing past the loader sees them.
"""

from __future__ import annotations

from .shared.logging import get_logger

logger = get_logger(__name__)

CHECKPOINT_PRE_CONTROL_PLANE = "pre-control-plane"
CHECKPOINT_POST_CONTROL_PLANE = "post-control-plane"
CHECKPOINT_POST_DEPENDENCY_INSTALL = "post-dependency-install"
CHECKPOINT_FINAL = "final"

# Execution order; later checkpoints may rely on resources from earlier ones
CHECKPOINTS = (
    CHECKPOINT_PRE_CONTROL_PLANE,
    CHECKPOINT_POST_CONTROL_PLANE,
    CHECKPOINT_POST_DEPENDENCY_INSTALL,
    CHECKPOINT_FINAL,
)

LEGACY_CHECKPOINTS = {
    "pre-crossplane": CHECKPOINT_PRE_CONTROL_PLANE,
    "post-crossplane": CHECKPOINT_POST_CONTROL_PLANE,
    "post-providers": CHECKPOINT_POST_DEPENDENCY_INSTALL,
}

DEPRECATED_CHECKPOINTS = {
    "post-eso": CHECKPOINT_FINAL,
}


def normalize_checkpoint(name: str | None, chart: str = "") -> str:
    """Map a configured chart phase onto a canonical checkpoint.

    Args:
        name: Phase as written in the config; empty means ``final``.
        chart: Chart name, for the deprecation warning.

    Returns:
        Canonical checkpoint name, or ``name`` unchanged if unknown (the
        loader reports unknown names).
    """
    if not name:
        return CHECKPOINT_FINAL
    if name in LEGACY_CHECKPOINTS:
        return LEGACY_CHECKPOINTS[name]
    if name in DEPRECATED_CHECKPOINTS:
        canonical = DEPRECATED_CHECKPOINTS[name]
        logger.warning(
            "Deprecated chart phase, use the canonical name instead",
            chart=chart,
            phase=name,
            canonical=canonical,
        )
        return canonical
    return name
