"""Cluster access: kind lifecycle and kubectl."""

from .kind import (
    KindClusterProvider,
    TrustedCAsSummary,
    build_kind_config,
    has_trusted_cas,
    node_image,
    parse_kind_step,
    render_kind_config,
    validate_trusted_cas,
)
from .kubectl import KubectlClient, pod_is_ready, summarize_pod

__all__ = [
    # Kind
    "KindClusterProvider",
    "TrustedCAsSummary",
    "build_kind_config",
    "render_kind_config",
    "node_image",
    "has_trusted_cas",
    "validate_trusted_cas",
    "parse_kind_step",
    # kubectl
    "KubectlClient",
    "pod_is_ready",
    "summarize_pod",
]
