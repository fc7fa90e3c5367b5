"""Shared test fixtures for kindplane tests."""

from __future__ import annotations

import pytest

from kindplane.bootstrap.interfaces import Collaborators
from kindplane.config import ChartConfig, CompositionSource, Config, ProviderConfig
from tests.mocks import ManualClock, RecordingSink, make_collaborators


@pytest.fixture
def collaborators() -> Collaborators:
    return make_collaborators()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def config() -> Config:
    """Config with no optional stages; image cache off so nothing is preloaded."""
    cfg = Config(source="kindplane.yaml")
    cfg.crossplane.image_cache.enabled = False
    return cfg


@pytest.fixture
def full_config() -> Config:
    """Config exercising charts at three checkpoints, a provider and compositions."""
    cfg = Config(source="kindplane.yaml")
    cfg.crossplane.version = "1.15.0"
    cfg.crossplane.image_cache.enabled = False
    cfg.crossplane.providers = [
        ProviderConfig("provider-nop", "xpkg.upbound.io/crossplane-contrib/provider-nop:v0.2.1")
    ]
    cfg.charts = [
        ChartConfig("cert-manager", "https://charts.jetstack.io", "cert-manager", "cert-manager",
                    phase="pre-control-plane"),
        ChartConfig("ingress", "https://kubernetes.github.io/ingress-nginx", "ingress-nginx", "ingress",
                    phase="post-dependency-install"),
        ChartConfig("app", "oci://ghcr.io/example/charts", "app", "apps", phase="final"),
    ]
    cfg.compositions = [CompositionSource(type="local", path="./compositions")]
    return cfg
