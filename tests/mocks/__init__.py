"""Test mocks for kindplane.

Provides fake collaborators for driving the bootstrap engine:
- FakeCluster, FakeKube, FakeCharts: cluster lifecycle and API access
- FakeControlPlane, FakeProviders: Crossplane install and provider health
- FakeRegistry, FakeImages, FakeCompositions: the optional stages
- RecordingSink, RecordingDiagnostics: capture what the engine reports
- HangingCluster, HangingKube: calls that only end when cancelled
"""

from .fakes import (
    FakeCharts,
    FakeCluster,
    FakeCompositions,
    FakeControlPlane,
    FakeImages,
    FakeKube,
    FakeProviders,
    FakeRegistry,
    HangingCluster,
    HangingKube,
    ManualClock,
    RecordingDiagnostics,
    RecordingSink,
    crashing_pod,
    make_collaborators,
    ready_pod,
)

__all__ = [
    "FakeCharts",
    "FakeCluster",
    "FakeCompositions",
    "FakeControlPlane",
    "FakeImages",
    "FakeKube",
    "FakeProviders",
    "FakeRegistry",
    "HangingCluster",
    "HangingKube",
    "ManualClock",
    "RecordingDiagnostics",
    "RecordingSink",
    "crashing_pod",
    "make_collaborators",
    "ready_pod",
]
