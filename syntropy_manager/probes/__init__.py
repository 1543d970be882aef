"""
Validation probes. Each probe inspects one aspect of the host or request and
returns a ValidationFragment; the aggregator in syntropy_manager.validation merges them.
"""
from .base import Probe, ValidationFragment
from .compatibility import CompatibilityProbe
from .dependencies import DependenciesProbe
from .environment import EnvironmentProbe
from .performance import PerformanceProbe
from .security import SecurityProbe

# Sequential execution order.
PROBE_ORDER = ("environment", "security", "performance", "compatibility", "dependencies")

__all__ = [
    "PROBE_ORDER",
    "Probe",
    "ValidationFragment",
    "CompatibilityProbe",
    "DependenciesProbe",
    "EnvironmentProbe",
    "PerformanceProbe",
    "SecurityProbe",
]
