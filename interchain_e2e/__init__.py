"""
Interchain localnet e2e harness.
"""

from .errors import HarnessError, MetricsUnavailable, SetupError, TerminationTimeout
from .monitor import MonitorStatus, TerminationMonitor
from .orchestrator import E2ESettings, run_locally

__all__ = [
    "E2ESettings",
    "HarnessError",
    "MetricsUnavailable",
    "MonitorStatus",
    "SetupError",
    "TerminationMonitor",
    "TerminationTimeout",
    "run_locally",
]
