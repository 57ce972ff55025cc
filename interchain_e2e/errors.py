"""
Error taxonomy for the interchain e2e harness.
"""


class HarnessError(Exception):
    """Base class for every error raised by the harness."""


class SetupError(HarnessError, RuntimeError):
    """
    A fixture step failed (build, install, node init, deploy, link, dispatch).

    Fatal: a broken fixture invalidates every later assertion, so nothing
    retries these.
    """


class MetricsUnavailable(HarnessError):
    """
    An agent's metrics endpoint could not be read or parsed.

    Soft: the termination monitor keeps waiting when it sees this.
    """


class TerminationTimeout(HarnessError, TimeoutError):
    """The termination invariants were not met before the deadline."""
