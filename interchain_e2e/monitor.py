"""
Termination monitoring for the interchain e2e harness.
Polls relayer metrics until the run is certified or the deadline passes.
"""
import time
import typing as t
from dataclasses import dataclass
from enum import Enum

from config import (
    METRIC_GAS_PAYMENTS,
    METRIC_OPERATIONS_PROCESSED,
    POLL_INTERVAL_SECS,
    TIMEOUT_SECS,
)
from .errors import MetricsUnavailable
from .metrics import MetricsClient


class MonitorStatus(Enum):
    WAITING = "waiting"
    SUCCEEDED = "succeeded"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True)
class TerminationState:
    """Computed once before polling starts; never changes afterwards."""

    messages_expected: int
    starting_relayer_balance: float
    deadline: float


class TerminationMonitor:
    """
    Decides whether the relayer has delivered everything that was dispatched.

    Usage:
        monitor = TerminationMonitor.start(metrics, messages_expected=2, starting_relayer_balance=balance)
        if monitor.run() is MonitorStatus.TIMED_OUT:
            ...
    """

    def __init__(
        self,
        metrics: MetricsClient,
        state: TerminationState,
        poll_interval: float = POLL_INTERVAL_SECS,
        clock: t.Callable[[], float] = time.monotonic,
        sleep: t.Callable[[float], None] = time.sleep,
    ) -> None:
        self.metrics = metrics
        self.state = state
        self.poll_interval = poll_interval
        self._clock = clock
        self._sleep = sleep
        self.status = MonitorStatus.WAITING

    @classmethod
    def start(
        cls,
        metrics: MetricsClient,
        messages_expected: int,
        starting_relayer_balance: float,
        timeout: float = TIMEOUT_SECS,
        poll_interval: float = POLL_INTERVAL_SECS,
        clock: t.Callable[[], float] = time.monotonic,
        sleep: t.Callable[[float], None] = time.sleep,
    ) -> "TerminationMonitor":
        """Fix the deadline at `timeout` seconds from now."""
        state = TerminationState(
            messages_expected=messages_expected,
            starting_relayer_balance=starting_relayer_balance,
            deadline=clock() + timeout,
        )
        return cls(metrics, state, poll_interval=poll_interval, clock=clock, sleep=sleep)

    def termination_invariants_met(self) -> bool:
        """
        True iff the relayer scraped one gas payment per dispatched message,
        confirmed one delivery per dispatched message, and spent gas doing so.

        Metrics that cannot be read count as "not yet".
        """
        expected = self.state.messages_expected
        try:
            gas_payments_scraped = int(
                self.metrics.fetch_sum(METRIC_GAS_PAYMENTS, {"data_type": "gas_payment"})
            )
            if gas_payments_scraped != expected:
                print(f"[Monitor] Scraper has scraped {gas_payments_scraped} gas payments, expected {expected}")
                return False

            delivered_messages_scraped = int(
                self.metrics.fetch_sum(METRIC_OPERATIONS_PROCESSED, {"phase": "confirmed"})
            )
            if delivered_messages_scraped != expected:
                print(f"[Monitor] Relayer confirmed {delivered_messages_scraped} submitted messages, expected {expected}")
                return False

            ending_relayer_balance = self.metrics.agent_balance_sum()
        except MetricsUnavailable as e:
            print(f"[Monitor] Metrics not available yet: {e}")
            return False

        starting = self.state.starting_relayer_balance
        if starting <= ending_relayer_balance:
            print(
                "[Monitor] Expected starting relayer balance to be greater than ending relayer balance, "
                f"but got {starting} <= {ending_relayer_balance}"
            )
            return False

        print("[Monitor] Termination invariants have been met")
        return True

    def check(self) -> MonitorStatus:
        """One poll tick: success first, then the deadline."""
        if self.termination_invariants_met():
            self.status = MonitorStatus.SUCCEEDED
        elif self._clock() > self.state.deadline:
            print("[Monitor] timeout reached before message submission was confirmed")
            self.status = MonitorStatus.TIMED_OUT
        else:
            self.status = MonitorStatus.WAITING
        return self.status

    def run(self) -> MonitorStatus:
        """Block, polling every `poll_interval` seconds, until a terminal status."""
        while self.check() is MonitorStatus.WAITING:
            self._sleep(self.poll_interval)
        return self.status
