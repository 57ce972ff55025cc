"""
Agent metrics for the interchain e2e harness.
Scrapes the Prometheus text endpoint an agent exposes on its metrics port.
"""
import typing as t

import requests
from prometheus_client.parser import text_string_to_metric_families
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from config import METRIC_WALLET_BALANCE, METRICS_HTTP_TIMEOUT_SECS
from .errors import MetricsUnavailable


def parse_metric(text: str, name: str, labels: t.Optional[t.Dict[str, str]] = None) -> t.List[float]:
    """
    Values of every `name` series whose labels include all of `labels`.

    Counters may be exposed with or without the `_total` suffix; both match.
    """
    labels = labels or {}
    wanted = (name, f"{name}_total")
    values: t.List[float] = []
    try:
        for family in text_string_to_metric_families(text):
            for sample in family.samples:
                if sample.name not in wanted:
                    continue
                if all(sample.labels.get(k) == v for k, v in labels.items()):
                    values.append(sample.value)
    except ValueError as e:
        raise MetricsUnavailable(f"Malformed metrics exposition: {e}") from e
    return values


class MetricsClient:
    """
    Reads one agent's metrics over a pooled, retrying HTTP session.
    """

    def __init__(self, port: int, host: str = "127.0.0.1", session: t.Optional[requests.Session] = None) -> None:
        self.url = f"http://{host}:{port}/metrics"
        self._session = session or self._create_session()

    @staticmethod
    def _create_session() -> requests.Session:
        session = requests.Session()
        adapter = HTTPAdapter(
            max_retries=Retry(
                total=2,
                backoff_factor=0.5,
                status_forcelist=[500, 502, 503, 504],
            )
        )
        session.mount("http://", adapter)
        return session

    def scrape(self) -> str:
        try:
            resp = self._session.get(self.url, timeout=METRICS_HTTP_TIMEOUT_SECS)
            resp.raise_for_status()
        except requests.RequestException as e:
            raise MetricsUnavailable(f"Could not scrape {self.url}: {e}") from e
        return resp.text

    def fetch(self, name: str, labels: t.Optional[t.Dict[str, str]] = None) -> t.List[float]:
        return parse_metric(self.scrape(), name, labels)

    def fetch_sum(self, name: str, labels: t.Optional[t.Dict[str, str]] = None) -> float:
        """Sum across all matching series; 0 when none are reported yet."""
        return sum(self.fetch(name, labels))

    def agent_balance_sum(self) -> float:
        """
        The agent's wallet balance summed over every chain it reports.

        Raises:
            MetricsUnavailable: the endpoint is down or reports no balance yet.
        """
        balances = self.fetch(METRIC_WALLET_BALANCE)
        if not balances:
            raise MetricsUnavailable(f"No {METRIC_WALLET_BALANCE} series at {self.url}")
        return sum(balances)
