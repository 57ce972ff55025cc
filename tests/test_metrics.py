"""Tests for interchain_e2e/metrics.py - Prometheus scraping."""

from __future__ import annotations

import pytest
import requests

from interchain_e2e.errors import MetricsUnavailable
from interchain_e2e.metrics import MetricsClient, parse_metric

EXPOSITION = """\
# HELP hyperlane_contract_sync_stored_events Number of events stored
# TYPE hyperlane_contract_sync_stored_events gauge
hyperlane_contract_sync_stored_events{agent="relayer",chain="injective99990",data_type="gas_payment"} 1
hyperlane_contract_sync_stored_events{agent="relayer",chain="injective99991",data_type="gas_payment"} 1
hyperlane_contract_sync_stored_events{agent="relayer",chain="injective99990",data_type="message_dispatch"} 4
# HELP hyperlane_operations_processed_count Operations processed
# TYPE hyperlane_operations_processed_count counter
hyperlane_operations_processed_count{agent="relayer",app_context="default",phase="confirmed"} 2
hyperlane_operations_processed_count{agent="relayer",app_context="default",phase="prepared"} 5
# HELP hyperlane_wallet_balance Wallet balance
# TYPE hyperlane_wallet_balance gauge
hyperlane_wallet_balance{agent="relayer",chain="injective99990",token_symbol="INJ"} 1.5e+21
hyperlane_wallet_balance{agent="relayer",chain="injective99991",token_symbol="INJ"} 2.5e+21
"""


class StubResponse:
    def __init__(self, text: str, status: int = 200):
        self.text = text
        self.status = status

    def raise_for_status(self):
        if self.status >= 400:
            raise requests.HTTPError(f"{self.status} error")


class StubSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.urls: list[str] = []

    def get(self, url, timeout=None):
        self.urls.append(url)
        if self.error is not None:
            raise self.error
        return self.response


class TestParseMetric:
    def test_label_filter(self):
        values = parse_metric(EXPOSITION, "hyperlane_contract_sync_stored_events", {"data_type": "gas_payment"})
        assert values == [1.0, 1.0]

    def test_counter_without_total_suffix_matches(self):
        values = parse_metric(EXPOSITION, "hyperlane_operations_processed_count", {"phase": "confirmed"})
        assert values == [2.0]

    def test_no_labels_matches_every_series(self):
        assert len(parse_metric(EXPOSITION, "hyperlane_wallet_balance")) == 2

    def test_absent_metric(self):
        assert parse_metric(EXPOSITION, "hyperlane_missing") == []

    def test_malformed_exposition(self):
        with pytest.raises(MetricsUnavailable):
            parse_metric("hyperlane_wallet_balance not_a_number\n", "hyperlane_wallet_balance")


class TestMetricsClient:
    def test_fetch_sum(self):
        session = StubSession(StubResponse(EXPOSITION))
        client = MetricsClient(9093, session=session)
        assert client.fetch_sum("hyperlane_contract_sync_stored_events", {"data_type": "gas_payment"}) == 2
        assert session.urls == ["http://127.0.0.1:9093/metrics"]

    def test_fetch_sum_is_zero_before_first_series(self):
        client = MetricsClient(9093, session=StubSession(StubResponse("")))
        assert client.fetch_sum("hyperlane_operations_processed_count", {"phase": "confirmed"}) == 0

    def test_agent_balance_sum(self):
        client = MetricsClient(9093, session=StubSession(StubResponse(EXPOSITION)))
        assert client.agent_balance_sum() == pytest.approx(4.0e21)

    def test_agent_balance_requires_a_series(self):
        client = MetricsClient(9093, session=StubSession(StubResponse("")))
        with pytest.raises(MetricsUnavailable):
            client.agent_balance_sum()

    def test_connection_error(self):
        client = MetricsClient(9093, session=StubSession(error=requests.ConnectionError("refused")))
        with pytest.raises(MetricsUnavailable, match="9093"):
            client.scrape()

    def test_http_error(self):
        client = MetricsClient(9093, session=StubSession(StubResponse("", status=503)))
        with pytest.raises(MetricsUnavailable):
            client.scrape()
