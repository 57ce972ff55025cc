"""Tests for config.py topology and node port allocation."""

from __future__ import annotations

import pytest

import config
from interchain_e2e import cli
from interchain_e2e.cli import Endpoint, node_ports


class TestTopology:
    def test_deterministic(self):
        assert config.get_topology(3) == config.get_topology(3)

    def test_names_and_domains(self):
        topology = config.get_topology(2)
        assert [e["domain"] for e in topology] == [99990, 99991]
        assert [e["name"] for e in topology] == ["injective99990", "injective99991"]
        assert topology[0]["cli_chain_id"] == "injective-99990"

    @pytest.mark.parametrize("count", [1, 2, 5])
    def test_no_port_is_shared(self, count):
        topology = config.get_topology(count)
        ports = [p for e in topology for p in node_ports(e["port_base"]).all()]
        ports += [e["metrics_port"] for e in topology]
        ports.append(config.get_relayer_metrics_port(count))
        assert len(ports) == len(set(ports))

    def test_port_blocks_follow_stride(self):
        bases = [e["port_base"] for e in config.get_topology(3)]
        assert bases == [config.PORT_START + i * config.PORT_STRIDE for i in range(3)]

    def test_rejects_empty_topology(self):
        with pytest.raises(ValueError):
            config.get_topology(0)


class TestNodePorts:
    def test_offsets(self):
        ports = node_ports(26600)
        assert (ports.rpc, ports.grpc, ports.p2p, ports.api, ports.pprof, ports.grpc_web) == (
            26600, 26601, 26602, 26603, 26604, 26605,
        )

    def test_stride_too_small_for_offsets(self, monkeypatch):
        monkeypatch.setattr(cli, "PORT_STRIDE", 3)
        with pytest.raises(ValueError, match="PORT_STRIDE"):
            node_ports(26600)

    def test_local_endpoint(self):
        endpoint = Endpoint.local(node_ports(26610))
        assert endpoint.rpc_addr == "http://127.0.0.1:26610"
        assert endpoint.grpc_addr == "http://127.0.0.1:26611"


class TestEnvOverrides:
    def test_defaults(self, monkeypatch):
        for key in (config.ENV_CLI_PATH_KEY, config.ENV_NODE_COUNT_KEY, config.ENV_SKIP_BUILD_KEY):
            monkeypatch.delenv(key, raising=False)
        assert config.get_cli_path_override() is None
        assert config.get_node_count() == config.NODE_COUNT
        assert config.skip_build() is False

    def test_overrides(self, monkeypatch, tmp_path):
        monkeypatch.setenv(config.ENV_CLI_PATH_KEY, str(tmp_path / "injectived"))
        monkeypatch.setenv(config.ENV_NODE_COUNT_KEY, "3")
        monkeypatch.setenv(config.ENV_SKIP_BUILD_KEY, "true")
        assert config.get_cli_path_override() == str(tmp_path / "injectived")
        assert config.get_node_count() == 3
        assert config.skip_build() is True
