"""Tests for interchain_e2e/node.py - node bring-up."""

from __future__ import annotations

import dataclasses
from pathlib import Path

import pytest

import config
from interchain_e2e.cli import Endpoint, node_ports
from interchain_e2e.errors import SetupError
from interchain_e2e.node import NodeConfig, launch_node
from interchain_e2e.program import ProcessStack

from conftest import FakeHandle


class FakeNodeCLI:
    instances: list["FakeNodeCLI"] = []

    def __init__(self, bin, home, running=True):
        self.bin = bin
        self.home = home
        self.running = running
        self.steps: list[str] = []
        self.handle = None
        FakeNodeCLI.instances.append(self)

    def init(self, moniker, chain_id, keys, gentx_key):
        self.steps.append(f"init:{chain_id}:{gentx_key}")

    def start(self, addr_base, port_base, label="NODE"):
        self.steps.append(f"start:{port_base}")
        self.handle = FakeHandle(label, running=self.running)
        return self.handle, Endpoint.local(node_ports(port_base))

    def store_codes(self, endpoint, sender, codes):
        self.steps.append(f"store:{sender}")
        return {name: i + 1 for i, name in enumerate(sorted(codes))}


@pytest.fixture(autouse=True)
def reset_instances():
    FakeNodeCLI.instances = []


def node_config(tmp_path, index=0):
    entry = config.get_topology(index + 1)[index]
    codes = {"hpl_mailbox": Path("hpl_mailbox.wasm"), "hpl_igp": Path("hpl_igp.wasm")}
    cfg = NodeConfig.from_topology(entry, Path("injectived"), codes)
    return dataclasses.replace(cfg, home_path=tmp_path / f"node{index}")


def test_launch_sequence(tmp_path, keys):
    sleeps: list[float] = []
    stack = ProcessStack()
    launch = launch_node(
        node_config(tmp_path), keys, stack, settle_secs=7, cli_factory=FakeNodeCLI, sleep=sleeps.append
    )
    cli = FakeNodeCLI.instances[0]
    assert cli.steps == ["init:injective-99990:validator", "start:26600", "store:validator"]
    assert sleeps == [7]
    assert stack.handles == [cli.handle]
    assert launch.codes == {"hpl_igp": 1, "hpl_mailbox": 2}
    assert launch.endpoint.rpc_addr == "http://127.0.0.1:26600"
    assert launch.cli_chain_id == "injective-99990"
    assert (tmp_path / "node0").is_dir()


def test_second_node_uses_its_own_port_block(tmp_path, keys):
    launch = launch_node(
        node_config(tmp_path, index=1), keys, ProcessStack(), cli_factory=FakeNodeCLI, sleep=lambda s: None
    )
    assert launch.endpoint.rpc_addr == "http://127.0.0.1:26610"
    assert FakeNodeCLI.instances[0].handle.label == "NODE1"


def test_dead_node_fails_but_is_owned(tmp_path, keys):
    def dead_cli(bin, home):
        return FakeNodeCLI(bin, home, running=False)

    stack = ProcessStack()
    with pytest.raises(SetupError, match="exited during startup"):
        launch_node(node_config(tmp_path), keys, stack, cli_factory=dead_cli, sleep=lambda s: None)
    cli = FakeNodeCLI.instances[0]
    assert "store:validator" not in cli.steps
    assert stack.handles == [cli.handle]
    stack.release()
    assert cli.handle.terminated
