"""Tests for interchain_e2e/link.py - network linking."""

from __future__ import annotations

import pytest

from interchain_e2e.errors import SetupError
from interchain_e2e.link import NetworkLinker

from conftest import FakeCLI, FakeNetwork

VALIDATOR = "ABCDEF0123456789abcdef0123456789ABCDEF01"


def linker():
    return NetworkLinker("injectived", "validator", VALIDATOR)


def test_link_configures_local_for_remote(networks):
    local, remote = networks
    linker().link(local, remote)

    execs = local.fake_cli.executes()
    assert [c[1] for c in execs] == [
        local.deployments.hook_igp_oracle,
        local.deployments.hook_igp,
        local.deployments.ism_multisig,
        local.deployments.ism_routing,
    ]
    assert all(c[3] == "validator" for c in execs)
    assert execs[2][2]["set_validators"] == {
        "domain": remote.domain,
        "threshold": 1,
        "validators": [VALIDATOR.lower()],
    }
    assert execs[3][2] == {"set": {"ism": {"domain": remote.domain, "address": local.deployments.ism_multisig}}}
    assert remote.fake_cli.executes() == []


def test_link_pair_goes_both_ways(networks):
    a, b = networks
    link = linker()
    link.link_pair(a, b)
    assert link.is_linked(a, b)
    assert link.is_linked(b, a)


def test_link_all_links_every_ordered_pair():
    networks = [FakeNetwork(99990 + i, index=i) for i in range(3)]
    link = linker()
    link.link_all(networks)
    for local in networks:
        # four transactions per remote
        assert len(local.fake_cli.executes()) == 4 * 2
        for remote in networks:
            if remote is not local:
                assert link.is_linked(local, remote)


def test_link_all_single_network_is_noop():
    network = FakeNetwork(99990)
    linker().link_all([network])
    assert network.fake_cli.calls == []


class ForgetfulCLI(FakeCLI):
    """Accepts validator enrollment but never stores it."""

    def wasm_execute(self, endpoint, sender, contract, msg, funds=None):
        self.calls.append(("execute", contract, msg, sender, funds))
        return {"code": 0}


def test_link_all_reports_unlinked_pairs(networks):
    networks[1].fake_cli = ForgetfulCLI(networks[1].domain)
    with pytest.raises(SetupError, match=r"\(99991, 99990\)"):
        linker().link_all(networks)


def test_is_linked_accepts_prefixed_addresses(networks):
    local, remote = networks
    local.fake_cli.enrolled[remote.domain] = ["0x" + VALIDATOR]
    assert linker().is_linked(local, remote)
