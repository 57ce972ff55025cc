"""Shared fakes for the harness tests."""

from __future__ import annotations

import json
from pathlib import Path
from types import SimpleNamespace

import pytest

from interchain_e2e.cli import Endpoint
from interchain_e2e.deployer import Deployments
from interchain_e2e.errors import MetricsUnavailable
from interchain_e2e.identity import KeyProvisioning

KEYS_FILE = Path(__file__).resolve().parent.parent / "keys.sample.json"


class FakeCLI:
    """Records wasm calls and keeps just enough contract state to answer queries."""

    def __init__(self, domain: int = 0):
        self.domain = domain
        self.calls: list[tuple] = []
        self.enrolled: dict[int, list[str]] = {}

    def get_addr(self, name):
        self.calls.append(("get_addr", name))
        return f"inj1{name}"

    def wasm_init(self, endpoint, sender, admin, code_id, init_msg, label):
        self.calls.append(("init", label, code_id, init_msg, sender, admin))
        return f"inj1{label}{self.domain}"

    def wasm_execute(self, endpoint, sender, contract, msg, funds=None):
        self.calls.append(("execute", contract, msg, sender, funds))
        if "set_validators" in msg:
            body = msg["set_validators"]
            self.enrolled[body["domain"]] = list(body["validators"])
        return {"code": 0}

    def wasm_query(self, endpoint, contract, msg):
        domain = msg["multisig_ism"]["enrolled_validators"]["domain"]
        return {"validators": self.enrolled.get(domain, []), "threshold": 1}

    def decode_addr(self, addr):
        return addr.encode()[:20].ljust(20, b"\x00")

    def executes(self):
        return [c for c in self.calls if c[0] == "execute"]


class FakeNetwork:
    """Duck-typed ChainNetwork backed by a FakeCLI."""

    def __init__(self, domain: int, index: int = 0):
        self.domain = domain
        self.chain_id = f"injective{domain}"
        self.metrics_port = 9090 + index
        self.endpoint = Endpoint(
            rpc_addr=f"http://127.0.0.1:{26600 + 10 * index}",
            grpc_addr=f"http://127.0.0.1:{26601 + 10 * index}",
        )
        self.launch = SimpleNamespace(cli_chain_id=f"injective-{domain}")
        self.deployments = Deployments(
            mailbox=f"inj1mailbox{domain}",
            hook_igp=f"inj1igp{domain}",
            hook_igp_oracle=f"inj1oracle{domain}",
            ism_routing=f"inj1routing{domain}",
            ism_multisig=f"inj1multisig{domain}",
            hook_merkle=f"inj1merkle{domain}",
            va=f"inj1va{domain}",
            mock_receiver=f"inj1receiver{domain}",
        )
        self.fake_cli = FakeCLI(domain)

    @property
    def name(self):
        return self.chain_id

    def cli(self, bin):
        return self.fake_cli


class FakeHandle:
    """Stands in for an AgentHandle."""

    def __init__(self, label: str, running: bool = True, log: list | None = None):
        self.label = label
        self.pid = 4242
        self.proc = SimpleNamespace(returncode=None if running else 1)
        self.terminated = False
        self.killed_after: float | None = None
        self._running = running
        self._log = log

    def is_running(self):
        return self._running and not self.terminated

    def terminate(self):
        if self.terminated:
            return
        self.terminated = True
        if self._log is not None:
            self._log.append(self.label)

    def kill(self, timeout=5.0):
        self.terminate()
        self.killed_after = timeout


class FakeMetrics:
    """
    Relayer metrics with fixed counters. Balances are consumed in order;
    the last one repeats.
    """

    def __init__(self, gas_payments=0, confirmed=0, balances=(100.0,)):
        self.gas_payments = gas_payments
        self.confirmed = confirmed
        self.balances = list(balances)

    def fetch_sum(self, name, labels=None):
        if name == "hyperlane_contract_sync_stored_events":
            value = self.gas_payments
        elif name == "hyperlane_operations_processed_count":
            value = self.confirmed
        else:
            raise AssertionError(f"unexpected metric {name}")
        if isinstance(value, Exception):
            raise value
        return float(value)

    def agent_balance_sum(self):
        value = self.balances[0] if len(self.balances) == 1 else self.balances.pop(0)
        if isinstance(value, Exception):
            raise value
        return value


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, secs: float):
        self.now += secs


@pytest.fixture
def keys_data():
    return json.loads(KEYS_FILE.read_text(encoding="utf-8"))


@pytest.fixture
def keys():
    return KeyProvisioning.from_file(KEYS_FILE)


@pytest.fixture
def networks():
    return [FakeNetwork(99990 + i, index=i) for i in range(2)]


@pytest.fixture
def metrics_unavailable():
    return MetricsUnavailable("connection refused")
