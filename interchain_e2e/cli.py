"""
Chain CLI adapter for the interchain e2e harness.
Drives the injectived binary: node init/start, code upload & wasm transactions.
"""
import json
import re
import time
import typing as t
from dataclasses import dataclass
from pathlib import Path

from config import (
    DENOM,
    GAS_ADJUSTMENT,
    GAS_PRICES,
    GENESIS_ACCOUNT_BALANCE,
    GENTX_STAKE,
    KEYRING_BACKEND,
    PORT_STRIDE,
    TX_CONFIRM_TIMEOUT_SECS,
    TX_POLL_INTERVAL_SECS,
)
from .errors import SetupError
from .identity import KeyProvisioning
from .program import AgentHandle, Program

# Offsets inside a node's block of PORT_STRIDE ports
RPC_OFFSET = 0
GRPC_OFFSET = 1
P2P_OFFSET = 2
API_OFFSET = 3
PPROF_OFFSET = 4
GRPC_WEB_OFFSET = 5


@dataclass(frozen=True)
class NodePorts:
    rpc: int
    grpc: int
    p2p: int
    api: int
    pprof: int
    grpc_web: int

    def all(self) -> t.Tuple[int, ...]:
        return (self.rpc, self.grpc, self.p2p, self.api, self.pprof, self.grpc_web)


def node_ports(port_base: int) -> NodePorts:
    """
    Ports for the node whose block starts at `port_base`.

    Offsets stay below PORT_STRIDE, so nodes spaced PORT_STRIDE apart never
    share a port.
    """
    if GRPC_WEB_OFFSET >= PORT_STRIDE:
        raise ValueError(f"PORT_STRIDE ({PORT_STRIDE}) leaves no room for offset {GRPC_WEB_OFFSET}")
    return NodePorts(
        rpc=port_base + RPC_OFFSET,
        grpc=port_base + GRPC_OFFSET,
        p2p=port_base + P2P_OFFSET,
        api=port_base + API_OFFSET,
        pprof=port_base + PPROF_OFFSET,
        grpc_web=port_base + GRPC_WEB_OFFSET,
    )


@dataclass(frozen=True)
class Endpoint:
    """Where clients and agents reach a running node."""

    rpc_addr: str
    grpc_addr: str

    @classmethod
    def local(cls, ports: NodePorts) -> "Endpoint":
        return cls(
            rpc_addr=f"http://127.0.0.1:{ports.rpc}",
            grpc_addr=f"http://127.0.0.1:{ports.grpc}",
        )


def _parse_json(raw: str, what: str) -> t.Dict[str, t.Any]:
    try:
        return json.loads(raw)
    except ValueError as e:
        raise SetupError(f"Could not parse {what} output as JSON: {raw[:200]!r}") from e


def find_attribute(tx: t.Dict[str, t.Any], event_type: str, key: str) -> str:
    """
    Look up an event attribute in a confirmed tx.

    Newer SDKs put events at the top level, older ones under each log entry.
    """
    events = list(tx.get("events") or [])
    for log in tx.get("logs") or []:
        events.extend(log.get("events") or [])
    for event in events:
        if event.get("type") != event_type:
            continue
        for attr in event.get("attributes") or []:
            if attr.get("key") == key:
                return attr["value"]
    raise SetupError(f"No '{event_type}.{key}' event attribute in tx {tx.get('txhash')}")


def _host(addr_base: str) -> str:
    """tcp://0.0.0.0 -> 0.0.0.0"""
    return addr_base.split("://", 1)[-1]


def _replace_value(node: t.Any, old: str, new: str) -> t.Any:
    if isinstance(node, dict):
        return {k: _replace_value(v, old, new) for k, v in node.items()}
    if isinstance(node, list):
        return [_replace_value(v, old, new) for v in node]
    if node == old:
        return new
    return node


class InjectiveCLI:
    """
    Thin wrapper over one node's chain binary and home directory.
    """

    def __init__(self, bin: t.Union[str, Path], home: t.Union[str, Path], chain_id: t.Optional[str] = None) -> None:
        self.bin = Path(bin)
        self.home = Path(home)
        self.chain_id = chain_id

    def cli(self) -> Program:
        return Program(self.bin).arg("home", self.home)

    @staticmethod
    def _keyring(program: Program) -> Program:
        return program.arg("keyring-backend", KEYRING_BACKEND)

    # ---------- node lifecycle ----------
    def init(self, moniker: str, chain_id: str, keys: KeyProvisioning, gentx_key: str) -> None:
        """
        Create genesis and a funded keyring for a single-validator chain.
        """
        self.chain_id = chain_id
        self.cli().cmd("init").cmd(moniker).arg("chain-id", chain_id).run_with_output()

        for key in keys.keys:
            self.add_key(key.name, key.mnemonic)
            self.cli().cmd("add-genesis-account").cmd(self.get_addr(key.name)).cmd(
                GENESIS_ACCOUNT_BALANCE
            ).run_with_output()

        self._keyring(
            self.cli().cmd("gentx").cmd(gentx_key).cmd(GENTX_STAKE).arg("chain-id", chain_id)
        ).run_with_output()
        self.cli().cmd("collect-gentxs").run_with_output()

        self._patch_genesis()
        self._patch_toml(
            self.home / "config" / "config.toml",
            {r'^timeout_commit = ".*"$': 'timeout_commit = "1s"'},
        )
        self._patch_toml(
            self.home / "config" / "app.toml",
            {r'^minimum-gas-prices = ".*"$': f'minimum-gas-prices = "0{DENOM}"'},
        )

    def _patch_genesis(self) -> None:
        path = self.home / "config" / "genesis.json"
        genesis = _parse_json(path.read_text(encoding="utf-8"), str(path))
        genesis = _replace_value(genesis, "stake", DENOM)
        path.write_text(json.dumps(genesis, indent=2), encoding="utf-8")

    @staticmethod
    def _patch_toml(path: Path, replacements: t.Dict[str, str]) -> None:
        content = path.read_text(encoding="utf-8")
        for pattern, value in replacements.items():
            content = re.sub(pattern, value, content, flags=re.MULTILINE)
        path.write_text(content, encoding="utf-8")

    def start(self, addr_base: str, port_base: int, label: str = "NODE") -> t.Tuple[AgentHandle, Endpoint]:
        """
        Spawn the node on the port block starting at `port_base`.
        Returns as soon as the process exists; the caller owns settling.
        """
        ports = node_ports(port_base)
        host = _host(addr_base)
        node = (
            self.cli()
            .cmd("start")
            .arg("rpc.laddr", f"{addr_base}:{ports.rpc}")
            .arg("grpc.address", f"{host}:{ports.grpc}")
            .arg("p2p.laddr", f"{addr_base}:{ports.p2p}")
            .flag("api.enable")
            .arg("api.address", f"{addr_base}:{ports.api}")
            .arg("rpc.pprof_laddr", f"localhost:{ports.pprof}")
            .arg("grpc-web.address", f"{host}:{ports.grpc_web}")
            .spawn(label)
        )
        return node, Endpoint.local(ports)

    # ---------- keys ----------
    def add_key(self, name: str, mnemonic: str) -> None:
        self._keyring(self.cli().cmd("keys").cmd("add").cmd(name).flag("recover")).run_with_output(
            stdin=f"{mnemonic}\n"
        )

    def get_addr(self, name: str) -> str:
        out = self._keyring(self.cli().cmd("keys").cmd("show").cmd(name).flag("address")).run_with_output()
        return out.strip()

    def decode_addr(self, addr: str) -> bytes:
        """Raw bytes behind a bech32 address."""
        out = self.cli().cmd("debug").cmd("addr").cmd(addr).run_with_output(include_stderr=True)
        match = re.search(r"Address \(hex\):\s*([0-9A-Fa-f]+)", out)
        if match is None:
            raise SetupError(f"Could not decode address {addr}: {out.strip()}")
        return bytes.fromhex(match.group(1))

    # ---------- transactions ----------
    def _tx(self, program: Program, endpoint: Endpoint, sender: str) -> Program:
        if self.chain_id is None:
            raise SetupError(f"Chain id unknown for node at {self.home}")
        return self._keyring(
            program.arg("from", sender)
            .arg("node", endpoint.rpc_addr)
            .arg("chain-id", self.chain_id)
            .arg("gas", "auto")
            .arg("gas-adjustment", GAS_ADJUSTMENT)
            .arg("gas-prices", GAS_PRICES)
            .arg("broadcast-mode", "sync")
            .arg("output", "json")
            .flag("yes")
        )

    def _broadcast(self, program: Program, endpoint: Endpoint) -> t.Dict[str, t.Any]:
        resp = _parse_json(program.run_with_output(), "broadcast")
        if int(resp.get("code", 0)) != 0:
            raise SetupError(f"Transaction rejected (code {resp.get('code')}): {resp.get('raw_log')}")
        return self.wait_tx(endpoint, resp["txhash"])

    def wait_tx(self, endpoint: Endpoint, txhash: str) -> t.Dict[str, t.Any]:
        """
        Block until the tx is in a block, then check its result code.

        Raises:
            SetupError: the tx never showed up or executed with a non-zero code.
        """
        deadline = time.monotonic() + TX_CONFIRM_TIMEOUT_SECS
        query = self.cli().cmd("query").cmd("tx").cmd(txhash).arg("node", endpoint.rpc_addr).arg("output", "json")
        while True:
            try:
                tx = _parse_json(query.run_with_output(), "tx query")
                break
            except SetupError:
                # not indexed yet
                if time.monotonic() > deadline:
                    raise SetupError(f"Transaction {txhash} not confirmed within {TX_CONFIRM_TIMEOUT_SECS}s")
                time.sleep(TX_POLL_INTERVAL_SECS)

        if int(tx.get("code", 0)) != 0:
            raise SetupError(f"Transaction {txhash} failed (code {tx.get('code')}): {tx.get('raw_log')}")
        return tx

    def store_codes(self, endpoint: Endpoint, sender: str, codes: t.Dict[str, Path]) -> t.Dict[str, int]:
        """
        Upload every wasm artifact.

        Returns:
            Artifact name -> code id.
        """
        code_ids: t.Dict[str, int] = {}
        for name, path in sorted(codes.items()):
            program = self.cli().cmd("tx").cmd("wasm").cmd("store").cmd(path)
            tx = self._broadcast(self._tx(program, endpoint, sender), endpoint)
            code_ids[name] = int(find_attribute(tx, "store_code", "code_id"))
            print(f"[Node] Stored {name} as code {code_ids[name]}")
        return code_ids

    def wasm_init(
        self,
        endpoint: Endpoint,
        sender: str,
        admin: t.Optional[str],
        code_id: int,
        init_msg: t.Dict[str, t.Any],
        label: str,
    ) -> str:
        """Instantiate a contract and return its address."""
        program = (
            self.cli()
            .cmd("tx")
            .cmd("wasm")
            .cmd("instantiate")
            .cmd(code_id)
            .cmd(json.dumps(init_msg))
            .arg("label", label)
        )
        program = program.arg("admin", admin) if admin else program.flag("no-admin")
        tx = self._broadcast(self._tx(program, endpoint, sender), endpoint)
        return find_attribute(tx, "instantiate", "_contract_address")

    def wasm_execute(
        self,
        endpoint: Endpoint,
        sender: str,
        contract: str,
        execute_msg: t.Dict[str, t.Any],
        funds: t.Optional[str] = None,
    ) -> t.Dict[str, t.Any]:
        """Execute a contract message; `funds` is a coin string such as '100inj'."""
        program = self.cli().cmd("tx").cmd("wasm").cmd("execute").cmd(contract).cmd(json.dumps(execute_msg))
        if funds:
            program = program.arg("amount", funds)
        return self._broadcast(self._tx(program, endpoint, sender), endpoint)

    def wasm_query(self, endpoint: Endpoint, contract: str, query_msg: t.Dict[str, t.Any]) -> t.Any:
        out = (
            self.cli()
            .cmd("query")
            .cmd("wasm")
            .cmd("contract-state")
            .cmd("smart")
            .cmd(contract)
            .cmd(json.dumps(query_msg))
            .arg("node", endpoint.rpc_addr)
            .arg("output", "json")
            .run_with_output()
        )
        return _parse_json(out, "wasm query").get("data")
