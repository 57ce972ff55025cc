"""
Node lifecycle for the interchain e2e harness.
Chain node bring-up: genesis, start, settle & code upload.
"""
import tempfile
import time
import typing as t
from dataclasses import dataclass
from pathlib import Path

from config import MONIKER, NODE_ADDR_BASE, NODE_SETTLE_SECS
from .cli import Endpoint, InjectiveCLI
from .deployer import Deployments
from .errors import SetupError
from .identity import KeyProvisioning
from .program import AgentHandle, ProcessStack


@dataclass(frozen=True)
class NodeConfig:
    cli_path: Path
    codes: t.Dict[str, Path]
    node_port_base: int
    chain_id: str
    cli_chain_id: str
    node_addr_base: str = NODE_ADDR_BASE
    moniker: str = MONIKER
    home_path: t.Optional[Path] = None
    label: str = "NODE"

    @classmethod
    def from_topology(
        cls, entry: t.Dict[str, t.Any], cli_path: Path, codes: t.Dict[str, Path]
    ) -> "NodeConfig":
        return cls(
            cli_path=cli_path,
            codes=codes,
            node_port_base=entry["port_base"],
            chain_id=entry["chain_id"],
            cli_chain_id=entry["cli_chain_id"],
            label=f"NODE{entry['index']}",
        )


@dataclass
class NodeLaunch:
    node: AgentHandle
    endpoint: Endpoint
    codes: t.Dict[str, int]
    home_path: Path
    cli_chain_id: str

    def cli(self, bin: t.Union[str, Path]) -> InjectiveCLI:
        return InjectiveCLI(bin, self.home_path, self.cli_chain_id)


@dataclass
class ChainNetwork:
    """
    One running chain with the contract suite deployed on it.

    The node process itself is owned by the ProcessStack it was adopted
    into, not by this object.
    """

    launch: NodeLaunch
    deployments: Deployments
    chain_id: str
    metrics_port: int
    domain: int

    @property
    def name(self) -> str:
        return self.chain_id

    @property
    def endpoint(self) -> Endpoint:
        return self.launch.endpoint

    def cli(self, bin: t.Union[str, Path]) -> InjectiveCLI:
        return self.launch.cli(bin)


def launch_node(
    config: NodeConfig,
    keys: KeyProvisioning,
    stack: ProcessStack,
    settle_secs: float = NODE_SETTLE_SECS,
    cli_factory: t.Callable[..., InjectiveCLI] = InjectiveCLI,
    sleep: t.Callable[[float], None] = time.sleep,
) -> NodeLaunch:
    """
    Bring up one node and upload the contract artifacts to it.

    The node process is adopted into `stack` the moment it exists, so a
    failure in any later step still tears it down.

    Raises:
        SetupError: any step failed. There is no retry; a broken node
            invalidates the whole run.
    """
    if config.home_path is not None:
        home_path = Path(config.home_path)
        home_path.mkdir(parents=True, exist_ok=True)
    else:
        home_path = Path(tempfile.mkdtemp(prefix=f"{config.cli_chain_id}-"))

    cli = cli_factory(config.cli_path, home_path)
    print(f"[Node] Initializing {config.cli_chain_id} in {home_path}")
    cli.init(config.moniker, config.cli_chain_id, keys, keys.deployer)

    print(f"[Node] Starting {config.cli_chain_id} on port base {config.node_port_base}...")
    node, endpoint = cli.start(config.node_addr_base, config.node_port_base, label=config.label)
    stack.adopt(node)

    # Give the node time to produce blocks before anything queries it.
    sleep(settle_secs)
    if not node.is_running():
        raise SetupError(f"{config.cli_chain_id} exited during startup (code {node.proc.returncode})")
    print(f"[Node] Started {config.cli_chain_id} (PID: {node.pid}) at {endpoint.rpc_addr}")

    code_ids = cli.store_codes(endpoint, keys.deployer, config.codes)
    return NodeLaunch(
        node=node,
        endpoint=endpoint,
        codes=code_ids,
        home_path=home_path,
        cli_chain_id=config.cli_chain_id,
    )
