"""
Agent supervision for the interchain e2e harness.
Builds, configures & launches the validator and relayer binaries.
"""
import json
import tempfile
import typing as t
from dataclasses import dataclass
from pathlib import Path

from web3 import Web3

from config import (
    AGENT_BIN_PATH,
    AGENT_BUILD_BINS,
    AGENT_BUILD_FEATURES,
    AGENT_GAS_PRICE,
    ADDR_LENGTH,
    BECH32_PREFIX,
    DENOM,
    GAS_PAYMENT_ENFORCEMENT,
)
from .cli import InjectiveCLI
from .node import ChainNetwork
from .program import AgentHandle, Program, as_task

AGENT_CONFIG_FILENAME = "config.json"


@dataclass(frozen=True)
class AgentConfig:
    """
    One chain's section of the shared agent configuration file.
    Contract addresses are 0x-prefixed hex of the raw address bytes.
    """

    name: str
    domain_id: int
    metrics_port: int
    chain_id: str
    rpc_url: str
    grpc_url: str
    mailbox: str
    interchain_gas_paymaster: str
    validator_announce: str
    merkle_tree_hook: str
    signer_key: str
    signer_type: str = "cosmosKey"

    @classmethod
    def from_network(cls, network: ChainNetwork, signer_key: str, cli: InjectiveCLI) -> "AgentConfig":
        def hex_addr(addr: str) -> str:
            return Web3.to_hex(cli.decode_addr(addr))

        deployments = network.deployments
        return cls(
            name=network.name,
            domain_id=network.domain,
            metrics_port=network.metrics_port,
            chain_id=network.launch.cli_chain_id,
            rpc_url=network.endpoint.rpc_addr,
            grpc_url=network.endpoint.grpc_addr,
            mailbox=hex_addr(deployments.mailbox),
            interchain_gas_paymaster=hex_addr(deployments.hook_igp),
            validator_announce=hex_addr(deployments.va),
            merkle_tree_hook=hex_addr(deployments.hook_merkle),
            signer_key=signer_key,
        )

    def to_dict(self) -> t.Dict[str, t.Any]:
        return {
            "name": self.name,
            "domainId": self.domain_id,
            "metricsPort": self.metrics_port,
            "mailbox": self.mailbox,
            "interchainGasPaymaster": self.interchain_gas_paymaster,
            "validatorAnnounce": self.validator_announce,
            "merkleTreeHook": self.merkle_tree_hook,
            "protocol": "cosmos",
            "chainId": self.chain_id,
            "rpcUrls": [{"http": self.rpc_url}],
            "grpcUrls": [{"http": self.grpc_url}],
            "bech32Prefix": BECH32_PREFIX,
            "signer": {"type": self.signer_type, "key": self.signer_key, "prefix": BECH32_PREFIX},
            "index": {"from": 1, "chunk": 5},
            "blocks": {"reorgPeriod": 1, "confirmations": 1},
            "gasPrice": {"denom": DENOM, "amount": AGENT_GAS_PRICE},
            "contractAddressBytes": ADDR_LENGTH,
            "canonicalAsset": DENOM,
        }


def write_agent_config(configs: t.Dict[str, AgentConfig], config_dir: t.Union[str, Path]) -> Path:
    """
    Write the merged configuration every agent reads.

    Returns:
        Path of the written file.
    """
    path = Path(config_dir) / AGENT_CONFIG_FILENAME
    payload = {"chains": {name: cfg.to_dict() for name, cfg in configs.items()}}
    path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    print(f"[Agents] Wrote agent config for {sorted(configs)} to {path}")
    return path


def build_agents(workspace: Path) -> None:
    """Compile the agent binaries (blocking)."""
    print("[Agents] Building rust...")
    program = Program("cargo").cmd("build").working_dir(workspace).arg("features", AGENT_BUILD_FEATURES)
    for bin_name in AGENT_BUILD_BINS:
        program = program.arg("bin", bin_name)
    program.filter_logs(lambda line: "workspace-inheritance" not in line).run().join()


def _tracing_level(debug: bool) -> str:
    return "debug" if debug else "info"


def validator_program(
    agent_config: AgentConfig,
    validator_key: str,
    agent_config_path: Path,
    workspace: Path,
    base_dir: Path,
    debug: bool,
) -> Program:
    """
    The validator invocation for one origin chain. It signs checkpoints and
    announcements with `validator_key` rather than the chain signer from the
    shared config. `base_dir` holds its database, checkpoints and signatures
    and must be fresh per run.
    """
    db_path = base_dir / "db"
    db_path.mkdir(parents=True, exist_ok=True)
    checkpoint_path = base_dir / "checkpoint"
    signature_path = base_dir / "signature"

    return (
        Program(workspace / AGENT_BIN_PATH / "validator")
        .working_dir(workspace)
        .env("CONFIG_FILES", agent_config_path)
        .env("MY_VALIDATOR_SIGNATURE_DIRECTORY", signature_path)
        .env("RUST_BACKTRACE", "1")
        .hyp_env("CHECKPOINTSYNCER_PATH", checkpoint_path)
        .hyp_env("CHECKPOINTSYNCER_TYPE", "localStorage")
        .hyp_env("ORIGINCHAINNAME", agent_config.name)
        .hyp_env("DB", db_path)
        .hyp_env("METRICSPORT", agent_config.metrics_port)
        .hyp_env("VALIDATOR_SIGNER_TYPE", agent_config.signer_type)
        .hyp_env("VALIDATOR_KEY", validator_key)
        .hyp_env("VALIDATOR_PREFIX", BECH32_PREFIX)
        .hyp_env("SIGNER_SIGNER_TYPE", "hexKey")
        .hyp_env("SIGNER_KEY", validator_key)
        .hyp_env("TRACING_LEVEL", _tracing_level(debug))
    )


def relayer_program(
    agent_config_path: Path,
    relay_chains: t.Sequence[str],
    metrics_port: int,
    workspace: Path,
    db_path: Path,
    debug: bool,
) -> Program:
    """The single relayer serving every chain in `relay_chains`."""
    return (
        Program(workspace / AGENT_BIN_PATH / "relayer")
        .working_dir(workspace)
        .env("CONFIG_FILES", agent_config_path)
        .env("RUST_BACKTRACE", "1")
        .hyp_env("RELAYCHAINS", ",".join(relay_chains))
        .hyp_env("DB", db_path)
        .hyp_env("ALLOWLOCALCHECKPOINTSYNCERS", "true")
        .hyp_env("TRACING_LEVEL", _tracing_level(debug))
        .hyp_env("GASPAYMENTENFORCEMENT", GAS_PAYMENT_ENFORCEMENT)
        .hyp_env("METRICSPORT", metrics_port)
    )


@as_task
def launch_validator(
    agent_config: AgentConfig,
    validator_key: str,
    agent_config_path: Path,
    workspace: Path,
    debug: bool,
) -> AgentHandle:
    base_dir = Path(tempfile.mkdtemp(prefix=f"validator-{agent_config.domain_id}-"))
    print(f"[Agents] Validator DB: {base_dir / 'db'}")
    program = validator_program(agent_config, validator_key, agent_config_path, workspace, base_dir, debug)
    return program.spawn(f"VAL{agent_config.domain_id}")


@as_task
def launch_relayer(
    agent_config_path: Path,
    relay_chains: t.Sequence[str],
    metrics_port: int,
    workspace: Path,
    debug: bool,
) -> AgentHandle:
    db_path = Path(tempfile.mkdtemp(prefix="relayer-"))
    program = relayer_program(agent_config_path, relay_chains, metrics_port, workspace, db_path, debug)
    return program.spawn("RLY")
