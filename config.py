"""
Configuration module for the interchain localnet e2e harness.
Single source of truth for topology & constants.
"""
import os
import typing as t
from pathlib import Path

# Environment overrides
ENV_CLI_PATH_KEY: str = "E2E_INJECTIVE_CLI_PATH"
ENV_CW_HYPERLANE_PATH_KEY: str = "E2E_CW_HYPERLANE_PATH"
ENV_KEYS_FILE_KEY: str = "E2E_KEYS_FILE"
ENV_RUST_WORKSPACE_KEY: str = "E2E_RUST_WORKSPACE"
ENV_SKIP_BUILD_KEY: str = "E2E_SKIP_BUILD"
ENV_NODE_COUNT_KEY: str = "E2E_NODE_COUNT"

# Release sources
INJECTIVE_CLI_GIT: str = "https://github.com/InjectiveLabs/injective-chain-releases"
INJECTIVE_CLI_VERSION: str = "1.12.1-1705909076"
CW_HYPERLANE_GIT: str = "https://github.com/yorhodes/cw-hyperlane"
CW_HYPERLANE_VERSION: str = "0.0.6-rc7"
DOWNLOAD_TIMEOUT_SECS: int = 300

# Chain parameters
CLI_BINARY_NAME: str = "injectived"
MONIKER: str = "localnet"
DENOM: str = "inj"
BECH32_PREFIX: str = "inj"
KEYRING_BACKEND: str = "test"
GENESIS_ACCOUNT_BALANCE: str = f"1000000000000000000000000{DENOM}"
GENTX_STAKE: str = f"1000000000000000000000{DENOM}"
GAS_PRICES: str = f"500000000{DENOM}"
GAS_ADJUSTMENT: float = 1.5
AGENT_GAS_PRICE: str = "500000000"
TX_CONFIRM_TIMEOUT_SECS: int = 60
TX_POLL_INTERVAL_SECS: float = 1.0

# Topology
NODE_COUNT: int = 2  # changeable
MIN_NODE_COUNT: int = 2  # one node has no peer to message
NODE_ADDR_BASE: str = "tcp://0.0.0.0"
PORT_START: int = 26600
PORT_STRIDE: int = 10  # ports reserved per node
METRICS_PORT_START: int = 9090
DOMAIN_START: int = 99990

# Timing
NODE_SETTLE_SECS: int = 10     # empirical: node needs this long before it answers queries
AGENT_SETTLE_SECS: int = 10
SHUTDOWN_GRACE_SECS: int = 10
TIMEOUT_SECS: int = 60 * 10
POLL_INTERVAL_SECS: int = 5

# Agents
AGENT_BIN_PATH: str = "target/debug"
AGENT_BUILD_FEATURES: str = "test-utils"
AGENT_BUILD_BINS: t.List[str] = ["relayer", "validator", "scraper", "init-db"]
DEBUG: bool = True
GAS_PAYMENT_ENFORCEMENT: str = '[{"type": "none"}]'

# Traffic
ADDR_LENGTH: int = 32
MSG_BODY: bytes = b"hello"
DISPATCH_AMOUNT: int = 25_000_000
IGP_DEFAULT_GAS_USAGE: int = 25_000
REMOTE_TOKEN_EXCHANGE_RATE: int = 10 ** 10
REMOTE_GAS_PRICE: int = 10 ** 9

# Metrics
METRIC_GAS_PAYMENTS: str = "hyperlane_contract_sync_stored_events"
METRIC_OPERATIONS_PROCESSED: str = "hyperlane_operations_processed_count"
METRIC_WALLET_BALANCE: str = "hyperlane_wallet_balance"
METRICS_HTTP_TIMEOUT_SECS: int = 5

DEFAULT_KEYS_FILE: Path = Path(__file__).parent / "keys.sample.json"


def get_cli_path_override() -> t.Optional[str]:
    """Locally built chain CLI, if one was supplied."""
    return os.environ.get(ENV_CLI_PATH_KEY) or None


def get_codes_path_override() -> t.Optional[str]:
    """Locally built contract artifact directory, if one was supplied."""
    return os.environ.get(ENV_CW_HYPERLANE_PATH_KEY) or None


def get_keys_file() -> Path:
    return Path(os.environ.get(ENV_KEYS_FILE_KEY) or DEFAULT_KEYS_FILE)


def get_rust_workspace() -> Path:
    return Path(os.environ.get(ENV_RUST_WORKSPACE_KEY) or ".")


def skip_build() -> bool:
    return os.environ.get(ENV_SKIP_BUILD_KEY, "").lower() in ("1", "true", "yes")


def get_node_count() -> int:
    raw = os.environ.get(ENV_NODE_COUNT_KEY)
    return int(raw) if raw else NODE_COUNT


def get_topology(node_count: int = NODE_COUNT) -> t.List[t.Dict[str, t.Any]]:
    """
    Generate a deterministic topology for the localnet.

    Every node gets a contiguous block of PORT_STRIDE ports, a metrics port
    and a domain derived from its index, so the same node_count always yields
    the same, non-overlapping layout.

    Returns:
        One dictionary per node, in launch order.
    """
    if node_count < 1:
        raise ValueError(f"node_count must be positive, got {node_count}")

    topology = []
    for i in range(node_count):
        domain = DOMAIN_START + i
        topology.append({
            "index": i,
            "name": f"injective{domain}",
            "chain_id": f"injective{domain}",
            "cli_chain_id": f"injective-{domain}",
            "domain": domain,
            "port_base": PORT_START + i * PORT_STRIDE,
            "metrics_port": METRICS_PORT_START + i,
        })
    return topology


def get_relayer_metrics_port(node_count: int = NODE_COUNT) -> int:
    """The relayer sits past every validator's metrics port."""
    return METRICS_PORT_START + node_count + 1
