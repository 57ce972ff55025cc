"""
End-to-end orchestration for the interchain localnet.
Nodes -> contracts -> links -> agents -> traffic -> termination.
"""
import json
import tempfile
import time
import typing as t
from dataclasses import dataclass
from pathlib import Path

from config import (
    AGENT_SETTLE_SECS,
    DEBUG,
    MIN_NODE_COUNT,
    NODE_SETTLE_SECS,
    POLL_INTERVAL_SECS,
    SHUTDOWN_GRACE_SECS,
    TIMEOUT_SECS,
    get_cli_path_override,
    get_codes_path_override,
    get_node_count,
    get_relayer_metrics_port,
    get_rust_workspace,
    get_topology,
    skip_build,
)
from .agents import AgentConfig, build_agents, launch_relayer, launch_validator, write_agent_config
from .deployer import ContractDeployer
from .errors import MetricsUnavailable, SetupError, TerminationTimeout
from .identity import KeyManager, KeyProvisioning
from .injector import MessageDispatcher
from .link import NetworkLinker
from .metrics import MetricsClient
from .monitor import MonitorStatus, TerminationMonitor
from .node import ChainNetwork, NodeConfig, launch_node
from .program import ProcessStack
from .source import install_cosmos, sources_from_env


@dataclass(frozen=True)
class E2ESettings:
    node_count: int
    workspace: Path
    cli_path: t.Optional[str] = None
    codes_path: t.Optional[str] = None
    build: bool = True
    debug: bool = DEBUG
    timeout: float = TIMEOUT_SECS
    poll_interval: float = POLL_INTERVAL_SECS
    node_settle_secs: float = NODE_SETTLE_SECS
    agent_settle_secs: float = AGENT_SETTLE_SECS
    shutdown_grace_secs: t.Optional[float] = SHUTDOWN_GRACE_SECS

    def __post_init__(self) -> None:
        if self.node_count < MIN_NODE_COUNT:
            raise SetupError(
                f"node_count must be at least {MIN_NODE_COUNT} to dispatch any message, got {self.node_count}"
            )

    @classmethod
    def from_env(cls) -> "E2ESettings":
        return cls(
            node_count=get_node_count(),
            workspace=get_rust_workspace(),
            cli_path=get_cli_path_override(),
            codes_path=get_codes_path_override(),
            build=not skip_build(),
        )


def bring_up_networks(
    topology: t.Sequence[t.Dict[str, t.Any]],
    cli_path: Path,
    codes: t.Dict[str, Path],
    keys: KeyProvisioning,
    stack: ProcessStack,
    settle_secs: float = NODE_SETTLE_SECS,
) -> t.List[ChainNetwork]:
    """
    Launch every node (strictly one after another), then deploy on each.
    """
    launches = []
    for entry in topology:
        node_config = NodeConfig.from_topology(entry, cli_path, codes)
        launches.append((entry, launch_node(node_config, keys, stack, settle_secs=settle_secs)))

    networks = []
    for entry, launch in launches:
        deployer = ContractDeployer(launch.cli(cli_path), launch.endpoint)
        deployments = deployer.deploy(keys.deployer, launch.codes, entry["domain"])
        networks.append(
            ChainNetwork(
                launch=launch,
                deployments=deployments,
                chain_id=entry["chain_id"],
                metrics_port=entry["metrics_port"],
                domain=entry["domain"],
            )
        )
    return networks


def run_locally(
    settings: E2ESettings,
    keys: KeyProvisioning,
    sleep: t.Callable[[float], None] = time.sleep,
) -> MonitorStatus:
    """
    Run the whole scenario once.

    Every process started along the way belongs to one ProcessStack and is
    terminated when this function leaves it, whatever the outcome.

    Returns:
        MonitorStatus.SUCCEEDED.

    Raises:
        SetupError: a fixture step failed.
        TerminationTimeout: the relayer did not certify delivery in time.
    """
    if settings.build:
        build_agents(settings.workspace)

    cli_src, code_src = sources_from_env(settings.cli_path, settings.codes_path)
    cli_path, codes = install_cosmos(cli_src, code_src)

    topology = get_topology(settings.node_count)
    identities = KeyManager(keys)
    relayer_metrics_port = get_relayer_metrics_port(settings.node_count)

    with ProcessStack(grace_secs=settings.shutdown_grace_secs) as stack:
        networks = bring_up_networks(
            topology, cli_path, codes, keys, stack, settle_secs=settings.node_settle_secs
        )

        linker = NetworkLinker(cli_path, keys.linker, identities.validator_address(keys.validator))
        linker.link_all(networks)

        print(json.dumps({n.domain: n.deployments.as_dict() for n in networks}, indent=2))

        # export agent config
        config_dir = Path(tempfile.mkdtemp(prefix="agent-config-"))
        agent_configs = {
            n.name: AgentConfig.from_network(n, identities.signer_key(keys.relayer), n.cli(cli_path))
            for n in networks
        }
        agent_config_path = write_agent_config(agent_configs, config_dir)

        validator_key = identities.signer_key(keys.validator)
        tasks = [
            launch_validator(cfg, validator_key, agent_config_path, settings.workspace, settings.debug)
            for cfg in agent_configs.values()
        ]
        tasks.append(
            launch_relayer(
                agent_config_path,
                list(agent_configs),
                relayer_metrics_port,
                settings.workspace,
                settings.debug,
            )
        )
        stack.adopt_tasks(tasks)

        # give things a chance to fully start.
        sleep(settings.agent_settle_secs)

        metrics = MetricsClient(relayer_metrics_port)
        try:
            starting_relayer_balance = metrics.agent_balance_sum()
        except MetricsUnavailable as e:
            raise SetupError(f"Relayer did not report a starting balance: {e}") from e

        dispatcher = MessageDispatcher(cli_path, keys.linker)
        dispatched = dispatcher.dispatch_all(networks)
        print(f"[E2E] Dispatched {dispatched} messages, waiting for delivery...")

        monitor = TerminationMonitor.start(
            metrics,
            messages_expected=dispatched,
            starting_relayer_balance=starting_relayer_balance,
            timeout=settings.timeout,
            poll_interval=settings.poll_interval,
            sleep=sleep,
        )
        status = monitor.run()

    if status is MonitorStatus.TIMED_OUT:
        raise TerminationTimeout(f"E2E tests failed: no delivery certificate within {settings.timeout}s")
    print("[E2E] E2E tests passed")
    return status
