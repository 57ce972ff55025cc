"""
Network linking for the interchain e2e harness.
Registers each network as a trusted message origin on its peers.
"""
import typing as t
from pathlib import Path

from config import REMOTE_GAS_PRICE, REMOTE_TOKEN_EXCHANGE_RATE
from .errors import SetupError
from .node import ChainNetwork


class NetworkLinker:
    """
    Issues the routing/ISM configuration transactions between deployed networks.

    Usage:
        linker = NetworkLinker(cli_path, "validator", validator_address)
        linker.link_all(networks)
    """

    def __init__(self, bin: t.Union[str, Path], linker: str, validator_address: str) -> None:
        """
        Args:
            bin: Chain CLI binary.
            linker: Keyring name that owns the contracts being configured.
            validator_address: Checkpoint signer enrolled for every remote domain.
        """
        self.bin = bin
        self.linker = linker
        self.validator_address = validator_address.lower()

    def link(self, local: ChainNetwork, remote: ChainNetwork) -> None:
        """
        Configure `local` to pay for messages to `remote` and to accept
        messages from `remote`. One direction only.
        """
        cli = local.cli(self.bin)
        deployments = local.deployments
        print(f"[Link] {local.domain} <- {remote.domain}")

        msgs = [
            (
                deployments.hook_igp_oracle,
                {
                    "set_remote_gas_data_configs": {
                        "configs": [
                            {
                                "remote_domain": remote.domain,
                                "token_exchange_rate": str(REMOTE_TOKEN_EXCHANGE_RATE),
                                "gas_price": str(REMOTE_GAS_PRICE),
                            }
                        ]
                    }
                },
            ),
            (
                deployments.hook_igp,
                {"router": {"set_route": {"set": {"domain": remote.domain, "route": deployments.hook_igp_oracle}}}},
            ),
            (
                deployments.ism_multisig,
                {
                    "set_validators": {
                        "domain": remote.domain,
                        "threshold": 1,
                        "validators": [self.validator_address],
                    }
                },
            ),
            (
                deployments.ism_routing,
                {"set": {"ism": {"domain": remote.domain, "address": deployments.ism_multisig}}},
            ),
        ]
        for contract, msg in msgs:
            cli.wasm_execute(local.endpoint, self.linker, contract, msg)

    def link_pair(self, a: ChainNetwork, b: ChainNetwork) -> None:
        """Both directions, explicitly."""
        self.link(a, b)
        self.link(b, a)

    def is_linked(self, local: ChainNetwork, remote: ChainNetwork) -> bool:
        """Whether `local`'s multisig ISM has our validator enrolled for `remote`."""
        data = local.cli(self.bin).wasm_query(
            local.endpoint,
            local.deployments.ism_multisig,
            {"multisig_ism": {"enrolled_validators": {"domain": remote.domain}}},
        )
        enrolled = []
        for v in (data or {}).get("validators", []):
            v = v.lower()
            enrolled.append(v[2:] if v.startswith("0x") else v)
        return self.validator_address in enrolled

    def link_all(self, networks: t.Sequence[ChainNetwork]) -> None:
        """
        Link every unordered pair once (lower-triangular walk), then check
        that every ordered pair ended up linked.

        Raises:
            SetupError: some direction is not registered after linking.
        """
        for i, node in enumerate(networks):
            targets = networks[i + 1:]
            if targets:
                print(f"[Link] LINKING NODES: {node.domain} -> {[v.domain for v in targets]}")
            for target in targets:
                self.link_pair(node, target)

        missing = [
            (local.domain, remote.domain)
            for local in networks
            for remote in networks
            if local.domain != remote.domain and not self.is_linked(local, remote)
        ]
        if missing:
            raise SetupError(f"Networks not linked (local, remote): {missing}")
