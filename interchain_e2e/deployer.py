"""
Contract deployment for the interchain e2e harness.
Instantiates the cw-hyperlane suite on one node, in dependency order.
"""
import typing as t
from dataclasses import asdict, dataclass

from config import BECH32_PREFIX, DENOM, IGP_DEFAULT_GAS_USAGE
from .cli import Endpoint, InjectiveCLI
from .errors import SetupError

# Artifact names (wasm file stems) the deployer needs
CODE_MAILBOX = "hpl_mailbox"
CODE_IGP = "hpl_igp"
CODE_IGP_ORACLE = "hpl_igp_oracle"
CODE_ISM_ROUTING = "hpl_ism_routing"
CODE_ISM_MULTISIG = "hpl_ism_multisig"
CODE_HOOK_MERKLE = "hpl_hook_merkle"
CODE_VALIDATOR_ANNOUNCE = "hpl_validator_announce"
CODE_MOCK_RECEIVER = "hpl_test_mock_msg_receiver"

REQUIRED_CODES = (
    CODE_MAILBOX,
    CODE_IGP,
    CODE_IGP_ORACLE,
    CODE_ISM_ROUTING,
    CODE_ISM_MULTISIG,
    CODE_HOOK_MERKLE,
    CODE_VALIDATOR_ANNOUNCE,
    CODE_MOCK_RECEIVER,
)


@dataclass(frozen=True)
class Deployments:
    """Contract addresses of one network's deployment. Written once."""

    mailbox: str
    hook_igp: str
    hook_igp_oracle: str
    ism_routing: str
    ism_multisig: str
    hook_merkle: str
    va: str
    mock_receiver: str

    def as_dict(self) -> t.Dict[str, str]:
        return asdict(self)


class ContractDeployer:
    """
    Manages instantiation of the contract suite on a single node.
    """

    def __init__(self, cli: InjectiveCLI, endpoint: Endpoint) -> None:
        self.cli = cli
        self.endpoint = endpoint

    def deploy(self, deployer: str, codes: t.Dict[str, int], domain: int) -> Deployments:
        """
        Instantiate every contract for `domain`.

        Order: mailbox, then gas paymaster and its oracle, then the ISMs, then
        the merkle hook, then the mailbox wiring, then the validator announce
        and mock receiver. Each step waits for its receipt before the next.

        Args:
            deployer: Keyring name that signs, owns and administers everything.
            codes: Artifact name -> code id, as returned by store_codes.
            domain: The network's protocol domain id.

        Returns:
            The populated deployment map.
        """
        missing = [name for name in REQUIRED_CODES if name not in codes]
        if missing:
            raise SetupError(f"Missing contract artifacts for domain {domain}: {missing}")

        owner = self.cli.get_addr(deployer)

        # Helper to instantiate a single contract
        def deploy_contract(code_name: str, init_msg: t.Dict[str, t.Any], label: str) -> str:
            addr = self.cli.wasm_init(self.endpoint, deployer, owner, codes[code_name], init_msg, label)
            print(f"[Deploy] {domain}: {label} at {addr}")
            return addr

        # core
        mailbox = deploy_contract(
            CODE_MAILBOX,
            {"hrp": BECH32_PREFIX, "owner": owner, "domain": domain},
            "hpl_mailbox",
        )

        # gas payments
        hook_igp = deploy_contract(
            CODE_IGP,
            {
                "hrp": BECH32_PREFIX,
                "owner": owner,
                "gas_token": DENOM,
                "beneficiary": owner,
                "default_gas_usage": IGP_DEFAULT_GAS_USAGE,
            },
            "hpl_igp",
        )
        hook_igp_oracle = deploy_contract(CODE_IGP_ORACLE, {"owner": owner}, "hpl_igp_gas_oracle")

        # security: routing ISM starts empty; remote domains are routed at link time
        ism_routing = deploy_contract(CODE_ISM_ROUTING, {"owner": owner, "isms": []}, "hpl_routing_ism")
        ism_multisig = deploy_contract(CODE_ISM_MULTISIG, {"owner": owner}, "hpl_multisig_ism")

        # hooks
        hook_merkle = deploy_contract(
            CODE_HOOK_MERKLE, {"owner": owner, "mailbox": mailbox}, "hpl_hook_merkle"
        )

        # wire the mailbox
        for msg in (
            {"set_default_ism": {"ism": ism_routing}},
            {"set_default_hook": {"hook": hook_igp}},
            {"set_required_hook": {"hook": hook_merkle}},
        ):
            self.cli.wasm_execute(self.endpoint, deployer, mailbox, msg)

        # endpoints
        va = deploy_contract(
            CODE_VALIDATOR_ANNOUNCE,
            {"hrp": BECH32_PREFIX, "mailbox": mailbox},
            "hpl_validator_announce",
        )
        mock_receiver = deploy_contract(
            CODE_MOCK_RECEIVER, {"hrp": BECH32_PREFIX}, "hpl_test_mock_msg_receiver"
        )

        return Deployments(
            mailbox=mailbox,
            hook_igp=hook_igp,
            hook_igp_oracle=hook_igp_oracle,
            ism_routing=ism_routing,
            ism_multisig=ism_multisig,
            hook_merkle=hook_merkle,
            va=va,
            mock_receiver=mock_receiver,
        )
