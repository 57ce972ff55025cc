"""
Key provisioning for the interchain e2e harness.
Deterministic signing keys derived from injected mnemonics.
"""
import json
import typing as t
from dataclasses import dataclass
from pathlib import Path

from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import Web3

from .errors import SetupError

Account.enable_unaudited_hdwallet_features()

# Injective accounts use the Ethereum coin type.
DEFAULT_ACCOUNT_PATH = "m/44'/60'/0'/0/0"


@dataclass(frozen=True)
class NamedKey:
    name: str
    mnemonic: str


@dataclass(frozen=True)
class KeyProvisioning:
    """
    Key material handed to the orchestrator.

    Every entry in `keys` is imported into each node's keyring and funded at
    genesis. The role fields name which key deploys contracts, sends linking
    transactions, signs checkpoints and relays.
    """

    keys: t.Tuple[NamedKey, ...]
    deployer: str
    linker: str
    validator: str
    relayer: str

    def __post_init__(self) -> None:
        names = self.names
        if len(set(names)) != len(names):
            raise SetupError(f"Duplicate key names in provisioning: {names}")
        for role in ("deployer", "linker", "validator", "relayer"):
            if getattr(self, role) not in names:
                raise SetupError(f"Key for role '{role}' ({getattr(self, role)}) is not provisioned")

    @classmethod
    def from_dict(cls, data: t.Dict[str, t.Any]) -> "KeyProvisioning":
        try:
            keys = tuple(NamedKey(k["name"], k["mnemonic"]) for k in data["keys"])
            roles = data["roles"]
            return cls(
                keys=keys,
                deployer=roles["deployer"],
                linker=roles["linker"],
                validator=roles["validator"],
                relayer=roles["relayer"],
            )
        except (KeyError, TypeError) as e:
            raise SetupError(f"Malformed key provisioning: missing {e}") from e

    @classmethod
    def from_file(cls, path: t.Union[str, Path]) -> "KeyProvisioning":
        path = Path(path)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise SetupError(f"Could not read key provisioning from {path}: {e}") from e
        return cls.from_dict(data)

    @property
    def names(self) -> t.List[str]:
        return [k.name for k in self.keys]

    def mnemonic(self, name: str) -> str:
        for key in self.keys:
            if key.name == name:
                return key.mnemonic
        raise SetupError(f"Unknown key: {name}")


class KeyManager:
    """
    Derives deterministic accounts from the provisioned mnemonics.
    """

    def __init__(self, provisioning: KeyProvisioning, account_path: str = DEFAULT_ACCOUNT_PATH) -> None:
        self.provisioning = provisioning
        self.account_path = account_path
        self._accounts: t.Dict[str, LocalAccount] = {}

    def get_account(self, name: str) -> LocalAccount:
        """
        Derive the account for the named key at `account_path`.
        """
        if name not in self._accounts:
            mnemonic = self.provisioning.mnemonic(name)
            self._accounts[name] = Account.from_mnemonic(mnemonic, account_path=self.account_path)
        return self._accounts[name]

    def signer_key(self, name: str) -> str:
        """0x-prefixed hex private key, as agents expect in their signer config."""
        return Web3.to_hex(self.get_account(name).key)

    def validator_address(self, name: str) -> str:
        """
        The 20-byte checkpoint-signer address enrolled in multisig ISMs,
        lowercase hex without the 0x prefix.
        """
        return self.get_account(name).address[2:].lower()
