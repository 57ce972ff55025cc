"""
Message injection for the interchain e2e harness.
Dispatches one synthetic message over every ordered pair of networks.
"""
import typing as t
from pathlib import Path

from tqdm import tqdm

from config import ADDR_LENGTH, DENOM, DISPATCH_AMOUNT, MSG_BODY
from .errors import SetupError
from .node import ChainNetwork


def expected_dispatch_count(network_count: int) -> int:
    """Every ordered pair, no self-messages."""
    return network_count * (network_count - 1)


def pad_recipient(raw: bytes, length: int = ADDR_LENGTH) -> bytes:
    """Left-pad an address with zero bytes to the protocol's fixed width."""
    if len(raw) > length:
        raise SetupError(f"Recipient address is {len(raw)} bytes, longer than {length}")
    return bytes(length - len(raw)) + raw


def build_dispatch_msg(dest_domain: int, recipient: bytes, body: bytes) -> t.Dict[str, t.Any]:
    return {
        "dispatch": {
            "dest_domain": dest_domain,
            "recipient_addr": pad_recipient(recipient).hex(),
            "msg_body": body.hex(),
            "hook": None,
            "metadata": "",
        }
    }


class MessageDispatcher:
    """
    Submits mailbox dispatches and counts them.

    `dispatched` is the baseline the termination monitor compares against.
    """

    def __init__(
        self,
        bin: t.Union[str, Path],
        sender: str,
        amount: int = DISPATCH_AMOUNT,
        body: bytes = MSG_BODY,
    ) -> None:
        """
        Args:
            bin: Chain CLI binary.
            sender: Keyring name paying for the dispatches.
            amount: Native tokens attached to each dispatch for gas payment.
            body: Message body sent on every pair.
        """
        self.bin = bin
        self.sender = sender
        self.amount = amount
        self.body = body
        self.dispatched = 0

    def dispatch(self, source: ChainNetwork, target: ChainNetwork) -> None:
        """
        Send one message from `source`'s mailbox to `target`'s mock receiver.

        Raises:
            SetupError: the submission failed; without it the expected count
                is unknown, so the run cannot continue.
        """
        if source.domain == target.domain:
            raise SetupError(f"Refusing to dispatch from domain {source.domain} to itself")
        cli = source.cli(self.bin)
        recipient = cli.decode_addr(target.deployments.mock_receiver)
        msg = build_dispatch_msg(target.domain, recipient, self.body)
        cli.wasm_execute(
            source.endpoint,
            self.sender,
            source.deployments.mailbox,
            msg,
            funds=f"{self.amount}{DENOM}",
        )
        self.dispatched += 1

    def dispatch_all(self, networks: t.Sequence[ChainNetwork]) -> int:
        """
        Dispatch over every ordered (source, destination) pair.

        Returns:
            Total dispatched so far, N*(N-1) after one call on N networks.
        """
        pairs = [(s, d) for s in networks for d in networks if s.domain != d.domain]
        for node in networks:
            targets = [d.domain for s, d in pairs if s is node]
            if targets:
                print(f"[Dispatch] DISPATCHING MAILBOX: {node.domain} -> {targets}")

        with tqdm(total=len(pairs), unit="msg", desc="Dispatch") as pbar:
            for source, target in pairs:
                self.dispatch(source, target)
                pbar.update(1)
        return self.dispatched
