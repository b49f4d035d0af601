from __future__ import annotations

import bittensor as bt
from solders.keypair import Keypair

from validator_runner.ports.probe import is_port_free
from validator_runner.services.ack import AckChannel, FaucetAck


class HostedFaucetService:
    """Faucet for validators that host their own faucet endpoint.

    `solana-test-validator` serves airdrops itself on `--faucet-port`. This
    worker only confirms, before the validator launches, that the reserved
    faucet port can be bound, and reports the outcome on the ack channel.
    The keypair it is handed is only logged: the binary generates and funds
    its own faucet key, so nothing signs with this one.
    """

    def __init__(self, host: str = "127.0.0.1"):
        self.host = host

    def run(self, keypair: Keypair, ack: AckChannel, port: int) -> None:
        if is_port_free(port, self.host):
            bt.logging.debug({"faucet_port_ok": {"port": port, "faucet": str(keypair.pubkey())}})
            ack.send(FaucetAck.bound())
        else:
            ack.send(FaucetAck.failed(f"faucet port {port} on {self.host} is already bound"))


__all__ = ["HostedFaucetService"]
