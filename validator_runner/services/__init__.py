from .ack import AckChannel, ChannelClosed, FaucetAck
from .faucet import HostedFaucetService
from .interfaces import (
    ClientFactory,
    FaucetService,
    RpcClient,
    ValidatorHandle,
    ValidatorService,
)
from .solana_validator import (
    SolanaTestValidatorHandle,
    SolanaTestValidatorService,
    ValidatorProcessError,
)

__all__ = [
    "AckChannel",
    "ChannelClosed",
    "ClientFactory",
    "FaucetAck",
    "FaucetService",
    "HostedFaucetService",
    "RpcClient",
    "SolanaTestValidatorHandle",
    "SolanaTestValidatorService",
    "ValidatorHandle",
    "ValidatorProcessError",
    "ValidatorService",
]
