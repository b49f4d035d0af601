from .descriptor import FAUCET_OPERATING_BALANCE, GenesisDescriptor, build_genesis

__all__ = ["FAUCET_OPERATING_BALANCE", "GenesisDescriptor", "build_genesis"]
