"""Genesis descriptor assembly.

The descriptor is everything the validator service needs to create a fresh
ledger: network ports, RPC settings, programs, seeded accounts and clock
parameters. Account seeding runs in a fixed order so that caller-supplied raw
accounts always win:

1. the faucet's operating balance
2. one system account per funded address at `initial_balance`
3. `seed_accounts`, last-write-wins by address
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Tuple

from solders.pubkey import Pubkey

from validator_runner.config.models import (
    AccountState,
    EpochSchedule,
    ProgramDescriptor,
    RunnerConfig,
)
from validator_runner.ports.registry import PortSet
from validator_runner.shared.units import sol_to_lamports

FAUCET_OPERATING_BALANCE = sol_to_lamports(1_000_000.0)
LOCALHOST = "127.0.0.1"


@dataclass
class GenesisDescriptor:
    rpc_port: int
    pubsub_port: int
    gossip_port: int
    port_range: Tuple[int, int]
    faucet_address: Tuple[str, int]
    faucet_pubkey: Pubkey
    warp_slot: int
    epoch_schedule: EpochSchedule
    enable_rpc_transaction_history: bool = True
    programs: List[ProgramDescriptor] = field(default_factory=list)
    accounts: Dict[Pubkey, AccountState] = field(default_factory=dict)

    def add_account(self, address: Pubkey, account: AccountState) -> "GenesisDescriptor":
        self.accounts[address] = account
        return self

    def add_accounts(self, accounts) -> "GenesisDescriptor":
        items = accounts.items() if isinstance(accounts, dict) else accounts
        for address, account in items:
            self.accounts[address] = account
        return self

    def account(self, address: Pubkey) -> AccountState | None:
        return self.accounts.get(address)

    @property
    def faucet_port(self) -> int:
        return self.faucet_address[1]


def build_genesis(config: RunnerConfig, ports: PortSet, faucet_pubkey: Pubkey) -> GenesisDescriptor:
    """Assemble the genesis descriptor for one runner."""
    genesis = GenesisDescriptor(
        rpc_port=ports.rpc,
        pubsub_port=ports.pubsub,
        gossip_port=ports.gossip_range[0],
        port_range=ports.gossip_range,
        faucet_address=(LOCALHOST, ports.faucet),
        faucet_pubkey=faucet_pubkey,
        # Without warping, the first transfers against a fresh ledger fail with
        # "Attempt to debit an account but found no record of a prior credit".
        warp_slot=config.warp_slot,
        epoch_schedule=config.clock_schedule_override,
        programs=list(config.programs),
    )

    genesis.add_account(faucet_pubkey, AccountState.system(FAUCET_OPERATING_BALANCE))
    genesis.add_accounts(
        (address, AccountState.system(config.initial_balance))
        for address in config.funded_addresses
    )
    genesis.add_accounts(config.seed_accounts)
    return genesis


__all__ = ["FAUCET_OPERATING_BALANCE", "GenesisDescriptor", "build_genesis"]
