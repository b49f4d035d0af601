"""Start a local validator from the command line and hold it until interrupted.

    validator-runner --fund <address> --initial-sol 10 --commitment confirmed

Prints the RPC and pubsub URLs and the mint address as one JSON line, then
waits for SIGINT/SIGTERM and tears everything down.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import signal
import sys
from pathlib import Path
from typing import List, Optional

import bittensor as bt

from validator_runner.config.models import EpochSchedule, ProgramDescriptor, RunnerConfig, StageTimeouts
from validator_runner.config.settings import load_settings
from validator_runner.errors import RunnerError
from validator_runner.ports.registry import PortRegistry, PortSet
from validator_runner.runner.lifecycle import Runner
from validator_runner.shared.enums import Commitment
from validator_runner.shared.logging import configure_logging, setup_events_logger
from validator_runner.shared.units import sol_to_lamports


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="validator-runner", description=__doc__.splitlines()[0])
    parser.add_argument("--config", type=Path, help="YAML file with a `runner:` section")
    parser.add_argument("--rpc-port", type=int, help="explicit base port; pubsub=rpc+1, faucet=rpc+2, gossip from rpc+3")
    parser.add_argument("--fund", action="append", default=[], metavar="ADDRESS", help="address to fund at genesis (repeatable)")
    parser.add_argument("--initial-sol", type=float, help="genesis balance for every funded address, in SOL")
    parser.add_argument(
        "--program",
        action="append",
        default=[],
        nargs=2,
        metavar=("PROGRAM_ID", "SO_PATH"),
        help="upgradeable program to deploy at genesis (repeatable)",
    )
    parser.add_argument("--warp-slot", type=int)
    parser.add_argument("--slots-per-epoch", type=int, help="fixed-length epochs without warmup")
    parser.add_argument("--commitment", choices=[c.value for c in Commitment])
    parser.add_argument("--startup-timeout", type=float, help="bound on validator startup, in seconds")
    parser.add_argument("--log-level", help="TRACE, DEBUG, INFO or WARNING")
    return parser


def config_from_args(args: argparse.Namespace) -> RunnerConfig:
    base = RunnerConfig.from_yaml(args.config) if args.config else RunnerConfig()
    updates = {}
    if args.rpc_port is not None:
        updates["ports"] = PortSet.from_base(args.rpc_port)
    if args.fund:
        updates["funded_addresses"] = list(base.funded_addresses) + list(args.fund)
    if args.initial_sol is not None:
        updates["initial_balance"] = sol_to_lamports(args.initial_sol)
    if args.program:
        updates["programs"] = list(base.programs) + [
            ProgramDescriptor(program_id=program_id, binary_path=Path(path)) for program_id, path in args.program
        ]
    if args.warp_slot is not None:
        updates["warp_slot"] = args.warp_slot
    if args.slots_per_epoch is not None:
        updates["clock_schedule_override"] = EpochSchedule.without_warmup(args.slots_per_epoch)
    if args.commitment is not None:
        updates["commitment"] = Commitment(args.commitment)
    if args.startup_timeout is not None:
        updates["timeouts"] = StageTimeouts(
            faucet_ack=base.timeouts.faucet_ack,
            validator_start=args.startup_timeout,
            warmup=base.timeouts.warmup,
        )
    # Re-validate so the cross-field invariants run on the merged values.
    return RunnerConfig.model_validate({**dict(base), **updates})


async def serve(config: RunnerConfig, runner: Runner, stop: Optional[asyncio.Event] = None) -> int:
    """Run until `stop` is set; by default SIGINT/SIGTERM set it."""
    if stop is None:
        stop = asyncio.Event()
        loop = asyncio.get_running_loop()
        for signum in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(signum, stop.set)

    try:
        handle = await runner.run(config)
    except RunnerError as e:
        bt.logging.error({"validator_runner_failed": {"error_type": type(e).__name__, "error": str(e)}})
        return 1

    async with handle:
        print(
            json.dumps(
                {
                    "rpc_url": handle.rpc_url,
                    "pubsub_url": handle.pubsub_url,
                    "mint": str(handle.mint_keypair.pubkey()),
                    "ports": {
                        "rpc": handle.ports.rpc,
                        "pubsub": handle.ports.pubsub,
                        "faucet": handle.ports.faucet,
                        "gossip_range": list(handle.ports.gossip_range),
                    },
                }
            ),
            flush=True,
        )
        await stop.wait()
        bt.logging.info({"validator_runner": "shutting_down"})
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = load_settings(**({"log_level": args.log_level} if args.log_level else {}))
    configure_logging(settings.log_level)
    if settings.events_log_dir is not None:
        setup_events_logger(str(settings.events_log_dir), settings.events_retention_bytes)

    config = config_from_args(args)
    runner = Runner(registry=PortRegistry(), settings=settings)
    return asyncio.run(serve(config, runner))


if __name__ == "__main__":
    sys.exit(main())
