"""Subprocess adapter for the `solana-test-validator` binary.

Turns a `GenesisDescriptor` into command-line flags, launches the binary in a
fresh ledger directory and waits until its RPC endpoint reports healthy.
"""

from __future__ import annotations

import asyncio
import json
import os
import shutil
import tempfile
from pathlib import Path
from typing import List, Optional, Tuple

import bittensor as bt
import httpx
from solders.keypair import Keypair

from validator_runner.client.rpc import SolanaRpcClient
from validator_runner.config.models import EpochSchedule
from validator_runner.config.settings import HarnessSettings
from validator_runner.errors import RpcError
from validator_runner.genesis.descriptor import GenesisDescriptor
from validator_runner.ports.probe import wait_for_port_listen
from validator_runner.shared.logging import validator_output_logger
from validator_runner.shared.units import LAMPORTS_PER_SOL

STOP_GRACE_SECONDS = 10.0


class ValidatorProcessError(RuntimeError):
    """The validator process could not be launched or exited during startup."""


def write_keypair(keypair: Keypair, path: Path) -> Path:
    """Write a keypair in the CLI's JSON byte-array format."""
    path.write_text(json.dumps(list(bytes(keypair))), encoding="utf-8")
    os.chmod(path, 0o600)
    return path


def build_validator_args(genesis: GenesisDescriptor, workdir: Path, mint: Keypair) -> List[str]:
    """Translate a genesis descriptor into `solana-test-validator` flags.

    The ledger lives in `workdir/ledger`; account files are written into
    `workdir/accounts`, outside the ledger that `--reset` wipes.

    The binary funds its own faucet key from `--faucet-sol`, so the genesis
    faucet account only sets that amount and gets no `--account` file.
    """
    if genesis.pubsub_port != genesis.rpc_port + 1:
        raise ValidatorProcessError(
            f"solana-test-validator serves pubsub on rpc+1; got rpc={genesis.rpc_port} "
            f"pubsub={genesis.pubsub_port}"
        )

    start, end = genesis.port_range
    args = [
        "--ledger", str(workdir / "ledger"),
        "--reset",
        "--rpc-port", str(genesis.rpc_port),
        "--gossip-port", str(genesis.gossip_port),
        "--dynamic-port-range", f"{start}-{end}",
        "--faucet-port", str(genesis.faucet_port),
        "--mint", str(mint.pubkey()),
        "--warp-slot", str(genesis.warp_slot),
    ]

    faucet_account = genesis.account(genesis.faucet_pubkey)
    if faucet_account is not None:
        args += ["--faucet-sol", str(faucet_account.lamports // LAMPORTS_PER_SOL)]

    if genesis.epoch_schedule != EpochSchedule():
        schedule = genesis.epoch_schedule
        if schedule.warmup or schedule.leader_schedule_slot_offset != schedule.slots_per_epoch:
            bt.logging.warning(
                {
                    "validator_epoch_schedule_approximated": {
                        "slots_per_epoch": schedule.slots_per_epoch,
                        "reason": "binary only supports fixed-length epochs without warmup",
                    }
                }
            )
        args += ["--slots-per-epoch", str(schedule.slots_per_epoch)]

    for program in genesis.programs:
        if program.is_upgradeable:
            args += [
                "--upgradeable-program",
                str(program.program_id),
                str(program.binary_path),
                str(program.upgrade_authority),
            ]
        else:
            args += ["--bpf-program", str(program.program_id), str(program.binary_path)]

    accounts_dir = workdir / "accounts"
    accounts_dir.mkdir(parents=True, exist_ok=True)
    for address, account in genesis.accounts.items():
        if address == genesis.faucet_pubkey:
            continue
        account_file = accounts_dir / f"{address}.json"
        account_file.write_text(json.dumps(account.to_cli_json(address)), encoding="utf-8")
        args += ["--account", str(address), str(account_file)]

    return args


class SolanaTestValidatorHandle:
    """A running `solana-test-validator` process."""

    def __init__(
        self,
        process: asyncio.subprocess.Process,
        rpc_port: int,
        pubsub_port: int,
        ledger_dir: Path,
        *,
        keep_ledger: bool = False,
        output_tasks: Optional[List[asyncio.Task]] = None,
    ):
        self.process = process
        self.ledger_dir = ledger_dir
        self.keep_ledger = keep_ledger
        self._rpc_port = rpc_port
        self._pubsub_port = pubsub_port
        self._output_tasks = output_tasks or []
        self._stopped = False

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def running(self) -> bool:
        return self.process.returncode is None

    def rpc_url(self) -> str:
        return f"http://127.0.0.1:{self._rpc_port}"

    def rpc_pubsub_url(self) -> str:
        return f"ws://127.0.0.1:{self._pubsub_port}"

    async def stop(self) -> None:
        """Terminate the process and remove its ledger. Safe to call twice."""
        if self._stopped:
            return
        self._stopped = True

        if self.process.returncode is None:
            try:
                self.process.terminate()
                await asyncio.wait_for(self.process.wait(), timeout=STOP_GRACE_SECONDS)
            except asyncio.TimeoutError:
                bt.logging.warning({"validator_kill": {"pid": self.process.pid}})
                self.process.kill()
                await self.process.wait()
            except ProcessLookupError:
                pass

        for task in self._output_tasks:
            task.cancel()

        if not self.keep_ledger:
            shutil.rmtree(self.ledger_dir, ignore_errors=True)
        bt.logging.info({"validator_stopped": {"pid": self.process.pid, "returncode": self.process.returncode}})


class SolanaTestValidatorService:
    """Launches `solana-test-validator` from a genesis descriptor."""

    def __init__(self, settings: Optional[HarnessSettings] = None):
        self.settings = settings or HarnessSettings()

    async def start(self, genesis: GenesisDescriptor) -> Tuple[SolanaTestValidatorHandle, Keypair]:
        settings = self.settings
        binary = shutil.which(settings.validator_binary) or settings.validator_binary

        if settings.ledger_root is not None:
            Path(settings.ledger_root).mkdir(parents=True, exist_ok=True)
        ledger_dir = Path(
            tempfile.mkdtemp(
                prefix="validator-runner-",
                dir=str(settings.ledger_root) if settings.ledger_root else None,
            )
        )

        mint = Keypair()
        try:
            write_keypair(mint, ledger_dir / "mint-keypair.json")
            args = build_validator_args(genesis, ledger_dir, mint)
            if not settings.forward_validator_output:
                args.append("--quiet")
            args += list(settings.extra_validator_args)
        except Exception:
            shutil.rmtree(ledger_dir, ignore_errors=True)
            raise

        forward = settings.forward_validator_output
        bt.logging.info(
            {
                "validator_launch": {
                    "binary": binary,
                    "rpc_port": genesis.rpc_port,
                    "ledger": str(ledger_dir),
                    "accounts": len(genesis.accounts),
                    "programs": len(genesis.programs),
                }
            }
        )
        try:
            process = await asyncio.create_subprocess_exec(
                binary,
                *args,
                stdout=asyncio.subprocess.PIPE if forward else asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE if forward else asyncio.subprocess.DEVNULL,
            )
        except OSError as exc:
            shutil.rmtree(ledger_dir, ignore_errors=True)
            raise ValidatorProcessError(f"failed to launch {binary}: {exc}") from exc

        output_tasks: List[asyncio.Task] = []
        if forward:
            output_tasks = [
                asyncio.create_task(_forward_output(process.stdout, "stdout")),
                asyncio.create_task(_forward_output(process.stderr, "stderr")),
            ]

        handle = SolanaTestValidatorHandle(
            process,
            genesis.rpc_port,
            genesis.pubsub_port,
            ledger_dir,
            keep_ledger=settings.keep_ledger,
            output_tasks=output_tasks,
        )
        try:
            await self._wait_until_healthy(handle)
        except BaseException:
            await handle.stop()
            raise
        return handle, mint

    async def _wait_until_healthy(self, handle: SolanaTestValidatorHandle) -> None:
        interval = self.settings.rpc_poll_interval
        async with SolanaRpcClient(handle.rpc_url(), handle.rpc_pubsub_url(), max_retries=0) as probe:
            while True:
                if handle.process.returncode is not None:
                    raise ValidatorProcessError(
                        f"validator exited with code {handle.process.returncode} during startup"
                    )
                try:
                    if await probe.get_health() == "ok":
                        break
                except (httpx.HTTPError, RpcError):
                    pass
                await asyncio.sleep(interval)

        await wait_for_port_listen(handle._pubsub_port)
        bt.logging.info({"validator_healthy": {"pid": handle.pid, "rpc_url": handle.rpc_url()}})


async def _forward_output(stream: Optional[asyncio.StreamReader], name: str) -> None:
    if stream is None:
        return
    logger = validator_output_logger()
    while True:
        line = await stream.readline()
        if not line:
            return
        logger.info("[%s] %s", name, line.decode("utf-8", errors="replace").rstrip())


__all__ = [
    "SolanaTestValidatorHandle",
    "SolanaTestValidatorService",
    "ValidatorProcessError",
    "build_validator_args",
    "write_keypair",
]
