"""
grant-proposer CLI
==================
Typer + Rich command-line interface.

Commands:
    grant-proposer grant    --grants grants.json
    grant-proposer withdraw --deposit 0 --amount 1000
    grant-proposer populate --instructions instructions.json
    grant-proposer retry    --recovery erroneous_txs.json --manifest transactions_to_execute.json
    grant-proposer execute  --transactions transactions_to_execute.json

Global options select the wallet (keypair file or usb://ledger?key=N) and
the RPC node. Exit code 1 means some items failed and a recovery file was
written; exit code 2 means the run was aborted.
"""

import json
import os
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from grant_proposer.config.settings import GovernanceSettings, GrantSettings
from grant_proposer.execution.executor import ProposalExecutionPipeline
from grant_proposer.execution.population import ProposalPopulationPipeline
from grant_proposer.execution.recovery_store import (
    EXECUTION_RECOVERY_FILE,
    INSERTION_RECOVERY_FILE,
    RecoveryStateStore,
)
from grant_proposer.instructions.grant_builder import Grant, GrantInstructionBuilder
from grant_proposer.execution.models import ProposalParams
from grant_proposer.shared.errors import GrantProposerError
from grant_proposer.shared.infrastructure.ledger_client import LedgerClient
from grant_proposer.shared.infrastructure.signer import load_signer
from grant_proposer.shared.system.logging import Logger

app = typer.Typer(
    name="grant-proposer",
    help="Batch grant proposals for SPL Governance: build, populate, retry and execute",
    add_completion=False,
    rich_markup_mode="rich",
)

console = Console()

EXIT_PARTIAL_FAILURE = 1
EXIT_FATAL = 2


class _Context:
    def __init__(self, wallet: Optional[str], node: Optional[str]):
        self.wallet = wallet
        self.node = node

    def signer(self):
        if not self.wallet:
            raise typer.BadParameter("--wallet is required for this command", param_hint="--wallet")
        return load_signer(self.wallet)

    def settings(self) -> GovernanceSettings:
        return GovernanceSettings.from_env(rpc_url=self.node)

    @staticmethod
    def ledger(settings: GovernanceSettings) -> LedgerClient:
        return LedgerClient(settings.rpc_url, settings.commitment, settings.rpc_timeout_s)


def _fail(error: GrantProposerError) -> None:
    Logger.critical(f"{type(error).__name__}: {error}")
    raise typer.Exit(code=EXIT_FATAL)


def _same_file(a: str, b: str) -> bool:
    return os.path.abspath(a) == os.path.abspath(b)


def _summary(title: str, succeeded: int, failed: int, artifacts: dict) -> None:
    table = Table(title=title, show_header=False)
    table.add_column("key", style="dim")
    table.add_column("value")
    table.add_row("Succeeded", f"[green]{succeeded}[/]")
    table.add_row("Failed", f"[red]{failed}[/]" if failed else "0")
    for label, value in artifacts.items():
        if value:
            table.add_row(label, str(value))
    console.print(table)


# ═══════════════════════════════════════════════════════════════════════════════
# GLOBAL OPTIONS
# ═══════════════════════════════════════════════════════════════════════════════

@app.callback()
def main(
    ctx: typer.Context,
    wallet: Optional[str] = typer.Option(
        None, "--wallet", "-w", help="Fee payer keypair file or usb://ledger?key=0"
    ),
    node: Optional[str] = typer.Option(
        None, "--node", "-n", help="Solana RPC node URL (default: RPC_URL or mainnet-beta)"
    ),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Only print the final summary"),
):
    """Submit grant batches to an SPL Governance proposal."""
    if quiet:
        Logger.set_silent(True)
    ctx.obj = _Context(wallet, node)


# ═══════════════════════════════════════════════════════════════════════════════
# COMMAND: GRANT
# ═══════════════════════════════════════════════════════════════════════════════

@app.command()
def grant(
    grants: str = typer.Option(..., "--grants", "-g", help="Grants file: {name, description, grants: [...]}"),
    out: str = typer.Option("instructions.json", "--out", "-o", help="Where to write the work-item batch"),
):
    """Build voter-stake-registry grant instructions into a work-item batch file."""
    try:
        with open(grants, "r", encoding="utf-8") as f:
            raw = json.load(f)
        builder = GrantInstructionBuilder(GrantSettings.from_env())
        batch = builder.build_batch(
            ProposalParams(name=raw["name"], description=raw.get("description", "")),
            [Grant.from_dict(g) for g in raw.get("grants", [])],
        )
    except GrantProposerError as e:
        _fail(e)
    except (OSError, ValueError, KeyError) as e:
        Logger.critical(f"Cannot build grants from {grants}: {e}")
        raise typer.Exit(code=EXIT_FATAL)

    path = RecoveryStateStore().save_batch(batch, out)
    Logger.success(f"[GRANT] {len(batch.items)} grant instructions written to {path}")


# ═══════════════════════════════════════════════════════════════════════════════
# COMMAND: WITHDRAW
# ═══════════════════════════════════════════════════════════════════════════════

@app.command()
def withdraw(
    ctx: typer.Context,
    deposit: int = typer.Option(..., "--deposit", "-d", min=0, max=255, help="Deposit entry index"),
    amount: int = typer.Option(..., "--amount", "-a", min=0, help="Amount to withdraw, in base units"),
    out: str = typer.Option("withdraw.json", "--out", "-o", help="Where to write the work item"),
):
    """Build a voter-stake-registry withdraw instruction for the wallet's own deposit."""
    try:
        wallet = ctx.obj.signer().pubkey()
        item = GrantInstructionBuilder(GrantSettings.from_env()).build_withdraw(wallet, deposit, amount)
    except GrantProposerError as e:
        _fail(e)

    path = RecoveryStateStore().save_work_item(item, out)
    Logger.success(f"[GRANT] Withdrawal of {amount} from deposit {deposit} written to {path}")


# ═══════════════════════════════════════════════════════════════════════════════
# COMMAND: POPULATE
# ═══════════════════════════════════════════════════════════════════════════════

@app.command()
def populate(
    ctx: typer.Context,
    instructions: str = typer.Option(..., "--instructions", "-i", help="Work-item batch file"),
):
    """Create a proposal and attach every work item as a proposal transaction."""
    try:
        settings = ctx.obj.settings()
        store = RecoveryStateStore(settings.output_dir)
        batch = store.load_batch(instructions)
        signer = ctx.obj.signer()

        pipeline = ProposalPopulationPipeline(settings, ctx.obj.ledger(settings), store=store)
        result = pipeline.populate(batch.params, batch.items, signer)
    except GrantProposerError as e:
        _fail(e)

    _summary(
        f"Proposal {result.proposal_address}",
        len(result.inserted),
        result.failed_count,
        {
            "Signed off": "yes" if result.signed_off else "no",
            "Manifest": result.manifest_path,
            "Recovery file": result.recovery_path,
        },
    )
    if result.partial_failure:
        console.print(Panel(
            f"Retry with: grant-proposer retry --recovery {result.recovery_path} --manifest {result.manifest_path}",
            style="yellow",
        ))
        raise typer.Exit(code=EXIT_PARTIAL_FAILURE)


# ═══════════════════════════════════════════════════════════════════════════════
# COMMAND: RETRY
# ═══════════════════════════════════════════════════════════════════════════════

@app.command()
def retry(
    ctx: typer.Context,
    recovery: Optional[str] = typer.Option(
        None, "--recovery", "-r", help=f"Insertion recovery file (default: {INSERTION_RECOVERY_FILE} in OUTPUT_DIR)"
    ),
    manifest: str = typer.Option(..., "--manifest", "-m", help="Slot manifest of the same proposal"),
):
    """Insert the work items of a recovery file into the proposal they came from."""
    try:
        settings = ctx.obj.settings()
        store = RecoveryStateStore(settings.output_dir)
        recovery = recovery or store.path_for(INSERTION_RECOVERY_FILE)
        recovery_set = store.load_insertion_recovery(recovery)
        slot_manifest = store.load_manifest(manifest)
        signer = ctx.obj.signer()

        pipeline = ProposalPopulationPipeline(settings, ctx.obj.ledger(settings), store=store)
        result = pipeline.resume(
            recovery_set, slot_manifest, signer, manifest_path=manifest, recovery_path=recovery
        )
    except GrantProposerError as e:
        _fail(e)

    _summary(
        f"Proposal {result.proposal_address}",
        len(result.inserted),
        result.failed_count,
        {
            "Signed off": "yes" if result.signed_off else "no",
            "Manifest": result.manifest_path,
            "Recovery file": result.recovery_path,
        },
    )
    if result.partial_failure:
        raise typer.Exit(code=EXIT_PARTIAL_FAILURE)


# ═══════════════════════════════════════════════════════════════════════════════
# COMMAND: EXECUTE
# ═══════════════════════════════════════════════════════════════════════════════

@app.command()
def execute(
    ctx: typer.Context,
    transactions: str = typer.Option(..., "--transactions", "-t", help="Slot manifest to execute"),
    out: Optional[str] = typer.Option(
        None, "--out", "-o", help=f"Recovery file for failed slots (default: {EXECUTION_RECOVERY_FILE})"
    ),
):
    """Execute the proposal transactions listed in a slot manifest."""
    try:
        settings = ctx.obj.settings()
        store = RecoveryStateStore(settings.output_dir)
        slot_manifest = store.load_manifest(transactions)
        signer = ctx.obj.signer()

        recovery_path = out or store.path_for(EXECUTION_RECOVERY_FILE)
        pipeline = ProposalExecutionPipeline(settings, ctx.obj.ledger(settings), store=store)
        consumed = transactions if _same_file(transactions, recovery_path) else None
        result = pipeline.execute(slot_manifest, signer, recovery_path=recovery_path, consumed_path=consumed)
    except GrantProposerError as e:
        _fail(e)

    _summary(
        f"Proposal {slot_manifest.proposal}",
        len(result.executed),
        result.failed_count,
        {"Recovery file": result.recovery_path},
    )
    if result.partial_failure:
        raise typer.Exit(code=EXIT_PARTIAL_FAILURE)


if __name__ == "__main__":
    app()
