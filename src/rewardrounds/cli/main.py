"""
RewardRounds CLI

Drive a settlement engine persisted in a JSON state file:
- init: Create a new state file
- register / activate / deposit / load-scores / new-round: Round lifecycle
- claim: Pay a participant everything owed
- withdraw: Emergency withdrawal of held funds
- status / round / claimable: Inspect state
"""

import json
import logging
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

import click
import yaml
from rich import box
from rich.console import Console
from rich.table import Table

from rewardrounds.config import EngineConfig, FundingMode
from rewardrounds.exceptions import InputValidationError, RewardRoundsError
from rewardrounds.settlement.auth import OwnerAuthorizer
from rewardrounds.settlement.engine import SettlementEngine
from rewardrounds.storage.state_file import StateFile

console = Console()

DEFAULT_STATE_PATH = "rewardrounds-state.json"

_PHASE_STYLES = {
    "registration": "cyan",
    "active": "yellow",
    "distribution": "green",
}


def _output_json(data: object) -> None:
    """Print data as JSON to stdout."""
    click.echo(json.dumps(data, indent=2, default=str))


def _output_yaml(data: object) -> None:
    """Print data as YAML to stdout."""
    click.echo(yaml.dump(data, default_flow_style=False, sort_keys=False))


def _output(data: object, fmt: str) -> bool:
    """Emit *data* in a machine format. Returns False for table output."""
    if fmt == "json":
        _output_json(data)
        return True
    if fmt == "yaml":
        _output_yaml(data)
        return True
    return False


def _fail(message: str) -> None:
    click.echo(f"Error: {message}", err=True)
    sys.exit(1)


@contextmanager
def _session(state: StateFile, persist: bool = True) -> Iterator[SettlementEngine]:
    """Load the engine, run a command against it and save on success."""
    try:
        engine = state.load()
        yield engine
    except RewardRoundsError as exc:
        _fail(str(exc))
    if persist:
        state.save(engine)


def parse_score_file(path: Path) -> tuple[list[str], list[int]]:
    """Read ``(participants, scores)`` from a YAML or JSON file.

    Accepts either a mapping of participant to score or a list of
    ``{participant, score}`` entries (which may repeat a participant).
    """
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as exc:
        raise InputValidationError(f"Cannot parse score file {path}: {exc}") from exc

    if isinstance(data, dict):
        pairs = list(data.items())
    elif isinstance(data, list):
        try:
            pairs = [(entry["participant"], entry["score"]) for entry in data]
        except (KeyError, TypeError) as exc:
            raise InputValidationError(
                f"Score entries in {path} need 'participant' and 'score' keys"
            ) from exc
    else:
        raise InputValidationError(f"Score file {path} must hold a mapping or a list")

    return [str(p) for p, _ in pairs], [s for _, s in pairs]


fmt_option = click.option(
    "--format", "fmt",
    type=click.Choice(["table", "json", "yaml"]),
    default="table",
    help="Output format (table, json, or yaml).",
)
caller_option = click.option(
    "--as", "caller", required=True, help="Principal performing the operation.",
)


@click.group()
@click.option(
    "--state", "state_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=DEFAULT_STATE_PATH,
    envvar="REWARDROUNDS_STATE",
    show_default=True,
    help="Engine state file.",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.pass_context
def app(ctx: click.Context, state_path: Path, verbose: bool):
    """Run multi-round, score-weighted reward settlement.

    Participants register each round, the owner funds the round and loads
    scores, and participants claim their share of every unpaid round.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = StateFile(state_path)


@app.command()
@click.option("--owner", required=True, help="Administrator principal.")
@click.option(
    "--mode",
    type=click.Choice([m.value for m in FundingMode]),
    default=None,
    help="Pool accounting variant (default: direct).",
)
@click.option(
    "--config", "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="YAML engine configuration.",
)
@click.option("--max-rounds", type=int, default=None, help="Rounds examined per claim.")
@click.option("--force", is_flag=True, help="Overwrite an existing state file.")
@click.pass_obj
def init(
    state: StateFile,
    owner: str,
    mode: Optional[str],
    config_path: Optional[Path],
    max_rounds: Optional[int],
    force: bool,
):
    """Create a fresh engine in the state file."""
    if state.exists() and not force:
        _fail(f"{state.path} already exists (use --force to overwrite)")

    try:
        config = EngineConfig.from_yaml(config_path) if config_path else EngineConfig.from_env()
        overrides: dict[str, object] = {}
        if mode is not None:
            overrides["funding_mode"] = FundingMode(mode)
        if max_rounds is not None:
            overrides["max_rounds_per_claim"] = max_rounds
        if overrides:
            config = EngineConfig(**{**config.model_dump(), **overrides})
    except (RewardRoundsError, ValueError) as exc:
        _fail(str(exc))

    engine = SettlementEngine(OwnerAuthorizer(owner), config=config)
    state.save(engine)
    click.echo(
        f"Initialized {config.funding_mode.value} engine owned by {owner} at {state.path}"
    )


@app.command()
@click.argument("participant")
@click.pass_obj
def register(state: StateFile, participant: str):
    """Register PARTICIPANT for the current round."""
    with _session(state) as engine:
        engine.register(participant)
        click.echo(f"Registered {participant} for round {engine.current_round}")


@app.command()
@caller_option
@click.pass_obj
def activate(state: StateFile, caller: str):
    """Close registration and open score loading."""
    with _session(state) as engine:
        engine.start_active_phase(caller)
        click.echo(f"Round {engine.current_round} is now active")


@app.command()
@click.argument("amount", type=int)
@click.option("--sender", default=None, help="Who supplied the funds.")
@click.pass_obj
def deposit(state: StateFile, amount: int, sender: Optional[str]):
    """Deposit AMOUNT into the engine."""
    with _session(state) as engine:
        engine.deposit(amount, sender=sender)
        click.echo(f"Deposited {amount}; held balance is {engine.held_balance()}")


@app.command("load-scores")
@click.argument("score_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@caller_option
@fmt_option
@click.pass_obj
def load_scores(state: StateFile, score_file: Path, caller: str, fmt: str):
    """Load scores from SCORE_FILE and open claiming."""
    with _session(state) as engine:
        participants, scores = parse_score_file(score_file)
        stats = engine.set_scores(caller, participants, scores)
        if _output(stats.model_dump(), fmt):
            return
        console.print(
            f"\n[bold green]Scores loaded for round {stats.round_id}[/bold green]\n"
        )
        console.print(f"  Scored participants: {stats.scored_count}")
        console.print(f"  Total score:         {stats.total_score}")
        console.print(f"  Reward pool:         {stats.reward_pool}")
        console.print()


@app.command()
@click.argument("participant")
@click.option("--max-rounds", type=int, default=None, help="Rounds examined by this claim.")
@fmt_option
@click.pass_obj
def claim(state: StateFile, participant: str, max_rounds: Optional[int], fmt: str):
    """Pay PARTICIPANT everything owed."""
    with _session(state) as engine:
        receipt = engine.claim(participant, max_rounds=max_rounds)
        if _output(receipt.model_dump(), fmt):
            return
        table = Table(box=box.ROUNDED, title=f"Claim by {participant}")
        table.add_column("Round", justify="right", style="cyan")
        table.add_column("Amount", justify="right")
        for payout in receipt.payouts:
            table.add_row(str(payout.round_id), str(payout.amount))
        console.print(table)
        console.print(f"\n  Total paid: [bold]{receipt.total}[/bold]\n")


@app.command("new-round")
@caller_option
@click.pass_obj
def new_round(state: StateFile, caller: str):
    """Start the next round."""
    with _session(state) as engine:
        round_id = engine.start_new_round(caller)
        click.echo(f"Started round {round_id}")


@app.command()
@click.argument("amount", type=int)
@click.argument("recipient")
@caller_option
@click.pass_obj
def withdraw(state: StateFile, amount: int, recipient: str, caller: str):
    """Emergency-withdraw AMOUNT of held funds to RECIPIENT."""
    with _session(state) as engine:
        engine.emergency_withdraw(caller, amount, recipient)
        click.echo(f"Withdrew {amount} to {recipient}; held balance is {engine.held_balance()}")


@app.command()
@fmt_option
@click.pass_obj
def status(state: StateFile, fmt: str):
    """Show the current round, phase and balances."""
    with _session(state, persist=False) as engine:
        info = {
            "current_round": engine.current_round,
            "phase": engine.current_phase.value,
            "funding_mode": engine.funding_mode.value,
            "owner": getattr(engine.authorizer, "owner", None),
            "held_balance": engine.held_balance(),
            "outstanding_allocations": engine.outstanding_allocations(),
            "registrants": engine.get_registrant_count(),
        }
        if _output(info, fmt):
            return
        style = _PHASE_STYLES.get(info["phase"], "white")
        console.print("\n[bold blue]Reward Rounds Status[/bold blue]\n")
        console.print(f"  Round:        {info['current_round']}")
        console.print(f"  Phase:        [{style}]{info['phase']}[/{style}]")
        console.print(f"  Funding:      {info['funding_mode']}")
        console.print(f"  Owner:        {info['owner'] or 'N/A'}")
        console.print(f"  Held:         {info['held_balance']}")
        console.print(f"  Outstanding:  {info['outstanding_allocations']}")
        console.print(f"  Registrants:  {info['registrants']}")
        console.print()


@app.command("round")
@click.argument("round_id", type=int, required=False)
@fmt_option
@click.pass_obj
def show_round(state: StateFile, round_id: Optional[int], fmt: str):
    """Show statistics and registrants for ROUND_ID (default: current)."""
    with _session(state, persist=False) as engine:
        stats = engine.get_round_stats(round_id)
        rows = [
            {
                "participant": p,
                "score": engine.get_score(p, stats.round_id),
                "claimed": engine.has_claimed(p, stats.round_id),
            }
            for p in engine.get_registrants(stats.round_id)
        ]
        if _output({**stats.model_dump(), "registrants": rows}, fmt):
            return

        console.print(f"\n[bold blue]Round {stats.round_id}[/bold blue]\n")
        console.print(f"  Pool:         {stats.reward_pool} ({'sealed' if stats.sealed else 'open'})")
        console.print(f"  Total score:  {stats.total_score}")
        console.print(f"  Claimed:      {stats.claimed_amount}")
        console.print(f"  Unclaimed:    {stats.unclaimed}\n")

        table = Table(box=box.ROUNDED)
        table.add_column("Participant", style="cyan", no_wrap=True)
        table.add_column("Score", justify="right")
        table.add_column("Claimed")
        for row in rows:
            table.add_row(
                row["participant"],
                str(row["score"]),
                "[green]✓[/green]" if row["claimed"] else "[dim]—[/dim]",
            )
        console.print(table)
        console.print(f"\n  Participants: {stats.participant_count}\n")


@app.command()
@click.argument("participant")
@fmt_option
@click.pass_obj
def claimable(state: StateFile, participant: str, fmt: str):
    """Show what PARTICIPANT could claim right now."""
    with _session(state, persist=False) as engine:
        info = {
            "participant": participant,
            "current_round": engine.get_claimable_amount(participant),
            "total": engine.get_total_claimable_amount(participant),
            "unclaimed_rounds": engine.get_unclaimed_rounds(participant),
        }
        if _output(info, fmt):
            return
        console.print(f"\n[bold blue]Claimable for {participant}[/bold blue]\n")
        console.print(f"  Current round:    {info['current_round']}")
        console.print(f"  All rounds:       {info['total']}")
        rounds = ", ".join(str(r) for r in info["unclaimed_rounds"]) or "none"
        console.print(f"  Unclaimed rounds: {rounds}")
        console.print()


if __name__ == "__main__":
    app()
