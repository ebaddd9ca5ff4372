"""Rich console rendering, JSON export and markdown save for finished runs."""

import json
import logging
import re
from collections.abc import Iterable, Sequence
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import BaseModel
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from socratic.loop import LoopEvent, LoopEventKind
from socratic.models import Session, Speaker, Turn, TurnKind
from socratic.schemas import DevilsDefinition, RootCauseAnalysis, Scorecard, SixHatsArtifact
from socratic.scripted import RevealEvent, RevealEventKind
from socratic.transcript import turn_from_dict, turn_to_dict

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

_HAT_STYLES = {
    "white": "white",
    "red": "red",
    "black": "bright_black",
    "yellow": "yellow",
    "green": "green",
    "blue": "blue",
}


def _slug(text: str, max_len: int = 40) -> str:
    """Convert text to a filename-safe slug."""
    slug = re.sub(r"[^\w\s-]", "", text.lower())
    slug = re.sub(r"[\s_-]+", "-", slug).strip("-")
    return slug[:max_len]


# --- console ---

def print_turn(turn: Turn) -> None:
    if turn.kind is TurnKind.ARTIFACT:
        console.print(Rule(f"[bold green]{turn.author or 'Note'}[/bold green]"))
        console.print(Markdown(turn.content))
        return
    style = "cyan" if turn.speaker is Speaker.USER else "magenta"
    console.print(
        Panel(
            Markdown(turn.content),
            title=f"[bold]{turn.author or turn.speaker.value}[/bold]",
            border_style=style,
        )
    )


def print_turns(turns: Iterable[Turn]) -> None:
    for turn in turns:
        print_turn(turn)


def print_sessions(sessions: Sequence[Session], active_id: str | None = None) -> None:
    if not sessions:
        console.print("[dim]No sessions yet.[/dim]")
        return
    table = Table(title="Sessions")
    table.add_column("", width=1)
    table.add_column("ID", style="dim")
    table.add_column("Title")
    table.add_column("Turns", justify="right")
    table.add_column("Updated")
    for s in sessions:
        updated = datetime.fromtimestamp(s.updated_at / 1000).strftime("%Y-%m-%d %H:%M")
        table.add_row("*" if s.id == active_id else "", s.id[:8], s.title, str(len(s.turns)), updated)
    console.print(table)


def print_loop_event(event: LoopEvent) -> None:
    """Live rendering hook for AlternatingSeatLoop.on_event."""
    if event.kind is LoopEventKind.TURN_COMMITTED and event.turn is not None:
        if event.turn.kind is TurnKind.DIALOGUE:
            console.print(
                Text(f"Round {event.state.rounds_completed}/{event.state.max_rounds}", style="dim")
            )
        print_turn(event.turn)
    elif event.kind is LoopEventKind.STOP_TOKEN_IGNORED:
        console.print("[dim]Stop requested too early; the discussion continues.[/dim]")
    elif event.kind is LoopEventKind.ERROR:
        console.print(f"[red]Paused on error:[/red] {event.error}")
    elif event.kind is LoopEventKind.PHASE_CHANGED:
        logger.debug("Loop phase: %s", event.state.phase.value)


def print_reveal_event(event: RevealEvent) -> None:
    if event.kind is RevealEventKind.REACTION_ADDED:
        if event.index == 0:
            console.print(Rule("[bold cyan]Phase 1: Reactions[/bold cyan]"))
        console.print(Panel(event.payload.initial_thought, title=f"[bold]{event.payload.role}[/bold]", border_style="dim"))
    elif event.kind is RevealEventKind.DEBATE_LINE_ADDED:
        if event.index == 0:
            console.print(Rule("[bold yellow]Phase 2: Debate[/bold yellow]"))
        line = event.payload
        console.print(Text.assemble((line.role, "bold"), " -> ", (line.target_role, "italic"), f": {line.argument}"))
    elif event.kind is RevealEventKind.HAT_REVEALED:
        name, hat = event.payload
        console.print(
            Panel(Markdown(hat.content), title=f"[bold]{hat.title}[/bold]", border_style=_HAT_STYLES.get(name, "dim"))
        )
    elif event.kind is RevealEventKind.VERDICT_READY:
        if isinstance(event.payload, SixHatsArtifact):
            console.print(Text("Report complete.", style="dim"))
            return
        verdict = event.payload
        console.print(Rule("[bold green]Phase 3: Verdict[/bold green]"))
        console.print(Markdown(verdict.winner))
        console.print(Text(verdict.vote_summary, style="dim"))
        console.print(Panel(verdict.critical_warning, title="[bold red]Pre-mortem[/bold red]", border_style="red"))


def print_scorecard(scorecard: Scorecard) -> None:
    console.print(Rule("[bold green]Verdict[/bold green]"))
    console.print(Text(f"Winner: {scorecard.winner.value} | Score: {scorecard.score}/100", style="bold"))
    if scorecard.commentary:
        console.print(Markdown(scorecard.commentary))
    for title, items, style in (("Strengths", scorecard.strengths, "green"), ("Weaknesses", scorecard.weaknesses, "red")):
        if items:
            console.print(Panel("\n".join(f"- {i}" for i in items), title=title, border_style=style))


def print_root_cause(analysis: RootCauseAnalysis) -> None:
    console.print(Rule("[bold green]Root Cause[/bold green]"))
    console.print(Panel(analysis.root_cause, title="Root cause", border_style="red"))
    console.print(Panel(analysis.solution, title="Solution", border_style="green"))
    if analysis.advice:
        console.print(Text(analysis.advice, style="italic dim"))


def print_definition(definition: DevilsDefinition) -> None:
    body = definition.definition
    if definition.usage:
        body += f"\n\n[italic]{definition.usage}[/italic]"
    console.print(Panel(body, title=f"[bold]{definition.word}[/bold]", border_style="red"))


def print_markdown(title: str, text: str) -> None:
    console.print(Rule(f"[bold green]{title}[/bold green]"))
    console.print(Markdown(text))


# --- export ---

def export_run(
    *,
    topic: str,
    configuration: dict[str, Any],
    turns: Sequence[Turn],
    artifact: BaseModel | str | None = None,
    exported_at: datetime | None = None,
) -> dict[str, Any]:
    """Build the flat JSON export document for a finished run."""
    if isinstance(artifact, BaseModel):
        artifact_data: Any = artifact.model_dump(mode="json")
    elif isinstance(artifact, str):
        artifact_data = {"text": artifact}
    else:
        artifact_data = None
    return {
        "topic": topic,
        "configuration": dict(configuration),
        "turns": [turn_to_dict(t) for t in turns],
        "artifact": artifact_data,
        "exported_at": (exported_at or datetime.now(timezone.utc)).isoformat(),
    }


def save_export(doc: dict[str, Any], output_dir: Path, prefix: str = "debate") -> Path:
    """Write the export as <prefix>-<timestamp>.json and return its path."""
    output_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    filepath = output_dir / f"{prefix}-{timestamp}.json"
    filepath.write_text(json.dumps(doc, ensure_ascii=False, indent=2), encoding="utf-8")
    logger.info("Export saved to: %s", filepath)
    return filepath


def load_export(path: Path) -> dict[str, Any]:
    doc = json.loads(path.read_text(encoding="utf-8"))
    missing = [k for k in ("topic", "configuration", "turns", "artifact") if k not in doc]
    if missing:
        raise ValueError(f"{path} is not an export document (missing {', '.join(missing)})")
    return doc


def turns_from_export(doc: dict[str, Any]) -> list[Turn]:
    return [turn_from_dict(t) for t in doc["turns"]]


def scorecard_from_export(doc: dict[str, Any]) -> Scorecard | None:
    artifact = doc.get("artifact")
    if not isinstance(artifact, dict) or "winner" not in artifact:
        return None
    return Scorecard.model_validate(artifact)


def render_markdown(doc: dict[str, Any]) -> str:
    """Render an export document as a readable markdown transcript."""
    lines: list[str] = [
        f"# {doc['topic'][:80]}",
        "",
        f"**Date:** {doc.get('exported_at', '')}",
    ]
    for key, value in doc["configuration"].items():
        lines.append(f"**{key.replace('_', ' ').title()}:** {value}")
    lines += ["", "---", ""]

    for data in doc["turns"]:
        turn = turn_from_dict(data)
        heading = turn.author or turn.speaker.value
        lines += [f"### {heading}", "", turn.content, ""]

    scorecard = scorecard_from_export(doc)
    if scorecard is not None:
        lines += [
            "## Verdict",
            "",
            f"**Winner:** {scorecard.winner.value}",
            f"**Score:** {scorecard.score}/100",
            "",
        ]
        if scorecard.commentary:
            lines += [scorecard.commentary, ""]
        lines += [f"- Strength: {s}" for s in scorecard.strengths]
        lines += [f"- Weakness: {w}" for w in scorecard.weaknesses]
        lines.append("")
    elif isinstance(doc.get("artifact"), dict) and doc["artifact"].get("text"):
        lines += ["## Synthesis", "", doc["artifact"]["text"], ""]

    return "\n".join(lines)


def save_markdown(doc: dict[str, Any], output_dir: Path) -> Path:
    output_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    filepath = output_dir / f"{timestamp}_{_slug(doc['topic'])}.md"
    filepath.write_text(render_markdown(doc), encoding="utf-8")
    logger.info("Transcript saved to: %s", filepath)
    return filepath
