"""Click CLI: config loading, gateway selection, and one command per thinking mode."""

import asyncio
import logging
import os
import sys
from collections.abc import Awaitable
from pathlib import Path
from typing import Any, TypeVar

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

from config.config_loader import AppConfig, ModelConfig, load_config
from socratic.debate import DebateLoop, Difficulty
from socratic.dialogue import DialogueEngine, DialogueMode
from socratic.errors import GuardError
from socratic.five_whys import FiveWhysInvestigation
from socratic.healthcheck import run_health_checks
from socratic.loop import LoopEvent, LoopEventKind, StopPolicy
from socratic.models import LoopPhase, Speaker, TurnKind
from socratic.output import (
    export_run,
    print_definition,
    print_loop_event,
    print_markdown,
    print_reveal_event,
    print_root_cause,
    print_scorecard,
    print_sessions,
    print_turn,
    print_turns,
    save_export,
    save_markdown,
)
from socratic.providers.anthropic import AnthropicProvider
from socratic.providers.base import CompletionGateway, GatewayError, MissingCredentialError
from socratic.providers.gemini import GeminiProvider
from socratic.providers.openai_provider import OpenAIProvider
from socratic.schemas import RootCauseAnalysis
from socratic.scripted import RevealPacing, ScriptedOrchestrator, reveal
from socratic.storage import JsonFileKeyValueStore
from socratic.think_tank import ThinkTankLoop
from socratic.tools import devils_dictionary, first_principles
from socratic.transcript import SessionNotFound, TranscriptStore

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

T = TypeVar("T")

PROVIDER_CLASSES: dict[str, type[CompletionGateway]] = {
    "gemini": GeminiProvider,
    "openai": OpenAIProvider,
    "anthropic": AnthropicProvider,
}

INTENT_COMMANDS = {
    "/analogy": "analogy",
    "/deep": "deep_dive",
    "/architect": "architect",
    "/challenge": "challenge",
}


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


def _build_gateway(config: AppConfig, provider: str) -> CompletionGateway:
    """Instantiate the gateway for a configured provider. Exits if it cannot be used."""
    model_cfg = config.models.get(provider)
    if model_cfg is None:
        console.print(f"[bold red]Error:[/bold red] Unknown provider '{provider}'. Known: {', '.join(config.models)}")
        sys.exit(1)
    if model_cfg.sdk not in PROVIDER_CLASSES:
        console.print(f"[bold red]Error:[/bold red] Provider '{provider}' uses unsupported sdk '{model_cfg.sdk}'")
        sys.exit(1)
    if provider not in config.available_providers:
        console.print(
            f"[bold red]Error:[/bold red] No API key for {provider}. Set {model_cfg.api_key_env} in .env."
        )
        sys.exit(1)
    return PROVIDER_CLASSES[model_cfg.sdk](model_cfg)


def _ally_key(model_cfg: ModelConfig) -> str | None:
    if not model_cfg.ally_api_key_env:
        return None
    return os.environ.get(model_cfg.ally_api_key_env, "").strip() or None


def _transcript_store(config: AppConfig) -> TranscriptStore:
    return TranscriptStore(JsonFileKeyValueStore(config.storage.path), config.storage.namespace)


def _run(coro: Awaitable[T]) -> T:
    """Run one command's coroutine, mapping gateway errors to a message and exit code 1."""
    try:
        return asyncio.run(coro)
    except MissingCredentialError as exc:
        console.print(f"[bold red]Missing API key:[/bold red] {exc}")
        sys.exit(1)
    except GatewayError as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        sys.exit(1)


async def _ask(prompt: str) -> str | None:
    """Read one line without blocking the event loop. None on EOF."""
    try:
        reply = await asyncio.to_thread(click.prompt, prompt, default="", show_default=False)
    except click.Abort:
        return None
    return reply.strip()


def _notice(exc: GuardError) -> None:
    console.print(f"[dim]{exc}[/dim]")


def _resolve_session(store: TranscriptStore, prefix: str) -> str:
    matches = [s.id for s in store.list_sessions() if s.id.startswith(prefix)]
    if len(matches) != 1:
        raise SessionNotFound(prefix)
    return matches[0]


def _export(doc: dict[str, Any], export_dir: str | None, save_md: bool, output_dir: Path, prefix: str) -> None:
    if export_dir:
        path = save_export(doc, Path(export_dir), prefix=prefix)
        console.print(f"[dim]Exported to: {path}[/dim]")
    if save_md:
        path = save_markdown(doc, Path(export_dir) if export_dir else output_dir)
        console.print(f"[dim]Saved to: {path}[/dim]")


@click.group()
@click.option("--provider", default=None, help="Provider from settings.yaml (default: from config)")
@click.option("--language", type=click.Choice(["en", "vi"]), default=None, help="Output language")
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
@click.pass_context
def main(ctx: click.Context, provider: str | None, language: str | None, verbose: bool) -> None:
    """Socratic Notes: guided thinking modes on top of a hosted LLM.

    \b
    Examples:
      python -m socratic.cli chat
      python -m socratic.cli think-tank "A subscription box for houseplants" --rounds 6
      python -m socratic.cli debate "Remote work is better" --difficulty HARD
      python -m socratic.cli decide "Should I switch jobs?" --options "stay, leave"
    """
    # Model responses may contain characters the Windows console codepage cannot render
    if sys.platform == "win32":
        if hasattr(sys.stdout, "reconfigure"):
            sys.stdout.reconfigure(encoding="utf-8", errors="replace")
        if hasattr(sys.stderr, "reconfigure"):
            sys.stderr.reconfigure(encoding="utf-8", errors="replace")

    load_dotenv()
    _setup_logging(verbose)

    try:
        config = load_config()
    except (FileNotFoundError, ValueError) as exc:
        console.print(f"[bold red]Config error:[/bold red] {exc}")
        sys.exit(1)

    ctx.ensure_object(dict)
    ctx.obj["config"] = config
    ctx.obj["provider"] = provider or config.defaults.provider
    ctx.obj["language"] = language or config.defaults.language


def _context(ctx: click.Context) -> tuple[AppConfig, str, str]:
    return ctx.obj["config"], ctx.obj["provider"], ctx.obj["language"]


# --- single-agent dialogue ---

@main.command()
@click.option("--mode", type=click.Choice([m.value for m in DialogueMode]), default=DialogueMode.SOCRATIC.value)
@click.option("--session", "session_prefix", default=None, help="Resume a session by id (prefix is enough)")
@click.pass_context
def chat(ctx: click.Context, mode: str, session_prefix: str | None) -> None:
    """Interactive Socratic chat (or shadow work with --mode shadow)."""
    config, provider, language = _context(ctx)
    gateway = _build_gateway(config, provider)
    store = _transcript_store(config)
    engine = DialogueEngine(gateway, store, config.prompts, language=language, mode=DialogueMode(mode))

    if session_prefix:
        try:
            session = store.set_active(_resolve_session(store, session_prefix))
        except SessionNotFound:
            console.print(f"[bold red]Error:[/bold red] No unique session matches '{session_prefix}'")
            sys.exit(1)
    else:
        session = engine.new_session()

    console.print(f"\n[bold cyan]Socratic Notes[/bold cyan] [{mode}] {session.title} ({session.id[:8]})")
    console.print("[dim]/analogy /deep /architect /challenge /synthesize /delete <turn-id> /quit[/dim]\n")
    print_turns(session.turns)
    _run(_chat_loop(engine, store, session.id))


async def _chat_loop(engine: DialogueEngine, store: TranscriptStore, session_id: str) -> None:
    def on_chunk(chunk: str) -> None:
        console.print(chunk, end="", markup=False, highlight=False)

    while True:
        text = await _ask("You")
        if text is None or text == "/quit":
            break
        if not text:
            continue
        try:
            if text in INTENT_COMMANDS:
                turn = await engine.send_intent(session_id, INTENT_COMMANDS[text], on_chunk=on_chunk)
                console.print()
            elif text == "/synthesize":
                with console.status("Synthesizing note..."):
                    turn = await engine.synthesize(session_id)
                print_turn(turn)
            elif text.startswith("/delete"):
                turn_id = text.removeprefix("/delete").strip()
                before = len(store.get_session(session_id).turns)
                after = store.delete_turn(session_id, turn_id)
                console.print(f"[dim]Deleted {before - len(after.turns)} turn(s).[/dim]")
            else:
                turn = await engine.send(session_id, text, on_chunk=on_chunk)
                if turn.kind is TurnKind.ARTIFACT:
                    print_turn(turn)
                else:
                    console.print()
                    console.print(f"[dim]({turn.id[:8]})[/dim]")
        except GuardError as exc:
            _notice(exc)


@main.command()
@click.pass_context
def sessions(ctx: click.Context) -> None:
    """List saved chat sessions, most recent first."""
    config, _, _ = _context(ctx)
    store = _transcript_store(config)
    print_sessions(store.list_sessions(), store.active_id)


@main.command("delete-session")
@click.argument("session_prefix")
@click.pass_context
def delete_session(ctx: click.Context, session_prefix: str) -> None:
    """Delete a session permanently."""
    config, _, _ = _context(ctx)
    store = _transcript_store(config)
    try:
        session_id = _resolve_session(store, session_prefix)
    except SessionNotFound:
        console.print(f"[bold red]Error:[/bold red] No unique session matches '{session_prefix}'")
        sys.exit(1)
    active = store.delete_session(session_id, welcome=config.prompts.welcome)
    console.print(f"Deleted {session_id[:8]}. Active session: {active.title} ({active.id[:8]})")


@main.command("five-whys")
@click.argument("problem")
@click.option("--depth", default=None, type=int, help="Number of whys (default: from config)")
@click.pass_context
def five_whys(ctx: click.Context, problem: str, depth: int | None) -> None:
    """Dig to the root cause of a problem, one "why?" at a time."""
    config, provider, language = _context(ctx)
    gateway = _build_gateway(config, provider)
    investigation = FiveWhysInvestigation(
        gateway, config.prompts, depth=depth or config.defaults.five_whys_depth, language=language
    )
    _run(_five_whys_loop(investigation, problem))


async def _five_whys_loop(investigation: FiveWhysInvestigation, problem: str) -> None:
    question = await investigation.start(problem)
    while True:
        console.print(f"\n[bold magenta]Why {len(investigation.steps) + 1}:[/bold magenta] {question}")
        answer = await _ask("Answer")
        if answer is None:
            return
        if not answer:
            continue
        try:
            with console.status("Thinking..."):
                result = await investigation.answer(answer)
        except GuardError as exc:
            _notice(exc)
            continue
        if isinstance(result, RootCauseAnalysis):
            print_root_cause(result)
            return
        question = result


# --- turn-taking loops ---

@main.command("think-tank")
@click.argument("idea")
@click.option("--rounds", default=None, type=int, help="Maximum rounds (default: from config)")
@click.option("--step", is_flag=True, help="Pause after every turn to continue, interject or stop")
@click.option("--export", "export_dir", default=None, help="Write the finished run as JSON into this directory")
@click.option("--save-markdown", is_flag=True, help="Also save a markdown transcript")
@click.pass_context
def think_tank(
    ctx: click.Context,
    idea: str,
    rounds: int | None,
    step: bool,
    export_dir: str | None,
    save_markdown: bool,
) -> None:
    """Two generated experts brainstorm IDEA; you steer as the Manager."""
    config, provider, language = _context(ctx)
    gateway = _build_gateway(config, provider)
    max_rounds = rounds or config.defaults.think_tank_rounds

    loop: ThinkTankLoop | None = None

    def on_event(event: LoopEvent) -> None:
        print_loop_event(event)
        if (
            step
            and event.kind is LoopEventKind.TURN_COMMITTED
            and event.turn is not None
            and event.turn.speaker is Speaker.AGENT
            and event.turn.kind is TurnKind.DIALOGUE
            and loop.phase is LoopPhase.RUNNING
        ):
            loop.pause()

    loop = ThinkTankLoop(
        gateway,
        _transcript_store(config),
        config.prompts,
        max_rounds=max_rounds,
        stop_policy=StopPolicy.from_config(config.loop),
        language=language,
        on_event=on_event,
    )
    _run(_drive_think_tank(loop, idea))

    if loop.phase is LoopPhase.DONE:
        doc = export_run(
            topic=idea,
            configuration={
                "mode": "think_tank",
                "provider": provider,
                "max_rounds": max_rounds,
                "personas": [s.label for s in loop.seats],
            },
            turns=loop.turns,
            artifact=loop.artifact.content if loop.artifact else None,
        )
        _export(doc, export_dir, save_markdown, config.defaults.output_dir, prefix="think-tank")


async def _drive_think_tank(loop: ThinkTankLoop, idea: str) -> None:
    with console.status("Assembling the experts..."):
        await loop.start(idea)
    console.print(f"\n[bold cyan]Think Tank[/bold cyan]: {' vs '.join(s.label for s in loop.seats)}")
    await loop.run()

    while loop.phase is LoopPhase.PAUSED:
        reply = await _ask("[Enter] continue, text to interject as Manager, /stop to finish")
        try:
            if reply is None or reply == "/stop":
                await loop.stop()
            elif reply:
                await loop.interject(reply)
            else:
                await loop.resume()
        except GuardError as exc:
            _notice(exc)


@main.command()
@click.argument("topic")
@click.option(
    "--difficulty",
    type=click.Choice([d.value for d in Difficulty], case_sensitive=False),
    default=Difficulty.EASY.value,
)
@click.option("--ally", is_flag=True, help="Let the ally persona argue your side from the start")
@click.option("--rounds", default=None, type=int, help="Total turns for both sides (default: from config)")
@click.option("--export", "export_dir", default=None, help="Write the finished debate as JSON into this directory")
@click.option("--save-markdown", is_flag=True, help="Also save a markdown transcript")
@click.pass_context
def debate(
    ctx: click.Context,
    topic: str,
    difficulty: str,
    ally: bool,
    rounds: int | None,
    export_dir: str | None,
    save_markdown: bool,
) -> None:
    """Defend TOPIC against an AI opponent, then get judged."""
    config, provider, language = _context(ctx)
    gateway = _build_gateway(config, provider)
    max_rounds = rounds or config.defaults.debate_rounds

    loop = DebateLoop(
        gateway,
        _transcript_store(config),
        config.prompts,
        max_rounds=max_rounds,
        difficulty=Difficulty(difficulty.upper()),
        ally_api_key=_ally_key(config.models[provider]),
        stop_policy=StopPolicy.from_config(config.loop),
        language=language,
        on_event=print_loop_event,
    )
    _run(_drive_debate(loop, topic, ally))

    if loop.scorecard is not None:
        print_scorecard(loop.scorecard)
        doc = export_run(
            topic=topic,
            configuration={
                "mode": "debate",
                "provider": provider,
                "difficulty": loop.difficulty.value,
                "max_rounds": max_rounds,
                "ally": loop.ally_active,
            },
            turns=loop.turns,
            artifact=loop.scorecard,
        )
        _export(doc, export_dir, save_markdown, config.defaults.output_dir, prefix="debate")


async def _enable_ally(loop: DebateLoop) -> None:
    """Hand the defender seat to the ally; a missing ally key keeps the debate going."""
    try:
        await loop.enable_ally()
    except MissingCredentialError as exc:
        console.print(f"[bold red]Missing API key:[/bold red] {exc}. The debate continues without an ally.")


async def _drive_debate(loop: DebateLoop, topic: str, ally: bool) -> None:
    await loop.start(topic)
    console.print(f"\n[bold cyan]Debate[/bold cyan] [{loop.difficulty.value}]: {topic}")
    await loop.run()
    if ally:
        await _enable_ally(loop)

    while loop.phase in (LoopPhase.RUNNING, LoopPhase.PAUSED):
        prompt = "Your argument (/ally, /stop)"
        if loop.phase is LoopPhase.PAUSED:
            prompt = "[Enter] resume, /stop to be judged now"
        reply = await _ask(prompt)
        try:
            if reply is None or reply == "/stop":
                await loop.stop()
            elif reply == "/ally":
                await _enable_ally(loop)
            elif reply:
                await loop.send(reply)
            elif loop.phase is LoopPhase.PAUSED:
                await loop.resume()
        except GuardError as exc:
            _notice(exc)


# --- scripted runs ---

@main.command()
@click.argument("problem")
@click.option("--options", default="", help="The options you are weighing, free text")
@click.option("--no-pace", is_flag=True, help="Show the whole board meeting at once")
@click.option("--export", "export_dir", default=None, help="Write the result as JSON into this directory")
@click.pass_context
def decide(ctx: click.Context, problem: str, options: str, no_pace: bool, export_dir: str | None) -> None:
    """Decision lab: a five-persona board meeting on PROBLEM."""
    config, provider, language = _context(ctx)
    orchestrator = ScriptedOrchestrator(_build_gateway(config, provider), config.prompts, language)
    pacing = RevealPacing.instant() if no_pace else RevealPacing.from_config(config.reveal)

    async def _go():
        with console.status("The board is meeting..."):
            artifact = await orchestrator.run_decision(problem, options)
        async for event in reveal(artifact, pacing):
            print_reveal_event(event)
        return artifact

    artifact = _run(_go())
    if export_dir:
        doc = export_run(
            topic=problem,
            configuration={"mode": "decision_lab", "provider": provider, "options": options},
            turns=[],
            artifact=artifact,
        )
        _export(doc, export_dir, False, config.defaults.output_dir, prefix="decision")


@main.command("six-hats")
@click.argument("topic")
@click.option("--no-pace", is_flag=True, help="Show all hats at once")
@click.option("--export", "export_dir", default=None, help="Write the report as JSON into this directory")
@click.pass_context
def six_hats(ctx: click.Context, topic: str, no_pace: bool, export_dir: str | None) -> None:
    """Six thinking hats report on TOPIC."""
    config, provider, language = _context(ctx)
    orchestrator = ScriptedOrchestrator(_build_gateway(config, provider), config.prompts, language)
    pacing = RevealPacing.instant() if no_pace else RevealPacing.from_config(config.reveal)

    async def _go():
        with console.status("Putting on the hats..."):
            artifact = await orchestrator.run_six_hats(topic)
        async for event in reveal(artifact, pacing):
            print_reveal_event(event)
        return artifact

    artifact = _run(_go())
    if export_dir:
        doc = export_run(
            topic=topic,
            configuration={"mode": "six_hats", "provider": provider},
            turns=[],
            artifact=artifact,
        )
        _export(doc, export_dir, False, config.defaults.output_dir, prefix="six-hats")


# --- one-shot tools ---

@main.command("first-principles")
@click.argument("problem")
@click.pass_context
def first_principles_cmd(ctx: click.Context, problem: str) -> None:
    """Deconstruct PROBLEM down to its core truths."""
    config, provider, language = _context(ctx)
    gateway = _build_gateway(config, provider)

    async def _go() -> str:
        with console.status("Deconstructing..."):
            return await first_principles(gateway, config.prompts, problem, language)

    print_markdown("First Principles", _run(_go()))


@main.command()
@click.argument("word")
@click.pass_context
def define(ctx: click.Context, word: str) -> None:
    """The devil's dictionary definition of WORD."""
    config, provider, language = _context(ctx)
    gateway = _build_gateway(config, provider)
    print_definition(_run(devils_dictionary(gateway, config.prompts, word, language)))


@main.command()
@click.pass_context
def check(ctx: click.Context) -> None:
    """Ping every provider that has an API key."""
    config, _, _ = _context(ctx)
    gateways = {
        name: PROVIDER_CLASSES[cfg.sdk](cfg)
        for name, cfg in config.models.items()
        if name in config.available_providers and cfg.sdk in PROVIDER_CLASSES
    }
    if not gateways:
        console.print("[bold red]Error:[/bold red] No providers available. Check API keys in .env.")
        sys.exit(1)

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    ) as progress:
        progress.add_task("Checking providers...", total=None)
        results = asyncio.run(run_health_checks(gateways))

    failed = 0
    for name in sorted(results):
        ok, err = results[name]
        if ok:
            console.print(f"  [green]OK  [/green] {name}")
        else:
            short_err = err.splitlines()[0][:120] if err else "unknown error"
            console.print(f"  [red]FAIL[/red] {name}: {short_err}")
            failed += 1
    if failed:
        sys.exit(1)


if __name__ == "__main__":
    main()
