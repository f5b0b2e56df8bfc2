"""Command line entry point for Coworkbot."""

import asyncio
import signal
import sys
from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm, Prompt

from coworkbot.agent import Agent
from coworkbot.config import Config, set_config
from coworkbot.content import WorkMode
from coworkbot.events import AgentEvent, EventChannel, EventType
from coworkbot.logging import configure_logging, get_logger

log = get_logger(__name__)

app = typer.Typer(help="Coworkbot - an agent that works with your files and asks before it acts")
console = Console()

_HELP = "Commands: /mode chat|code|cowork, /clear, /exit"


def _load_config(config: str, model: str, provider: str, mode: str, verbose: bool) -> Config:
    cfg = Config.from_yaml(Path(config)) if config else Config.load()
    if model:
        cfg.model.model = model
    if provider:
        cfg.model.provider = provider
    if mode:
        cfg.agent.work_mode = WorkMode.parse(mode).value
    if verbose:
        cfg.logging.level = "DEBUG"
    set_config(cfg)
    configure_logging(cfg)
    return cfg


class ConsoleRenderer:
    """Draw agent events and answer confirmations and questions from the terminal."""

    def __init__(self, agent: Agent, channel: EventChannel):
        self.agent = agent
        self.channel = channel
        self._streaming = False

    async def run(self) -> None:
        while True:
            event = await self.channel.get()
            await self.handle(event)

    def _end_stream(self) -> None:
        if self._streaming:
            console.print()
            self._streaming = False

    async def handle(self, event: AgentEvent) -> None:
        payload = event.payload
        if event.type == EventType.TOKEN_EMITTED:
            console.print(payload.get("token", ""), end="", markup=False, highlight=False)
            self._streaming = True
        elif event.type == EventType.TOOL_CALL_STARTED:
            self._end_stream()
            console.print(f"[cyan]> {payload['name']}[/cyan] [dim]{payload.get('input', {})}[/dim]")
        elif event.type == EventType.TOOL_OUTPUT_CHUNK:
            style = "red" if payload.get("stream") == "stderr" else "dim"
            console.print(payload.get("chunk", ""), end="", style=style, markup=False, highlight=False)
        elif event.type == EventType.TOOL_CALL_FINISHED:
            if payload.get("status") == "error":
                console.print(f"[red]x {payload['name']}: {payload.get('error', 'failed')}[/red]")
            else:
                console.print(f"[green]ok {payload['name']}[/green]")
        elif event.type == EventType.CONFIRMATION_REQUESTED:
            self._end_stream()
            await self._confirm(payload)
        elif event.type == EventType.QUESTION_REQUESTED:
            self._end_stream()
            await self._ask(payload)
        elif event.type == EventType.TODO_RECOMMENDED:
            console.print(
                f"[yellow]Planning recommended ({payload['complexity']}, "
                f"~{payload['estimatedSteps']} steps): {payload['reason']}[/yellow]"
            )
        elif event.type == EventType.ARTIFACT_CREATED:
            console.print(f"[magenta]artifact[/magenta] {payload['path']}")
        elif event.type == EventType.ERROR:
            self._end_stream()
            console.print(Panel(payload.get("message", ""), title="Error", border_style="red"))
        elif event.type == EventType.STATUS:
            if payload.get("discardStreamed") and self._streaming:
                console.print(" [dim](discarded)[/dim]")
                self._streaming = False
            console.print(f"[dim]{payload.get('message', '')}[/dim]")
        elif event.type == EventType.STAGE_CHANGED and payload.get("stage") == "IDLE":
            self._end_stream()

    async def _confirm(self, payload: dict) -> None:
        console.print(Panel(f"{payload.get('tool')}\n{payload.get('args', {})}", title="Confirm tool call"))
        approved = await asyncio.to_thread(Confirm.ask, "Allow?", default=False)
        remember = False
        if approved:
            remember = await asyncio.to_thread(Confirm.ask, "Remember this decision?", default=False)
        self.agent.respond_confirmation(payload["id"], approved, remember=remember)

    async def _ask(self, payload: dict) -> None:
        options = payload.get("options") or []
        question = payload.get("question", "")
        if options:
            answer = await asyncio.to_thread(Prompt.ask, question, choices=options)
        else:
            answer = await asyncio.to_thread(Prompt.ask, question)
        self.agent.respond_question(payload["id"], answer)


class _ErrorCollector:
    def __init__(self, errors: list[str]):
        self.errors = errors

    def on_event(self, event: AgentEvent) -> None:
        if event.type == EventType.ERROR:
            self.errors.append(str(event.payload.get("message", "")))


async def _chat(cfg: Config) -> None:
    channel = EventChannel()
    agent = Agent(config=cfg, observers=[channel])
    renderer = ConsoleRenderer(agent, channel)
    render_task = asyncio.create_task(renderer.run())
    loop = asyncio.get_running_loop()

    console.print(Panel(f"Coworkbot ({agent.work_mode.value} mode)\n{_HELP}", border_style="blue"))
    try:
        while True:
            text = (await asyncio.to_thread(Prompt.ask, "[bold]you[/bold]")).strip()
            if not text:
                continue
            if text in ("/exit", "/quit"):
                break
            if text == "/clear":
                agent.clear_history()
                console.print("[dim]History cleared.[/dim]")
                continue
            if text.startswith("/mode"):
                try:
                    mode = agent.set_work_mode(text.split(maxsplit=1)[1])
                except (IndexError, ValueError):
                    console.print(f"[red]{_HELP}[/red]")
                    continue
                console.print(f"[dim]Mode: {mode.value}[/dim]")
                continue

            try:
                loop.add_signal_handler(signal.SIGINT, agent.abort)
            except NotImplementedError:
                pass
            try:
                await agent.submit(text)
            finally:
                try:
                    loop.remove_signal_handler(signal.SIGINT)
                except NotImplementedError:
                    pass
            while not channel.queue.empty():
                await asyncio.sleep(0.01)
    finally:
        render_task.cancel()
        await agent.shutdown()


@app.command()
def chat(
    config: str = typer.Option("", "-c", "--config", help="Path to config file"),
    model: str = typer.Option("", "-m", "--model", help="Override model"),
    provider: str = typer.Option("", "-p", "--provider", help="Override provider"),
    mode: str = typer.Option("", "--mode", help="Work mode: chat, code or cowork"),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Debug logging"),
) -> None:
    """Start an interactive session."""
    cfg = _load_config(config, model, provider, mode, verbose)
    try:
        asyncio.run(_chat(cfg))
    except KeyboardInterrupt:
        log.info("Shutting down...")
        sys.exit(0)


@app.command()
def check(
    config: str = typer.Option("", "-c", "--config", help="Path to config file"),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Debug logging"),
) -> None:
    """Check that the configured provider is reachable."""
    cfg = _load_config(config, "", "", "", verbose)

    async def _check() -> bool:
        errors: list[str] = []
        agent = Agent(config=cfg, observers=[_ErrorCollector(errors)])
        try:
            ok = await agent.check_connection()
        finally:
            await agent.shutdown()
        for message in errors:
            console.print(f"[red]{message}[/red]")
        return ok

    ok = asyncio.run(_check())
    if ok:
        console.print(f"[green]Connected to {cfg.model.provider} ({cfg.model.model})[/green]")
    else:
        raise typer.Exit(code=1)


@app.command()
def version() -> None:
    """Show version information."""
    from coworkbot import __version__
    console.print(f"Coworkbot v{__version__}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
