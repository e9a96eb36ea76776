"""
Ollama Code - a local coding assistant powered by Ollama.
Terminal REPL (chat) and one-shot questions (ask), rendered with Rich.
"""

import argparse
import logging
import os
import sys
import threading
from typing import List, Optional

from rich.console import Console
from rich.markup import escape as rich_escape
from rich.panel import Panel
from rich.table import Table

from agent.core import Agent, ERROR_PREFIX
from commands import CommandRegistry
from config import Config, apply_overrides, load_config
from confirmation import ConfirmationManager
from modes import OperationMode, is_valid_mode, parse_mode
from multimodel import ModelRouter, TaskType, default_router_config, single_model_config
from subagent import SubagentExecutor, SubagentManager
from websearch import WebSearchOrchestrator

logger = logging.getLogger(__name__)

console = Console(highlight=False)

EXIT_WORDS = {"exit", "quit"}


def configure_logging(config: Config) -> None:
    # Log to a file so it doesn't interleave with the terminal output
    logging.basicConfig(
        filename=config.app.log_file,
        level=getattr(logging, config.app.log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


# ============================================================
# Wiring
# ============================================================

def build_router(config: Config, model_override: Optional[str] = None) -> ModelRouter:
    model = model_override or config.ollama.pinned_model()
    if model:
        logger.info(f"Routing every task type to {model}")
        router_config = single_model_config(model)
    else:
        router_config = default_router_config()
    # general-purpose answers follow OLLAMA_TEMPERATURE / OLLAMA_MAX_TOKENS
    for spec in (router_config.models[TaskType.DEFAULT], router_config.default_model):
        spec.temperature = config.ollama.temperature
        spec.max_tokens = config.ollama.max_tokens
    return ModelRouter(router_config, base_url=config.ollama.url)


def console_sink(text: str) -> None:
    console.out(text, end="", highlight=False)
    console.file.flush()


def build_agent(config: Config, mode: OperationMode, model_override: Optional[str] = None) -> Agent:
    router = build_router(config, model_override)

    web_search = None
    if config.app.enable_web_search:
        web_search = WebSearchOrchestrator(
            max_results=config.performance.max_search_results,
            cache_ttl=config.performance.web_search_cache_ttl,
        )

    subagents = SubagentManager(
        SubagentExecutor(router).as_executor_func(),
        max_concurrent=config.app.max_subagents,
    )

    logger.info(f"Starting agent in {config.app.work_dir} (mode={mode.value}, url={config.ollama.url})")
    return Agent(
        router=router,
        confirmation=ConfirmationManager(console=console),
        mode=mode,
        work_dir=config.app.work_dir,
        web_search=web_search,
        subagents=subagents,
        sink=console_sink,
        command_timeout=config.app.command_timeout,
    )


def run_turn(agent: Agent, message: str) -> str:
    """Process one message on a worker thread so Ctrl+C can cancel it."""
    outcome = {"text": ""}

    def work():
        outcome["text"] = agent.process_message(message)

    worker = threading.Thread(target=work, name="turn", daemon=True)
    worker.start()
    while worker.is_alive():
        try:
            worker.join(0.1)
        except KeyboardInterrupt:
            console.print("\n[yellow]⚠ Cancelando...[/yellow]")
            agent.cancel()
    return outcome["text"]


# ============================================================
# REPL
# ============================================================

def print_banner(agent: Agent) -> None:
    mode = agent.get_mode()
    console.print(Panel.fit(
        f"[bold]Ollama Code[/bold]\n"
        f"Diretório: {rich_escape(agent.get_work_dir())}\n"
        f"Modo: {mode.value} ({mode.description})",
        border_style="cyan",
    ))
    console.print("[dim]Digite 'help' para ajuda, 'exit' para sair.[/dim]\n")


def print_help() -> None:
    tbl = Table(show_header=False, box=None, padding=(0, 2))
    tbl.add_column(style="bold cyan")
    tbl.add_column()
    tbl.add_row("help", "Mostra esta ajuda")
    tbl.add_row("clear", "Limpa o histórico da conversa")
    tbl.add_row("mode", "Mostra o modo atual")
    tbl.add_row("pwd", "Mostra o diretório de trabalho")
    tbl.add_row("exit, quit", "Sai")
    tbl.add_row("/help", "Lista os comandos com barra")
    console.print(tbl)


def repl(agent: Agent, initial_message: str = "") -> int:
    commands = CommandRegistry(agent)
    print_banner(agent)

    if initial_message:
        run_turn(agent, initial_message)

    while True:
        try:
            line = console.input("[bold cyan]>>> [/bold cyan]")
        except EOFError:
            console.print()
            break
        except KeyboardInterrupt:
            console.print("\n[dim]Use 'exit' para sair.[/dim]")
            continue

        text = line.strip()
        if not text:
            continue
        lowered = text.lower()

        if lowered in EXIT_WORDS:
            break
        if lowered == "help":
            print_help()
        elif lowered == "clear":
            agent.clear_history()
            console.print("[green]✓ Histórico limpo[/green]")
        elif lowered == "mode":
            mode = agent.get_mode()
            console.print(f"Modo atual: {mode.value} ({mode.description})")
        elif lowered == "pwd":
            console.print(rich_escape(agent.get_work_dir()))
        elif commands.is_command(text):
            console.print(rich_escape(commands.parse_and_execute(text)))
        else:
            run_turn(agent, text)
        console.print()

    console.print("[dim]Até logo![/dim]")
    return 0


# ============================================================
# Subcommands
# ============================================================

def cmd_chat(args: argparse.Namespace, config: Config) -> int:
    if args.mode and not is_valid_mode(args.mode):
        console.print(f"[red]Modo inválido: {rich_escape(args.mode)}[/red]")
        return 1
    mode = parse_mode(config.app.mode)
    agent = build_agent(config, mode, args.model)
    return repl(agent, " ".join(args.message))


def cmd_ask(args: argparse.Namespace, config: Config) -> int:
    agent = build_agent(config, OperationMode.READ_ONLY, args.model)
    text = agent.process_message(args.question)
    return 1 if text.startswith(ERROR_PREFIX) else 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ollama-code",
        description="Ollama Code - local coding assistant",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py chat                          Interactive session in the current directory
  python main.py chat --mode autonomous        Apply changes without asking
  python main.py ask "what does main.py do?"   One-shot, read-only question
        """,
    )
    sub = parser.add_subparsers(dest="command")

    def common(p: argparse.ArgumentParser) -> None:
        p.add_argument("--model", help="Use this model for every task type")
        p.add_argument("--url", help="Ollama server URL (default: http://localhost:11434)")
        p.add_argument("--workdir", help="Working directory (default: current directory)")
        p.add_argument("--debug", action="store_true", help="Debug logging")

    chat = sub.add_parser("chat", help="Interactive session")
    chat.add_argument("--mode", help="read-only | interactive | autonomous")
    common(chat)
    chat.add_argument("message", nargs="*", help="Initial message")

    ask = sub.add_parser("ask", help="One-shot question (read-only)")
    ask.add_argument("question", help="The question")
    common(ask)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 1

    config = apply_overrides(
        load_config(),
        mode=getattr(args, "mode", None),
        model=args.model,
        url=args.url,
        work_dir=args.workdir,
        debug=args.debug,
    )
    configure_logging(config)

    work_dir = os.path.abspath(config.app.work_dir)
    if not os.path.isdir(work_dir):
        console.print(f"[red]Erro: {rich_escape(work_dir)} não é um diretório[/red]")
        return 1
    config.app.work_dir = work_dir

    try:
        if args.command == "ask":
            return cmd_ask(args, config)
        return cmd_chat(args, config)
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrompido[/yellow]")
        return 1
    except Exception as e:
        logger.exception("Fatal error")
        console.print(f"[red]Erro: {rich_escape(str(e))}[/red]")
        return 1


if __name__ == "__main__":
    sys.exit(main())
