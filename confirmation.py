"""
Terminal confirmation gate for destructive actions.
Synchronous and single-user: one prompt at a time, answers read line by line.
"""

import logging
import sys
import threading
from dataclasses import dataclass
from typing import IO, Optional, Sequence, Tuple

from rich.console import Console
from rich.markup import escape as rich_escape

logger = logging.getLogger(__name__)

# Affirmative/negative answers, Portuguese and English
YES_TOKENS = frozenset({"s", "sim", "y", "yes"})
NO_TOKENS = frozenset({"n", "não", "nao", "no"})
DANGER_TOKEN = "CONFIRMO"
OTHER_LABEL = "Other"

RULE = "─" * 60


class ConfirmationInputError(Exception):
    """The input stream failed or was closed while waiting for an answer"""
    pass


@dataclass
class Answer:
    selected_label: str
    custom_input: str = ""


class ConfirmationManager:
    """Asks the user before side effects. Never mutates application state."""

    def __init__(self, input_stream: Optional[IO[str]] = None, console: Optional[Console] = None):
        self._input = input_stream if input_stream is not None else sys.stdin
        self.console = console or Console(highlight=False)
        self._lock = threading.Lock()

    def _read_answer(self, prompt: str) -> str:
        self.console.print(prompt, end="")
        try:
            line = self._input.readline()
        except (OSError, ValueError) as e:
            raise ConfirmationInputError(f"failed to read answer: {e}") from e
        if line == "":
            raise ConfirmationInputError("input stream closed")
        return line.strip()

    def _header(self, title: str, style: str, action: str) -> None:
        self.console.print(f"\n[bold {style}]{title}[/bold {style}]")
        self.console.print(f"\nAção: {rich_escape(action)}")

    def confirm(self, action: str, details: str = "") -> bool:
        with self._lock:
            self._header("⚠️  CONFIRMAÇÃO NECESSÁRIA", "yellow", action)
            if details:
                self.console.print(f"Detalhes:\n{rich_escape(details)}")
            response = self._read_answer("\n[bold yellow]Deseja continuar? (s/n): [/bold yellow]").lower()

        if response in YES_TOKENS:
            self.console.print("[bold green]✓ Confirmado[/bold green]")
            return True
        if response in NO_TOKENS:
            self.console.print("[bold red]✗ Cancelado[/bold red]")
        else:
            self.console.print("[bold red]✗ Resposta inválida. Cancelando.[/bold red]")
        logger.info(f"Confirmation declined: {action}")
        return False

    def confirm_with_preview(self, action: str, preview: str) -> bool:
        with self._lock:
            self._header("⚠️  CONFIRMAÇÃO NECESSÁRIA", "yellow", action)
            if preview:
                self.console.print("\nPreview:")
                self.console.print(RULE)
                self.console.print(rich_escape(preview))
                self.console.print(RULE)
            response = self._read_answer("\n[bold yellow]Deseja continuar? (s/n): [/bold yellow]").lower()

        if response in YES_TOKENS:
            self.console.print("[bold green]✓ Confirmado[/bold green]")
            return True
        self.console.print("[bold red]✗ Cancelado[/bold red]")
        logger.info(f"Confirmation declined: {action}")
        return False

    def confirm_dangerous_action(self, action: str, warning: str = "") -> bool:
        """Only the literal DANGER_TOKEN (case-sensitive) confirms."""
        with self._lock:
            self._header("⚠️  ATENÇÃO: AÇÃO POTENCIALMENTE PERIGOSA ⚠️", "red", action)
            if warning:
                self.console.print(f"\n[bold red]Aviso:\n{rich_escape(warning)}[/bold red]")
            response = self._read_answer(
                f"\n[bold red]Tem CERTEZA que deseja continuar? Digite '{DANGER_TOKEN}' para prosseguir: [/bold red]"
            )

        if response == DANGER_TOKEN:
            self.console.print("[bold green]✓ Confirmado[/bold green]")
            return True
        self.console.print("[bold red]✗ Cancelado por segurança[/bold red]")
        logger.info(f"Dangerous action declined: {action}")
        return False

    def ask_question(
        self,
        question: str,
        options: Sequence[Tuple[str, str]],
        header: str = "",
    ) -> Answer:
        """
        Numbered single-choice question. An extra "Other" entry lets the user
        type a free-form answer. Invalid selections are asked again.
        """
        if not question:
            raise ValueError("question is required")
        if len(options) < 2:
            raise ValueError("at least two options are required")

        with self._lock:
            if header:
                self.console.print(f"\n[bold yellow]{rich_escape(f'[{header}]')}[/bold yellow]")
            self.console.print(f"\n{rich_escape(question)}\n")
            for i, (label, description) in enumerate(options, 1):
                self.console.print(f"{i}. {rich_escape(label)}")
                if description:
                    self.console.print(f"   {rich_escape(description)}")
            other_index = len(options) + 1
            self.console.print(f"{other_index}. {OTHER_LABEL} (digite sua resposta customizada)\n")

            while True:
                response = self._read_answer(f"[bold yellow]Selecione uma opção (1-{other_index}): [/bold yellow]")
                try:
                    choice = int(response)
                except ValueError:
                    self.console.print("[red]Opção inválida.[/red]")
                    continue
                if 1 <= choice <= len(options):
                    return Answer(selected_label=options[choice - 1][0])
                if choice == other_index:
                    custom = self._read_answer("Sua resposta: ")
                    return Answer(selected_label=OTHER_LABEL, custom_input=custom)
                self.console.print("[red]Opção inválida.[/red]")
