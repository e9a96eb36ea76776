"""
Slash commands for the REPL (/help, /mode, /edit, /agents, ...).

Commands act on the Agent directly and never go through intent detection.
"""

import logging
import os
import shlex
import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from differ import DiffError, NoEditHistoryError, parse_range
from handlers.base import BLOCKED_READ_ONLY, CANCELED, ask
from modes import is_valid_mode, parse_mode
from subagent import SubagentError, spawn_default
from subagent.types import parse_subagent_type

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 10
HISTORY_PREVIEW_CHARS = 200


class CommandError(Exception):
    """User-facing failure of a slash command."""


class DuplicateCommandError(CommandError):
    pass


CommandFunc = Callable[["CommandRegistry", List[str]], str]


@dataclass
class Command:
    name: str
    description: str
    usage: str
    func: CommandFunc


class CommandRegistry:
    """Name -> Command map. Built-ins are registered on construction."""

    def __init__(self, agent):
        self.agent = agent
        self._commands: Dict[str, Command] = {}
        self._lock = threading.Lock()
        self._register_builtins()

    def register(self, command: Command) -> None:
        with self._lock:
            if command.name in self._commands:
                raise DuplicateCommandError(f"command {command.name} already registered")
            self._commands[command.name] = command

    def get(self, name: str) -> Optional[Command]:
        with self._lock:
            return self._commands.get(name)

    def list(self) -> List[Command]:
        with self._lock:
            return sorted(self._commands.values(), key=lambda c: c.name)

    @staticmethod
    def is_command(text: str) -> bool:
        text = (text or "").strip()
        return len(text) > 1 and text.startswith("/")

    def execute(self, name: str, args: List[str]) -> str:
        command = self.get(name)
        if command is None:
            return f"❌ Comando desconhecido: /{name}. Use /help para ver os comandos"
        try:
            return command.func(self, args)
        except (CommandError, DiffError, SubagentError, ValueError) as e:
            return f"❌ Erro: {e}"

    def parse_and_execute(self, text: str) -> str:
        if not self.is_command(text):
            return "❌ Não é um comando"
        try:
            parts = shlex.split(text.strip()[1:])
        except ValueError as e:
            return f"❌ Erro ao interpretar comando: {e}"
        if not parts:
            return "❌ Não é um comando"
        logger.debug(f"Slash command /{parts[0]} args={parts[1:]}")
        return self.execute(parts[0], parts[1:])

    def _register_builtins(self) -> None:
        for command in BUILTIN_COMMANDS + EDIT_COMMANDS:
            self.register(command)
        if getattr(self.agent, "subagents", None) is not None:
            for command in SUBAGENT_COMMANDS:
                self.register(command)


# ============================================================
# Built-ins
# ============================================================

def _help(registry: CommandRegistry, args: List[str]) -> str:
    if args:
        command = registry.get(args[0].lstrip("/"))
        if command is None:
            return f"Comando não encontrado: {args[0]}"
        return f"Comando: /{command.name}\nDescrição: {command.description}\nUso: {command.usage}"

    lines = ["Comandos disponíveis:", ""]
    for command in registry.list():
        lines.append(f"  /{command.name} - {command.description}")
    lines.append("")
    lines.append("Digite /help <comando> para detalhes")
    return "\n".join(lines)


def _clear(registry: CommandRegistry, args: List[str]) -> str:
    registry.agent.clear_history()
    return "✓ Histórico limpo"


def _parse_positive_int(value: str, what: str) -> int:
    try:
        n = int(value)
    except ValueError:
        raise CommandError(f"{what} inválido: {value}")
    if n <= 0:
        raise CommandError(f"{what} deve ser positivo: {value}")
    return n


def _history(registry: CommandRegistry, args: List[str]) -> str:
    limit = _parse_positive_int(args[0], "limite") if args else DEFAULT_HISTORY_LIMIT
    messages = registry.agent.get_history()[-limit:]
    if not messages:
        return "Histórico vazio"

    lines = [f"Últimas {len(messages)} mensagens:", ""]
    for msg in messages:
        content = msg.content.replace("\n", " ")
        if len(content) > HISTORY_PREVIEW_CHARS:
            content = content[:HISTORY_PREVIEW_CHARS] + "..."
        lines.append(f"[{msg.role}] {content}")
    return "\n".join(lines)


def _status(registry: CommandRegistry, args: List[str]) -> str:
    agent = registry.agent
    mode = agent.get_mode()
    lines = [
        f"Modo: {mode.value} ({mode.description})",
        f"Diretório: {agent.get_work_dir()}",
        f"Mensagens: {len(agent.get_history())}",
    ]
    recent = agent.get_recent_files()
    if recent:
        lines.append(f"Arquivos recentes: {', '.join(recent)}")
    router_stats = agent.router.stats()
    lines.append(f"Modelos em cache: {router_stats.get('cached_clients', 0)}")
    if agent.subagents is not None:
        lines.append(f"Subagentes ativos: {agent.subagents.active}")
    return "\n".join(lines)


def _mode(registry: CommandRegistry, args: List[str]) -> str:
    agent = registry.agent
    if not args:
        current = agent.get_mode()
        return (
            f"Modo atual: {current.value}\n\n"
            "Modos disponíveis:\n"
            "- readonly\n"
            "- interactive\n"
            "- autonomous"
        )
    if not is_valid_mode(args[0]):
        raise CommandError(f"modo inválido: {args[0]} (use readonly, interactive ou autonomous)")
    mode = parse_mode(args[0])
    agent.set_mode(mode)
    return f"✓ Modo alterado para: {mode.value}"


BUILTIN_COMMANDS = [
    Command("help", "Mostra os comandos disponíveis", "/help [comando]", _help),
    Command("clear", "Limpa o histórico da conversa", "/clear", _clear),
    Command("history", "Mostra o histórico da conversa", "/history [limite]", _history),
    Command("status", "Mostra o estado atual", "/status", _status),
    Command("mode", "Mostra ou altera o modo de operação", "/mode [readonly|interactive|autonomous]", _mode),
]


# ============================================================
# Subagent commands
# ============================================================

def _agents(registry: CommandRegistry, args: List[str]) -> str:
    manager = registry.agent.subagents
    stats = manager.stats()
    lines = [
        f"Subagentes: {stats['total_agents']} "
        f"(ativos {stats['active_agents']}/{stats['max_concurrent']}, "
        f"concluídos {stats['total_completed']}, falhas {stats['total_failed']})",
    ]
    for agent in manager.list():
        lines.append(f"  {agent.id}  {agent.type.value:<8} {agent.get_status().value:<10} {agent.prompt[:60]}")
    return "\n".join(lines)


def _spawn(registry: CommandRegistry, args: List[str]) -> str:
    if len(args) < 2:
        raise CommandError("uso: /spawn <explore|plan|execute|general> <prompt>")
    agent_type = parse_subagent_type(args[0])
    sub = spawn_default(registry.agent.subagents, agent_type, " ".join(args[1:]), registry.agent.get_work_dir())
    return f"✓ Subagente iniciado: {sub.id} ({sub.type.value})"


def _wait(registry: CommandRegistry, args: List[str]) -> str:
    if not args:
        raise CommandError("uso: /wait <id> [timeout]")
    manager = registry.agent.subagents
    if len(args) > 1:
        result = manager.wait_with_timeout(args[0], float(args[1]))
    else:
        result = manager.wait(args[0])
    return f"✓ Subagente {args[0]} concluído:\n\n{result}"


def _kill(registry: CommandRegistry, args: List[str]) -> str:
    if not args:
        raise CommandError("uso: /kill <id>")
    registry.agent.subagents.kill(args[0])
    return f"✓ Subagente {args[0]} finalizado"


SUBAGENT_COMMANDS = [
    Command("agents", "Lista os subagentes", "/agents", _agents),
    Command("spawn", "Inicia um subagente em segundo plano", "/spawn <tipo> <prompt>", _spawn),
    Command("wait", "Aguarda o resultado de um subagente", "/wait <id> [timeout]", _wait),
    Command("kill", "Finaliza um subagente", "/kill <id>", _kill),
]


# ============================================================
# Range edits
# ============================================================

def _read_text(agent, file_path: str) -> str:
    result = agent.tools.execute("file_reader", {"file_path": file_path})
    if not result.success:
        raise CommandError(result.error)
    if result.data.get("type") != "text":
        raise CommandError(f"não é um arquivo de texto: {file_path}")
    return result.data["content"]


def _write_text(agent, file_path: str, content: str) -> None:
    result = agent.tools.execute("file_writer", {"file_path": file_path, "content": content, "mode": "create"})
    if not result.success:
        raise CommandError(result.error)
    agent.add_recent_file(file_path)


def _approved(agent, action: str, preview: str) -> bool:
    if not agent.get_mode().requires_confirmation():
        return True
    if agent.confirmation is None:
        return False
    return ask(agent.confirmation.confirm_with_preview, action, preview)


def _edit(registry: CommandRegistry, args: List[str]) -> str:
    if len(args) < 2:
        raise CommandError("uso: /edit <arquivo> <início:fim> [texto]")
    agent = registry.agent
    if not agent.get_mode().allows_writes():
        return BLOCKED_READ_ONLY

    file_path = os.path.normpath(args[0])
    edit_range = parse_range(args[1])
    # a literal \n in the text starts a new line
    edit_range.text = " ".join(args[2:]).replace("\\n", "\n")
    content = _read_text(agent, file_path)

    new_content, diff = agent.differ.apply_edit(file_path, content, edit_range)
    preview = agent.previewer.preview_range(file_path, content, edit_range)
    if not _approved(agent, f"Editar linhas {edit_range.start}-{edit_range.end} de {file_path}?", preview):
        agent.differ.rollback(file_path)
        return CANCELED
    try:
        _write_text(agent, file_path, new_content)
    except CommandError:
        agent.differ.rollback(file_path)
        raise
    return f"✓ Linhas {edit_range.start}-{edit_range.end} editadas em {file_path}\n{agent.previewer.compact_preview(diff)}"


def _undo(registry: CommandRegistry, args: List[str]) -> str:
    if not args:
        raise CommandError("uso: /undo <arquivo>")
    agent = registry.agent
    if not agent.get_mode().allows_writes():
        return BLOCKED_READ_ONLY

    file_path = os.path.normpath(args[0])
    history = agent.differ.get_history(file_path)
    if not history:
        raise NoEditHistoryError(f"nenhuma edição para desfazer em {file_path}")
    current = _read_text(agent, file_path)
    diff = agent.differ.compute_diff(file_path, current, history[-1].old_content)
    if not _approved(agent, f"Desfazer a última edição em {file_path}?", agent.previewer.preview(diff)):
        return CANCELED

    _write_text(agent, file_path, agent.differ.rollback(file_path))
    remaining = len(agent.differ.get_history(file_path))
    return f"✓ Edição desfeita em {file_path} ({remaining} restantes)\n{agent.previewer.compact_preview(diff)}"


EDIT_COMMANDS = [
    Command("edit", "Substitui um intervalo de linhas de um arquivo", "/edit <arquivo> <início:fim> [texto]", _edit),
    Command("undo", "Desfaz a última edição de intervalo de um arquivo", "/undo <arquivo>", _undo),
]
