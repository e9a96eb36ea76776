"""ExecuteCommand handler."""

import logging

from agent.intent import IntentResult
from handlers.base import (
    BLOCKED_READ_ONLY, CANCELED,
    Dependencies, Handler, HandlerError, ask,
)
from tools import is_dangerous

logger = logging.getLogger(__name__)


class ExecuteHandler(Handler):
    """Runs shell commands; dangerous ones need the strict confirmation token."""

    name = "execute"

    def handle(self, deps: Dependencies, result: IntentResult, user_message: str) -> str:
        command = result.get_str("command").strip()
        if not command:
            raise HandlerError("comando não especificado")
        if not deps.mode.allows_writes():
            return BLOCKED_READ_ONLY

        dangerous = is_dangerous(command)
        if deps.mode.requires_confirmation():
            if dangerous:
                confirmed = ask(
                    deps.confirmation.confirm_dangerous_action,
                    f"Executar comando: {command}",
                    "Este comando pode apagar dados ou danificar o sistema.",
                )
            else:
                confirmed = ask(deps.confirmation.confirm, f"Executar comando: {command}", "")
            if not confirmed:
                return CANCELED
        elif dangerous:
            logger.warning(f"Running dangerous command without confirmation: {command}")

        tool_result = deps.tools.execute("command_executor", {"command": command}, deps.cancel)
        data = tool_result.data
        stdout = data.get("stdout") if isinstance(data.get("stdout"), str) else ""
        stderr = data.get("stderr") if isinstance(data.get("stderr"), str) else ""
        if not tool_result.success and "exit_code" not in data:
            raise HandlerError(tool_result.error)

        exit_code = data.get("exit_code")
        out = [f"$ {command}"]
        if stdout.strip():
            out.append(f"```\n{stdout.rstrip()}\n```")
        if stderr.strip():
            out.append(f"stderr:\n```\n{stderr.rstrip()}\n```")
        if tool_result.success:
            out.append("✓ Comando executado com sucesso")
        else:
            out.append(f"❌ Comando falhou (exit code {exit_code})")
        return "\n".join(out)
