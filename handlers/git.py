"""GitOperation handler."""

import logging
from typing import Any, Dict

from agent.intent import IntentResult
from confirmation import ConfirmationInputError, OTHER_LABEL
from handlers.base import (
    BLOCKED_READ_ONLY, CANCELED,
    Dependencies, Handler, ask, tool_failure,
)
from tools import is_mutating

logger = logging.getLogger(__name__)

DIFF_LINES = 50

# History-rewriting operations get a multiple-choice prompt instead of y/n
INTERACTIVE_OPS = ("reset", "rebase", "cherry-pick", "revert", "merge", "stash drop", "branch -d")


def needs_interaction(operation: str) -> bool:
    lowered = operation.lower()
    return any(op in lowered for op in INTERACTIVE_OPS)


def format_git_output(message: str, operation: str, output: str) -> str:
    out = [message.rstrip(), ""] if message.strip() and message.strip() != output.strip() else []
    if not output.strip():
        if operation == "status":
            out.append("✓ Nada a commitar, diretório de trabalho limpo")
        elif operation == "diff":
            out.append("✓ Nenhuma alteração detectada")
        else:
            out.append("✓ Operação concluída (sem output)")
        return "\n".join(out) + "\n"

    if operation == "status":
        out += ["📊 Status do repositório:", "", f"```\n{output.rstrip()}\n```"]
    elif operation == "log":
        out += ["📜 Histórico de commits:", "", f"```\n{output.rstrip()}\n```"]
    elif operation == "diff":
        lines = output.rstrip().split("\n")
        out += ["🔍 Diferenças:", "", "```diff"]
        out.extend(lines[:DIFF_LINES])
        if len(lines) > DIFF_LINES:
            out.append(f"\n... e mais {len(lines) - DIFF_LINES} linhas")
        out.append("```")
    elif operation == "branch":
        out += ["🌿 Branches:", "", f"```\n{output.rstrip()}\n```"]
    else:
        out += ["Output:", "", f"```\n{output.rstrip()}\n```"]
    return "\n".join(out) + "\n"


class GitHandler(Handler):
    name = "git"

    def handle(self, deps: Dependencies, result: IntentResult, user_message: str) -> str:
        operation = result.get_str("operation", "status").strip().lower() or "status"

        if is_mutating(operation):
            if not deps.mode.allows_writes():
                return BLOCKED_READ_ONLY
            if deps.mode.requires_confirmation():
                if needs_interaction(operation):
                    chosen = self._ask_operation(deps, operation)
                    if not chosen:
                        return CANCELED
                    operation = chosen
                elif not ask(deps.confirmation.confirm, f"Executar git {operation}", self._details(result)):
                    return CANCELED

        params: Dict[str, Any] = {k: v for k, v in result.parameters.items() if k != "operation"}
        params["operation"] = operation
        tool_result = deps.tools.execute("git_operations", params, deps.cancel)
        if not tool_result.success:
            raise tool_failure(tool_result)
        output = tool_result.data.get("output")
        return format_git_output(tool_result.message, operation, output if isinstance(output, str) else "")

    @staticmethod
    def _details(result: IntentResult) -> str:
        return "\n".join(f"{k}: {v}" for k, v in result.parameters.items() if k != "operation")

    @staticmethod
    def _ask_operation(deps: Dependencies, operation: str) -> str:
        """Returns the operation to run, or "" when the user cancels."""
        try:
            answer = deps.confirmation.ask_question(
                f"Confirmar operação Git: {operation}?",
                [
                    ("Executar", f"Executar '{operation}' como especificado"),
                    ("Cancelar", "Cancelar esta operação"),
                ],
                "Git Op",
            )
        except ConfirmationInputError as e:
            logger.warning(f"Git confirmation input failed: {e}")
            return ""
        if answer.selected_label == "Cancelar":
            return ""
        if answer.selected_label == OTHER_LABEL and answer.custom_input.strip():
            return answer.custom_input.strip().lower()
        return operation
