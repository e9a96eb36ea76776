"""WriteFile handler: mode gate, parameter recovery, diff preview, confirmation, write."""

import logging
from typing import Any, Dict, Optional

from agent.intent import IntentResult, IntentParseError, extract_json_object
from handlers.base import (
    BLOCKED_READ_ONLY, CANCELED,
    Dependencies, Handler, HandlerError, ask, llm_complete, tool_failure,
)
from multimodel import TaskType
from tools.file_ops import WRITE_MODES

logger = logging.getLogger(__name__)

PREVIEW_CHARS = 500

EXTRACT_PROMPT = """Extract the file to write from the request below.

User request: {message}
{suggested}Working directory: {work_dir}

Output ONLY a JSON object with 'file_path' and 'content' fields.
Example:
{{"file_path": "example.py", "content": "print('hello')\\n"}}"""


class FileWriteHandler(Handler):
    name = "file_write"

    def handle(self, deps: Dependencies, result: IntentResult, user_message: str) -> str:
        if not deps.mode.allows_writes():
            return BLOCKED_READ_ONLY

        params: Dict[str, Any] = dict(result.parameters)
        mode = result.get_str("mode", "create") or "create"
        if mode not in WRITE_MODES:
            raise HandlerError(f"modo de escrita inválido: {mode}")
        params["mode"] = mode

        if mode == "replace":
            return self._replace(deps, params)

        file_path = result.get_str("file_path").strip()
        content = params.get("content")
        if not file_path or not isinstance(content, str):
            file_path, content = self._extract(deps, user_message, file_path)

        if deps.mode.requires_confirmation():
            preview = self._preview(deps, file_path, content, mode)
            if not ask(deps.confirmation.confirm_with_preview, f"Escrever arquivo {file_path}?", preview):
                return CANCELED

        return self._write(deps, {"file_path": file_path, "content": content, "mode": mode})

    def _extract(self, deps: Dependencies, user_message: str, suggested_path: str):
        """Ask the backend for {file_path, content} when the intent left them out."""
        suggested = f"Suggested file path: {suggested_path}\n" if suggested_path else ""
        prompt = EXTRACT_PROMPT.format(message=user_message, suggested=suggested, work_dir=deps.work_dir)
        try:
            response = llm_complete(deps, TaskType.CODE, prompt)
        except Exception as e:
            raise HandlerError(f"erro ao gerar conteúdo: {e}")
        try:
            parsed = extract_json_object(response)
        except IntentParseError as e:
            logger.warning(f"Could not parse write parameters: {e}")
            raise HandlerError("não foi possível determinar o arquivo e o conteúdo a escrever")

        file_path = parsed.get("file_path") if isinstance(parsed.get("file_path"), str) else ""
        file_path = file_path.strip() or suggested_path
        content = parsed.get("content")
        if not file_path:
            raise HandlerError("caminho do arquivo não especificado")
        if not isinstance(content, str):
            raise HandlerError("conteúdo do arquivo não especificado")
        return file_path, content

    def _preview(self, deps: Dependencies, file_path: str, content: str, mode: str) -> str:
        if mode == "create" and deps.differ is not None and deps.previewer is not None:
            existing = deps.tools.execute("file_reader", {"file_path": file_path}, deps.cancel)
            old_content = existing.data.get("content") if existing.success else None
            if isinstance(old_content, str) and old_content:
                diff = deps.differ.compute_diff(file_path, old_content, content)
                return deps.previewer.preview(diff)
        if len(content) > PREVIEW_CHARS:
            return content[:PREVIEW_CHARS] + "\n...(truncated)"
        return content

    def _replace(self, deps: Dependencies, params: Dict[str, Any]) -> str:
        file_path = params.get("file_path")
        old_text = params.get("old_text")
        new_text = params.get("new_text")
        if not isinstance(file_path, str) or not file_path.strip():
            raise HandlerError("file_path não especificado")
        if not isinstance(old_text, str) or not old_text or not isinstance(new_text, str):
            raise HandlerError("old_text e new_text são obrigatórios no modo replace")

        if deps.mode.requires_confirmation():
            preview = self._replace_preview(deps, file_path, old_text, new_text)
            if not ask(deps.confirmation.confirm_with_preview, f"Substituir texto em {file_path}?", preview):
                return CANCELED

        return self._write(deps, {
            "file_path": file_path, "mode": "replace", "old_text": old_text, "new_text": new_text,
        })

    def _replace_preview(self, deps: Dependencies, file_path: str, old_text: str, new_text: str) -> str:
        existing = deps.tools.execute("file_reader", {"file_path": file_path}, deps.cancel)
        old_content = existing.data.get("content") if existing.success else None
        if isinstance(old_content, str) and deps.differ is not None and deps.previewer is not None:
            diff = deps.differ.compute_diff(file_path, old_content, old_content.replace(old_text, new_text))
            return deps.previewer.preview(diff)
        return f"- {old_text}\n+ {new_text}"

    def _write(self, deps: Dependencies, params: Dict[str, Any]) -> str:
        tool_result = deps.tools.execute("file_writer", params, deps.cancel)
        if not tool_result.success:
            raise tool_failure(tool_result)
        deps.remember_file(params["file_path"])
        diff: Optional[str] = tool_result.data.get("diff")
        if isinstance(diff, str) and diff:
            return f"{tool_result.message}\n\n```diff\n{diff}\n```"
        return tool_result.message
