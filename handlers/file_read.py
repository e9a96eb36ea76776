"""ReadFile handler: preview a file, or analyze it when the user asks for that."""

import logging
from typing import List

from agent.intent import IntentResult
from handlers.base import Dependencies, Handler, HandlerError, llm_complete, tool_failure
from multimodel import TaskType

logger = logging.getLogger(__name__)

PREVIEW_LINES = 20

ANALYSIS_KEYWORDS = (
    "analise", "analisa", "analyze", "analyse",
    "explique", "explica", "explain",
    "revise", "revisa", "review",
    "o que faz", "what does",
)

ANALYSIS_PROMPT = """Você é um assistente de código. Analise o seguinte arquivo e forneça:
1. Resumo do que o arquivo faz
2. Principais componentes/funções/classes
3. Tecnologias/linguagens usadas
4. Observações importantes

Arquivo: {path}
Conteúdo:
{content}

Forneça uma análise concisa e útil."""


def wants_analysis(message: str) -> bool:
    lowered = (message or "").lower()
    return any(keyword in lowered for keyword in ANALYSIS_KEYWORDS)


def content_preview(content: str, limit: int = PREVIEW_LINES) -> str:
    lines: List[str] = content.splitlines()
    out = ["📄 Conteúdo do arquivo:", "", "```"]
    for i, line in enumerate(lines[:limit], 1):
        out.append(f"{i:4d} | {line}")
    if len(lines) > limit:
        out.append("")
        out.append(f"... e mais {len(lines) - limit} linhas")
    out.append("```")
    out.append("")
    out.append(f"Total: {len(lines)} linhas")
    return "\n".join(out) + "\n"


class FileReadHandler(Handler):
    name = "file_read"

    def handle(self, deps: Dependencies, result: IntentResult, user_message: str) -> str:
        file_path = result.get_str("file_path").strip()
        if not file_path:
            raise HandlerError("file_path não especificado")

        tool_result = deps.tools.execute("file_reader", {"file_path": file_path}, deps.cancel)
        if not tool_result.success:
            raise tool_failure(tool_result)
        deps.remember_file(file_path)

        output = tool_result.message + "\n\n"
        content = tool_result.data.get("content")
        if tool_result.data.get("type") == "image" or not isinstance(content, str):
            return output + "📷 Arquivo de imagem carregado\n"

        if not wants_analysis(user_message):
            return output + content_preview(content)

        try:
            analysis = llm_complete(deps, TaskType.ANALYSIS, ANALYSIS_PROMPT.format(path=file_path, content=content))
        except Exception as e:
            logger.warning(f"File analysis failed for {file_path}: {e}")
            return output + content_preview(content)
        return output + "📝 Análise do arquivo:\n\n" + analysis.strip() + "\n"
