"""WebSearch handler: search, then let the backend summarize the top results."""

import logging
from typing import List

from agent.intent import IntentResult
from handlers.base import Dependencies, Handler, HandlerError, llm_complete
from multimodel import TaskType
from websearch import SearchResult

logger = logging.getLogger(__name__)

MAX_SOURCES = 3

_QUERY_KEYWORDS = ("pesquisar", "buscar", "procurar", "search", "find", "lookup")
_QUERY_FILLERS = ("por ", "sobre ", "for ", "about ")

SUMMARY_PROMPT = """Com base nos resultados abaixo, forneça um resumo objetivo e direto respondendo à pergunta do usuário.

Pergunta: {query}

{sources}
Instruções:
- Forneça um resumo conciso e objetivo (2-4 frases)
- Responda diretamente à pergunta com dados específicos
- NÃO adicione fontes (serão adicionadas automaticamente)

Resumo:"""


def extract_query(message: str) -> str:
    lowered = (message or "").lower()
    for keyword in _QUERY_KEYWORDS:
        if keyword in lowered:
            rest = lowered.split(keyword, 1)[1].strip()
            for filler in _QUERY_FILLERS:
                if rest.startswith(filler):
                    rest = rest[len(filler):]
                    break
            return rest.strip()
    return ""


def format_results(query: str, results: List[SearchResult]) -> str:
    out = [f"🔍 Resultados da busca por: {query}", ""]
    if not results:
        out.append("Nenhum resultado encontrado.")
        return "\n".join(out)
    for i, r in enumerate(results, 1):
        out.append(f"{i}. **{r.title}**")
        if r.snippet:
            out.append(f"   {r.snippet}")
        if r.url:
            out.append(f"   🔗 {r.url}")
        out.append("")
    return "\n".join(out)


class WebSearchHandler(Handler):
    name = "websearch"

    def handle(self, deps: Dependencies, result: IntentResult, user_message: str) -> str:
        if deps.web_search is None:
            raise HandlerError("busca web desabilitada")
        query = result.get_str("query").strip() or extract_query(user_message) or user_message.strip()
        if not query:
            raise HandlerError("query de busca não especificado")

        try:
            results = deps.web_search.search(query)
        except Exception as e:
            raise HandlerError(f"erro ao buscar: {e}")
        if not results:
            return format_results(query, [])

        top = results[:MAX_SOURCES]
        sources = "".join(
            f"=== Fonte {i} ===\n{r.title}\n{r.snippet}\n\n" for i, r in enumerate(top, 1)
        )
        try:
            summary = llm_complete(deps, TaskType.SEARCH, SUMMARY_PROMPT.format(query=query, sources=sources))
        except Exception as e:
            logger.warning(f"Web search summary failed, returning raw results: {e}")
            return format_results(query, top)

        out = [summary.strip(), "", "📚 **Fontes:**"]
        for r in top:
            out.append(f"- {r.title}: {r.url}" if r.title else f"- {r.url}")
        return "\n".join(out) + "\n"
