"""SearchCode handler."""

from agent.intent import IntentResult
from handlers.base import Dependencies, Handler, HandlerError, tool_failure

MAX_SHOWN = 20
MAX_LINE_CHARS = 100

# Longest prefixes first
_QUERY_PREFIXES = (
    "busca a função ", "busca função ", "busca o ", "busca a ", "busca ", "buscar ",
    "procure por ", "procure ", "procura ", "procurar ",
    "encontre a ", "encontre o ", "encontre ", "encontrar ",
    "onde está a ", "onde está o ", "onde está ",
    "acha a ", "acha o ", "acha ", "achar ",
    "search for ", "search ", "find ", "locate ", "look for ",
)


def extract_query(message: str) -> str:
    """Strip a leading search verb from the message; what remains is the query."""
    lowered = (message or "").strip().lower()
    if not lowered:
        return ""
    query = lowered
    for prefix in _QUERY_PREFIXES:
        if query.startswith(prefix):
            query = query[len(prefix):]
            break
    query = query.strip("\"'` \t\r\n")
    return query if len(query) >= 2 else lowered


def format_matches(query: str, message: str, matches, count: int) -> str:
    out = [message, ""]
    if not matches or count == 0:
        out.append("💡 Dica: Tente refinar sua busca ou use termos mais específicos.")
        return "\n".join(out) + "\n"

    out.append(f'🔍 Resultados da busca por "{query}":')
    out.append("")
    for match in matches[:MAX_SHOWN]:
        if not isinstance(match, dict):
            continue
        out.append(f"  📄 {match.get('file', '?')}:{match.get('line', '?')}")
        content = match.get("content")
        if isinstance(content, str) and content.strip():
            content = content.strip()
            if len(content) > MAX_LINE_CHARS:
                content = content[:MAX_LINE_CHARS] + "..."
            out.append(f"     {content}")
        out.append("")
    if len(matches) > MAX_SHOWN:
        out.append(f"... e mais {len(matches) - MAX_SHOWN} resultados")
        out.append("")
    out.append(f"Total: {count} matches encontrados")
    return "\n".join(out) + "\n"


class SearchHandler(Handler):
    name = "search"

    def handle(self, deps: Dependencies, result: IntentResult, user_message: str) -> str:
        query = result.get_str("query").strip() or extract_query(user_message)
        if not query:
            raise HandlerError(
                "não foi possível determinar o que buscar. "
                "Exemplo de uso: 'busca a função process_message' ou 'procure por database connection'"
            )
        params = {"query": query, "pattern": result.get_str("pattern") or query}
        file_pattern = result.get_str("file_pattern")
        if file_pattern:
            params["file_pattern"] = file_pattern

        tool_result = deps.tools.execute("code_searcher", params, deps.cancel)
        if not tool_result.success:
            raise tool_failure(tool_result)
        matches = tool_result.data.get("matches")
        count = tool_result.data.get("count")
        return format_matches(
            query, tool_result.message,
            matches if isinstance(matches, list) else [],
            count if isinstance(count, int) else 0,
        )
