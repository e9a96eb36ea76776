"""AnalyzeProject handler."""

from agent.intent import IntentResult
from handlers.base import Dependencies, Handler, tool_failure


class AnalyzeHandler(Handler):
    name = "analyze"

    def handle(self, deps: Dependencies, result: IntentResult, user_message: str) -> str:
        params = {"type": "structure"}
        target = result.get_str("target").strip()
        if target:
            params["path"] = target
        tool_result = deps.tools.execute("project_analyzer", params, deps.cancel)
        if not tool_result.success:
            raise tool_failure(tool_result)

        out = []
        tree = tool_result.data.get("tree")
        if isinstance(tree, list) and tree:
            out.append("📂 Estrutura de Diretórios:")
            out.append("")
            out.extend(str(line) for line in tree)
        else:
            out.append(tool_result.message)
        return "\n".join(out) + "\n"
