"""Question handler: streamed answer with recent conversation context."""

from agent.intent import IntentResult
from handlers.base import Dependencies, Handler, HandlerError
from multimodel import TaskType
from ollama_service import Message, OllamaError

HISTORY_MESSAGES = 10


class QuestionHandler(Handler):
    name = "question"

    def handle(self, deps: Dependencies, result: IntentResult, user_message: str) -> str:
        messages = [Message(role="system", content=f"You are a helpful coding assistant. Working directory: {deps.work_dir}")]
        messages.extend(deps.history[-HISTORY_MESSAGES:])
        messages.append(Message(role="user", content=user_message))

        spec = deps.router.get_model_spec(TaskType.DEFAULT)
        client = deps.router.get_client(TaskType.DEFAULT)

        def on_chunk(fragment: str) -> None:
            deps.streamed = True
            deps.emit(fragment)

        try:
            answer = client.complete_streaming(messages, spec.options(), on_chunk, cancel=deps.cancel)
        except OllamaError as e:
            raise HandlerError(f"erro ao processar pergunta: {e}")
        if deps.streamed:
            deps.emit("\n")
        return answer
