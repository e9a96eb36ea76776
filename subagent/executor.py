"""Backend-driven executor for subagents: role prompts and output post-processing."""

import logging
from typing import Optional, Union

from cancellation import CancelToken
from multimodel import ModelRouter, TaskType
from ollama_service import GenerationOptions, Message, OllamaError
from subagent.manager import ExecutorFunc
from subagent.types import Subagent, SubagentError, SubagentType

logger = logging.getLogger(__name__)

ROLE_INTROS = {
    SubagentType.EXPLORE: (
        "You are an Explore agent specialized in code exploration and search.\n"
        "Your task is to:\n"
        "1. Analyze the codebase thoroughly\n"
        "2. Find relevant files, functions, and patterns\n"
        "3. Provide concise summaries of findings\n"
        "4. Focus on accuracy and completeness\n\n"
    ),
    SubagentType.PLAN: (
        "You are a Plan agent specialized in planning and architectural analysis.\n"
        "Your task is to:\n"
        "1. Break down complex tasks into steps\n"
        "2. Analyze dependencies and requirements\n"
        "3. Provide clear, actionable plans\n"
        "4. Consider edge cases and potential issues\n\n"
    ),
    SubagentType.EXECUTE: (
        "You are an Execute agent specialized in task execution.\n"
        "Your task is to:\n"
        "1. Execute tasks efficiently\n"
        "2. Provide clear status updates\n"
        "3. Handle errors gracefully\n"
        "4. Return concrete results\n\n"
    ),
    SubagentType.GENERAL: "You are a general-purpose coding assistant.\n\n",
}


class SubagentExecutionError(SubagentError):
    pass


def build_prompt(agent: Subagent) -> str:
    parts = [ROLE_INTROS.get(agent.type, "")]
    if agent.work_dir and agent.work_dir != ".":
        parts.append(f"Working directory: {agent.work_dir}\n\n")
    parts.append(f"Task:\n{agent.prompt}\n\n")
    parts.append("Provide a clear, concise response focused on the task above.\n")
    return "".join(parts)


def post_process(agent_type: SubagentType, response: str) -> str:
    result = response.strip()

    if agent_type is SubagentType.EXPLORE:
        if "## " not in result and "- " not in result and len(result.split("\n")) > 3:
            result = "## Exploration Results\n\n" + result

    elif agent_type is SubagentType.PLAN:
        lines = result.split("\n")
        if "Step " not in result and "1." not in result and len(lines) > 2:
            out = ["## Plan", ""]
            step = 1
            for line in lines:
                line = line.strip()
                if not line:
                    out.append("")
                elif line.startswith("#"):
                    out.append(line)
                else:
                    out.append(f"{step}. {line}")
                    step += 1
            result = "\n".join(out).strip()

    return result


class SubagentExecutor:
    """Runs one subagent prompt against the backend model named by the task."""

    def __init__(self, router: Union[ModelRouter, str]):
        # a bare URL gets its own router with the default model table
        self.router = ModelRouter(base_url=router) if isinstance(router, str) else router

    def execute(self, cancel: Optional[CancelToken], agent: Subagent) -> str:
        if agent.model:
            client = self.router.get_client_for_model(agent.model)
        else:
            client = self.router.get_client(TaskType.DEFAULT)
        options = GenerationOptions(temperature=agent.temperature, max_tokens=agent.max_tokens)
        try:
            response = client.complete([Message(role="user", content=build_prompt(agent))], options, cancel=cancel)
        except OllamaError as e:
            raise SubagentExecutionError(f"llm execution failed: {e}") from e
        return post_process(agent.type, response)

    def as_executor_func(self) -> ExecutorFunc:
        return self.execute
