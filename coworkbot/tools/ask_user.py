"""Tool that hands a clarifying question to the human."""

from typing import Any

from coworkbot.tools.registry import Tool, ToolContext, ToolResult


class AskUserQuestionTool(Tool):
    name = "ask_user_question"
    description = (
        "Ask the user a question to clarify their request or get additional "
        "information needed to complete a task."
    )
    timeout_seconds = 3600.0
    parameters = {
        "type": "object",
        "properties": {
            "question": {
                "type": "string",
                "description": "The question to ask the user. Be clear and specific.",
            },
            "options": {
                "type": "array",
                "items": {"type": "string"},
                "description": "Optional list of choices for the user to select from.",
            },
        },
        "required": ["question"],
    }

    async def execute(self, question: str, options: list[str] | None = None, **kwargs: Any) -> ToolResult:
        if not isinstance(question, str) or not question.strip():
            return ToolResult(success=False, error="question parameter is required and must be a string.")
        context = kwargs.get("_context")
        if not isinstance(context, ToolContext) or context.ask_user is None:
            return ToolResult(success=False, error="No user is attached to answer questions.")
        answer = await context.ask_user(question.strip(), [str(opt) for opt in options or []])
        return ToolResult(success=True, content=f"User answered: {answer}")
