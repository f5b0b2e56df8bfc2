"""Custom exceptions for Coworkbot."""


class CoworkbotError(Exception):
    """Base exception for Coworkbot."""

    pass


class ConfigurationError(CoworkbotError):
    """Missing or invalid credential, model or endpoint."""

    pass


class ValidationError(CoworkbotError):
    """Rejected user input (the message is already user-facing)."""

    pass


class LLMError(CoworkbotError):
    """LLM-related errors."""

    pass


class LLMAPIError(LLMError):
    """LLM API errors carrying the upstream HTTP status."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class RateLimitError(LLMAPIError):
    """Provider rejected the request with HTTP 429."""

    def __init__(self, message: str, status_code: int | None = 429):
        super().__init__(message, status_code=status_code)


class AuthError(LLMAPIError):
    """Credential rejected by the provider (401/403)."""

    pass


class SensitiveContentError(LLMAPIError):
    """Provider blocked the generated content with its safety filter."""

    def __init__(self, message: str, status_code: int | None = 500):
        super().__init__(message, status_code=status_code)


class NetworkError(LLMError):
    """Provider endpoint could not be reached."""

    pass


class ToolError(CoworkbotError):
    """Tool execution errors."""

    pass


class ToolExecutionError(ToolError):
    """Tool execution failed."""

    def __init__(self, tool_name: str, message: str):
        super().__init__(f"Tool '{tool_name}' failed: {message}")
        self.tool_name = tool_name


class ToolNotFoundError(ToolError):
    """Tool not found in registry."""

    def __init__(self, tool_name: str):
        super().__init__(f"Tool not found: {tool_name}")
        self.tool_name = tool_name


class ToolBlockedError(ToolError):
    """Tool execution blocked by policy."""

    def __init__(self, tool_name: str, reason: str):
        super().__init__(f"Tool '{tool_name}' blocked: {reason}")
        self.tool_name = tool_name
        self.reason = reason
