"""LLM providers - streaming adapters over httpx."""

from coworkbot.llm.anthropic import ANTHROPIC_BASE_URL, AnthropicProvider, BlockFramedAssembler
from coworkbot.llm.base import INVALID_JSON_INPUT, LLMProvider, StreamChatRequest
from coworkbot.llm.openai_compat import (
    MINIMAX_BASE_URL,
    OPENAI_BASE_URL,
    DeltaAssembler,
    MiniMaxProvider,
    OpenAIProvider,
    normalize_base_url,
)
from coworkbot.llm.token_buffer import TokenBuffer

PROVIDER_ALIASES = {
    "claude": "anthropic",
    "chatgpt": "openai",
}

_PROVIDERS: dict[str, type[LLMProvider]] = {
    "anthropic": AnthropicProvider,
    "openai": OpenAIProvider,
    "minimax": MiniMaxProvider,
}

DEFAULT_BASE_URLS = {
    "anthropic": ANTHROPIC_BASE_URL,
    "openai": OPENAI_BASE_URL,
    "minimax": MINIMAX_BASE_URL,
}


def normalize_provider_name(provider: str) -> str:
    key = str(provider or "").strip().lower()
    return PROVIDER_ALIASES.get(key, key)


def create_provider(
    provider: str = "anthropic",
    api_key: str = "",
    base_url: str | None = None,
    timeout: float = 120.0,
) -> LLMProvider:
    """Create an LLM provider.

    Args:
        provider: Provider name (anthropic, openai, minimax or an alias)
        api_key: API key sent with every request
        base_url: Optional base URL; the provider default is used when empty
        timeout: HTTP timeout in seconds

    Returns:
        Configured LLMProvider instance
    """
    name = normalize_provider_name(provider)
    provider_cls = _PROVIDERS.get(name)
    if provider_cls is None:
        supported = ", ".join(sorted(_PROVIDERS))
        raise ValueError(f"Provider '{provider}' not supported. Use one of: {supported}.")
    return provider_cls(
        api_key=api_key,
        base_url=base_url or DEFAULT_BASE_URLS[name],
        timeout=timeout,
    )


# Global provider instance
_provider: LLMProvider | None = None


def get_provider() -> LLMProvider:
    """Get the global LLM provider instance."""
    global _provider
    if _provider is None:
        from coworkbot.config import get_config
        cfg = get_config()
        _provider = create_provider(
            provider=cfg.model.provider,
            api_key=cfg.model.api_key,
            base_url=cfg.model.base_url or None,
            timeout=cfg.model.request_timeout,
        )
    return _provider


def set_provider(provider: LLMProvider) -> None:
    """Set the global LLM provider instance."""
    global _provider
    _provider = provider


__all__ = [
    "AnthropicProvider",
    "BlockFramedAssembler",
    "DEFAULT_BASE_URLS",
    "DeltaAssembler",
    "INVALID_JSON_INPUT",
    "LLMProvider",
    "MiniMaxProvider",
    "OpenAIProvider",
    "StreamChatRequest",
    "TokenBuffer",
    "create_provider",
    "get_provider",
    "normalize_base_url",
    "normalize_provider_name",
    "set_provider",
]
