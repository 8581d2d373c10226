"""
Model-invocation strategies.

    native     OpenAI function calling
    react      prompt-engineered JSON envelope
    langchain  LangChain chat model with bound StructuredTools

Concrete strategies import their SDKs; load them through build_strategy()
or import the submodule directly.
"""

from mcp_agent.errors import ConfigError
from mcp_agent.strategies.base import ModelInvocationStrategy

STRATEGY_NAMES = ("native", "react", "langchain")


def build_strategy(settings) -> ModelInvocationStrategy:
    """Create the strategy named by settings.strategy."""
    if settings.strategy == "native":
        from openai import AsyncOpenAI
        from mcp_agent.strategies.native import NativeFunctionCallingStrategy
        client = AsyncOpenAI(api_key=settings.api_key, base_url=settings.base_url)
        return NativeFunctionCallingStrategy(client, settings.model, settings.temperature)

    if settings.strategy == "react":
        from openai import AsyncOpenAI
        from mcp_agent.strategies.react import PromptJsonStrategy
        client = AsyncOpenAI(api_key=settings.api_key, base_url=settings.base_url)
        return PromptJsonStrategy(client, settings.model, settings.temperature)

    if settings.strategy == "langchain":
        from langchain_openai import ChatOpenAI
        from mcp_agent.strategies.langchain import LangChainStrategy
        model = ChatOpenAI(
            model=settings.model,
            temperature=settings.temperature,
            api_key=settings.api_key,
            base_url=settings.base_url,
        )
        return LangChainStrategy(model)

    raise ConfigError(f"Unknown strategy '{settings.strategy}'. Choose one of: {', '.join(STRATEGY_NAMES)}")


__all__ = ["ModelInvocationStrategy", "STRATEGY_NAMES", "build_strategy"]
