"""LLM provider factory using browser-use native providers."""

from typing import TYPE_CHECKING

from browser_use import (
    ChatAnthropic,
    ChatAzureOpenAI,
    ChatGoogle,
    ChatGroq,
    ChatOllama,
    ChatOpenAI,
)

# These are available via direct import but not in __all__
from browser_use.llm.aws.chat_bedrock import ChatAWSBedrock
from browser_use.llm.deepseek.chat import ChatDeepSeek
from browser_use.llm.openrouter.chat import ChatOpenRouter

from .config import NO_KEY_PROVIDERS, STANDARD_ENV_VAR_NAMES, settings
from .exceptions import LLMProviderError

if TYPE_CHECKING:
    from browser_use.llm.base import BaseChatModel

    from .actions.planner import CompletionFn


def get_llm(
    provider: str,
    model: str,
    api_key: str | None = None,
    base_url: str | None = None,
    **kwargs,
) -> "BaseChatModel":
    """Create LLM instance using browser-use native providers.

    Args:
        provider: LLM provider name
        model: Model name/identifier
        api_key: API key for the provider (not required for ollama/bedrock)
        base_url: Custom base URL for OpenAI-compatible APIs
        **kwargs: Provider-specific options:
            - azure_endpoint: Azure OpenAI endpoint URL
            - azure_api_version: Azure OpenAI API version (default: 2024-02-01)
            - aws_region: AWS region for Bedrock

    Returns:
        Configured BaseChatModel instance

    Raises:
        LLMProviderError: If provider is unsupported or API key is missing
    """
    requires_api_key = provider not in NO_KEY_PROVIDERS and not base_url
    if requires_api_key and not api_key:
        standard_var = STANDARD_ENV_VAR_NAMES.get(provider, "API key")
        raise LLMProviderError(f"API key required for provider '{provider}'. Set {standard_var} or MCP_LLM_API_KEY environment variable.")

    try:
        match provider:
            case "openai":
                return ChatOpenAI(model=model, api_key=api_key, base_url=base_url)

            case "anthropic":
                return ChatAnthropic(model=model, api_key=api_key)

            case "google":
                return ChatGoogle(model=model, api_key=api_key)

            case "azure_openai":
                azure_endpoint = kwargs.get("azure_endpoint")
                azure_api_version = kwargs.get("azure_api_version", "2024-02-01")
                if not azure_endpoint:
                    raise LLMProviderError("Azure OpenAI requires MCP_LLM_AZURE_ENDPOINT to be set.")
                return ChatAzureOpenAI(
                    model=model,
                    api_key=api_key,
                    azure_endpoint=azure_endpoint,
                    api_version=azure_api_version,
                )

            case "groq":
                return ChatGroq(model=model, api_key=api_key)

            case "deepseek":
                return ChatDeepSeek(model=model, api_key=api_key)

            case "ollama":
                return ChatOllama(model=model, base_url=base_url)

            case "bedrock":
                aws_region = kwargs.get("aws_region")
                return ChatAWSBedrock(model_id=model, region=aws_region)

            case "openrouter":
                return ChatOpenRouter(model=model, api_key=api_key)

            case _:
                raise LLMProviderError(f"Unsupported provider: {provider}")

    except LLMProviderError:
        raise
    except Exception as e:
        raise LLMProviderError(f"Failed to initialize {provider} LLM: {e}") from e


def get_configured_llm() -> "BaseChatModel":
    """Create the LLM described by the current settings."""
    return get_llm(
        provider=settings.llm.provider,
        model=settings.llm.model_name,
        api_key=settings.llm.get_api_key_for_provider(),
        base_url=settings.llm.base_url,
        azure_endpoint=settings.llm.azure_endpoint,
        azure_api_version=settings.llm.azure_api_version,
        aws_region=settings.llm.aws_region,
    )


def llm_completion(llm: "BaseChatModel") -> "CompletionFn":
    """Adapt a chat model to the planner's prompt -> text completion callable."""

    async def complete(prompt: str) -> str:
        from browser_use.llm.messages import UserMessage

        response = await llm.ainvoke([UserMessage(content=prompt)])
        return str(response.completion)

    return complete
