"""Tests for LLM provider factory and the planner completion adapter."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from mcp_server_action_cache.exceptions import LLMProviderError
from mcp_server_action_cache.providers import get_llm, llm_completion


class TestGetLLM:
    """Test the get_llm factory function."""

    def test_openai_provider(self):
        with patch("mcp_server_action_cache.providers.ChatOpenAI") as mock:
            mock.return_value = MagicMock()
            get_llm("openai", "gpt-4", api_key="test-key")
            mock.assert_called_once_with(model="gpt-4", api_key="test-key", base_url=None)

    def test_anthropic_provider(self):
        with patch("mcp_server_action_cache.providers.ChatAnthropic") as mock:
            mock.return_value = MagicMock()
            get_llm("anthropic", "claude-3-opus", api_key="test-key")
            mock.assert_called_once_with(model="claude-3-opus", api_key="test-key")

    def test_google_provider(self):
        with patch("mcp_server_action_cache.providers.ChatGoogle") as mock:
            mock.return_value = MagicMock()
            get_llm("google", "gemini-pro", api_key="test-key")
            mock.assert_called_once_with(model="gemini-pro", api_key="test-key")

    def test_deepseek_provider(self):
        with patch("mcp_server_action_cache.providers.ChatDeepSeek") as mock:
            mock.return_value = MagicMock()
            get_llm("deepseek", "deepseek-chat", api_key="test-key")
            mock.assert_called_once_with(model="deepseek-chat", api_key="test-key")

    def test_ollama_no_key_required(self):
        with patch("mcp_server_action_cache.providers.ChatOllama") as mock:
            mock.return_value = MagicMock()
            get_llm("ollama", "llama2", base_url="http://localhost:11434")
            mock.assert_called_once_with(model="llama2", base_url="http://localhost:11434")

    def test_bedrock_provider(self):
        with patch("mcp_server_action_cache.providers.ChatAWSBedrock") as mock:
            mock.return_value = MagicMock()
            get_llm("bedrock", "anthropic.claude-v2", aws_region="us-east-1")
            mock.assert_called_once_with(model_id="anthropic.claude-v2", region="us-east-1")

    def test_azure_requires_endpoint(self):
        with pytest.raises(LLMProviderError, match="AZURE_ENDPOINT"):
            get_llm("azure_openai", "gpt-4", api_key="test-key")

    def test_azure_with_endpoint(self):
        with patch("mcp_server_action_cache.providers.ChatAzureOpenAI") as mock:
            mock.return_value = MagicMock()
            get_llm("azure_openai", "gpt-4", api_key="test-key", azure_endpoint="https://test.openai.azure.com")
            mock.assert_called_once_with(
                model="gpt-4",
                api_key="test-key",
                azure_endpoint="https://test.openai.azure.com",
                api_version="2024-02-01",
            )


class TestErrorHandling:
    """Test error handling in get_llm."""

    def test_missing_api_key_error_names_env_var(self):
        with pytest.raises(LLMProviderError, match="OPENAI_API_KEY"):
            get_llm("openai", "gpt-4")

    def test_unsupported_provider_error(self):
        with pytest.raises(LLMProviderError, match="Unsupported provider"):
            get_llm("invalid_provider", "model", api_key="key")

    def test_base_url_bypasses_api_key_check(self):
        with patch("mcp_server_action_cache.providers.ChatOpenAI") as mock:
            mock.return_value = MagicMock()
            get_llm("openai", "gpt-4", base_url="http://localhost:8000")
            mock.assert_called_once()

    def test_constructor_errors_are_wrapped(self):
        with patch("mcp_server_action_cache.providers.ChatGroq", side_effect=RuntimeError("bad model")):
            with pytest.raises(LLMProviderError, match="bad model"):
                get_llm("groq", "mixtral", api_key="key")


class TestLLMCompletion:
    """Test adapting a chat model to a prompt -> text callable."""

    async def test_returns_completion_text(self):
        llm = MagicMock()
        llm.ainvoke = AsyncMock(return_value=SimpleNamespace(completion='[{"actionName": "a"}]'))

        text = await llm_completion(llm)("plan this")

        assert text == '[{"actionName": "a"}]'
        messages = llm.ainvoke.call_args.args[0]
        assert messages[0].content == "plan this"
