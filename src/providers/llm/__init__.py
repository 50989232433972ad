"""LLM provider adapters.

Two concrete implementations of ILLMProvider (src/interfaces/llm_provider.py):
    - AnthropicLLMProvider - Claude (text, vision, tool use)
    - OpenAILLMProvider    - gpt-4o-mini (also OpenAI-compatible APIs)

main.py picks the provider named by LLM_PROVIDER, else the first one with
an API key, and stores it on app.state.
"""

from src.providers.llm.anthropic_provider import AnthropicLLMProvider
from src.providers.llm.openai_provider import OpenAILLMProvider

__all__ = ["AnthropicLLMProvider", "OpenAILLMProvider"]
