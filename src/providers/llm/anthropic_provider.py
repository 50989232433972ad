"""Anthropic LLM provider adapter.

Wraps the ``anthropic`` async client to implement :class:`ILLMProvider`.
Supports text completion, image description and tool calling via the
Claude Messages API.

Key differences from the OpenAI adapter:
    - System prompt is a separate parameter, not a message in the list
    - Images use an "image" content block with a base64 source
    - Tool calls come back as "tool_use" content blocks, and results go
      back as "tool_result" blocks inside a *user* message
    - Tool declarations use ``input_schema`` instead of ``parameters``
"""

from __future__ import annotations

import base64
from typing import Any

import anthropic
import structlog

from src.config.settings import Settings
from src.interfaces.llm_provider import ILLMProvider
from src.models.tools import ChatCompletion, ToolCall
from src.utils.errors import LLMError

logger = structlog.get_logger(logger_name=__name__)


def _to_anthropic_content(content: Any) -> Any:
    """Translate neutral user content (str or parts list) into Anthropic blocks."""
    if isinstance(content, str):
        return content
    blocks: list[dict[str, Any]] = []
    for part in content:
        if part.get("type") == "image":
            blocks.append(
                {
                    "type": "image",
                    "source": {
                        "type": "base64",
                        "media_type": part["media_type"],
                        "data": part["data"],
                    },
                }
            )
        else:
            blocks.append({"type": "text", "text": part.get("text", "")})
    return blocks


def _to_anthropic_messages(messages: list[dict[str, Any]]) -> list[dict[str, Any]]:
    converted: list[dict[str, Any]] = []
    for message in messages:
        role = message["role"]
        if role == "tool":
            result_block = {
                "type": "tool_result",
                "tool_use_id": message["tool_call_id"],
                "content": message["content"],
            }
            # Consecutive tool results share one user message.
            previous = converted[-1] if converted else None
            if (
                previous is not None
                and previous["role"] == "user"
                and isinstance(previous["content"], list)
                and previous["content"]
                and previous["content"][0].get("type") == "tool_result"
            ):
                previous["content"].append(result_block)
            else:
                converted.append({"role": "user", "content": [result_block]})
        elif role == "assistant" and message.get("tool_calls"):
            blocks: list[dict[str, Any]] = []
            if message.get("content"):
                blocks.append({"type": "text", "text": message["content"]})
            for call in message["tool_calls"]:
                blocks.append(
                    {"type": "tool_use", "id": call.id, "name": call.name, "input": call.arguments}
                )
            converted.append({"role": "assistant", "content": blocks})
        else:
            converted.append({"role": role, "content": _to_anthropic_content(message["content"])})
    return converted


class AnthropicLLMProvider(ILLMProvider):
    """LLM provider backed by the Anthropic Claude API.

    Claude handles text, vision and tool use with one model, configured via
    ``ANTHROPIC_MODEL``.
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._api_key = settings.anthropic_api_key
        self._client = anthropic.AsyncAnthropic(api_key=self._api_key)
        self._model = settings.anthropic_model

    # ------------------------------------------------------------------
    # ILLMProvider implementation
    # ------------------------------------------------------------------

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.3,
        max_tokens: int = 4000,
    ) -> str:
        result = await self.chat(
            system_prompt,
            [{"role": "user", "content": user_prompt}],
            temperature=temperature,
            max_tokens=max_tokens,
        )
        if not result.text:
            raise LLMError(
                message="Anthropic returned no text content",
                provider_name=self.get_provider_name(),
            )
        return result.text

    async def chat(
        self,
        system_prompt: str,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        temperature: float = 0.7,
        max_tokens: int = 2000,
    ) -> ChatCompletion:
        """Run one Messages API call, translating tools and tool results."""
        kwargs: dict[str, Any] = {
            "model": self._model,
            "max_tokens": max_tokens,
            "system": system_prompt,
            "messages": _to_anthropic_messages(messages),
            "temperature": temperature,
        }
        if tools:
            kwargs["tools"] = [
                {
                    "name": tool["name"],
                    "description": tool.get("description", ""),
                    "input_schema": tool["parameters"],
                }
                for tool in tools
            ]

        try:
            response = await self._client.messages.create(**kwargs)
        except anthropic.APIError as exc:
            raise LLMError(
                message=f"Anthropic API error: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        text_blocks: list[str] = []
        tool_calls: list[ToolCall] = []
        for block in response.content:
            if block.type == "text":
                text_blocks.append(block.text)
            elif block.type == "tool_use":
                tool_calls.append(
                    ToolCall(id=block.id, name=block.name, arguments=dict(block.input or {}))
                )

        logger.info(
            "anthropic_chat",
            model=self._model,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            tool_calls=len(tool_calls),
        )
        return ChatCompletion(text="\n".join(text_blocks), tool_calls=tool_calls)

    async def describe_images(self, images: list[tuple[bytes, str]], question: str) -> str:
        parts: list[dict[str, Any]] = [
            {
                "type": "image",
                "media_type": media_type,
                "data": base64.b64encode(data).decode("utf-8"),
            }
            for data, media_type in images
        ]
        parts.append({"type": "text", "text": question})
        result = await self.chat(
            "You are a helpful assistant that analyzes images accurately and concisely.",
            [{"role": "user", "content": parts}],
            temperature=0.3,
            max_tokens=1500,
        )
        return result.text

    def supports_vision(self) -> bool:
        return True

    def is_available(self) -> bool:
        return bool(self._api_key)

    def get_provider_name(self) -> str:
        return "anthropic"
