"""OpenAI-compatible LLM provider adapter.

Wraps the ``openai`` async client to implement :class:`ILLMProvider`.
Supports text completion, vision and function calling through the chat
completions API.  When ``openai_base_url`` is configured the client points
at that OpenAI-compatible endpoint instead.
"""

from __future__ import annotations

import base64
import json
from typing import Any

import openai
import structlog

from src.config.settings import Settings
from src.interfaces.llm_provider import ILLMProvider
from src.models.tools import ChatCompletion, ToolCall
from src.utils.errors import LLMError

logger = structlog.get_logger(logger_name=__name__)


def _to_openai_content(content: Any) -> Any:
    if isinstance(content, str):
        return content
    parts: list[dict[str, Any]] = []
    for part in content:
        if part.get("type") == "image":
            parts.append(
                {
                    "type": "image_url",
                    "image_url": {"url": f"data:{part['media_type']};base64,{part['data']}"},
                }
            )
        else:
            parts.append({"type": "text", "text": part.get("text", "")})
    return parts


def _to_openai_messages(system_prompt: str, messages: list[dict[str, Any]]) -> list[dict[str, Any]]:
    converted: list[dict[str, Any]] = [{"role": "system", "content": system_prompt}]
    for message in messages:
        role = message["role"]
        if role == "tool":
            converted.append(
                {
                    "role": "tool",
                    "tool_call_id": message["tool_call_id"],
                    "content": message["content"],
                }
            )
        elif role == "assistant" and message.get("tool_calls"):
            converted.append(
                {
                    "role": "assistant",
                    "content": message.get("content") or None,
                    "tool_calls": [
                        {
                            "id": call.id,
                            "type": "function",
                            "function": {
                                "name": call.name,
                                "arguments": json.dumps(call.arguments),
                            },
                        }
                        for call in message["tool_calls"]
                    ],
                }
            )
        else:
            converted.append({"role": role, "content": _to_openai_content(message["content"])})
    return converted


def _parse_arguments(raw: str | None) -> dict[str, Any]:
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except ValueError:
        logger.warning("openai_tool_arguments_unparseable", raw=raw[:200])
        return {}
    return parsed if isinstance(parsed, dict) else {}


class OpenAILLMProvider(ILLMProvider):
    """LLM provider backed by an OpenAI-compatible API.

    Uses ``gpt-4o-mini`` by default (``OPENAI_CHAT_MODEL``).  Vision is
    assumed unless a custom base URL is configured.
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._api_key = settings.openai_api_key

        client_kwargs: dict = {
            "api_key": self._api_key,
            "timeout": openai.Timeout(60.0, connect=5.0),
        }
        if settings.openai_base_url:
            client_kwargs["base_url"] = settings.openai_base_url

        self._client = openai.AsyncOpenAI(**client_kwargs)
        self._model = settings.openai_chat_model or "gpt-4o-mini"
        self._has_vision = not settings.openai_base_url
        self._provider_label = "openai-compatible" if settings.openai_base_url else "openai"

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
                message=f"{self._provider_label} returned empty response",
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
        """Run one chat completion, translating function calls both ways."""
        kwargs: dict[str, Any] = {
            "model": self._model,
            "messages": _to_openai_messages(system_prompt, messages),
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if tools:
            kwargs["tools"] = [{"type": "function", "function": tool} for tool in tools]
            kwargs["tool_choice"] = "auto"

        try:
            response = await self._client.chat.completions.create(**kwargs)
        except openai.APITimeoutError as exc:
            raise LLMError(
                message=f"{self._provider_label} timed out",
                provider_name=self.get_provider_name(),
            ) from exc
        except openai.APIError as exc:
            raise LLMError(
                message=f"{self._provider_label} API error: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        message = response.choices[0].message
        tool_calls = [
            ToolCall(
                id=call.id,
                name=call.function.name,
                arguments=_parse_arguments(call.function.arguments),
            )
            for call in (message.tool_calls or [])
        ]
        logger.info(
            "openai_chat",
            model=self._model,
            provider=self._provider_label,
            tokens=response.usage.total_tokens if response.usage else None,
            tool_calls=len(tool_calls),
        )
        return ChatCompletion(text=message.content or "", tool_calls=tool_calls)

    async def describe_images(self, images: list[tuple[bytes, str]], question: str) -> str:
        if not self._has_vision:
            raise NotImplementedError("Vision not supported by this provider configuration")
        parts: list[dict[str, Any]] = [{"type": "text", "text": question}]
        parts.extend(
            {
                "type": "image",
                "media_type": media_type,
                "data": base64.b64encode(data).decode("utf-8"),
            }
            for data, media_type in images
        )
        result = await self.chat(
            "You are a helpful assistant that analyzes images accurately and concisely.",
            [{"role": "user", "content": parts}],
            temperature=0.3,
            max_tokens=1500,
        )
        return result.text

    def supports_vision(self) -> bool:
        return self._has_vision

    def is_available(self) -> bool:
        return bool(self._api_key)

    def get_provider_name(self) -> str:
        return self._provider_label
