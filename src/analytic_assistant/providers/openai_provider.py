import json

import openai
from loguru import logger
from tenacity import retry

from analytic_assistant.errors import ModelInvocationError
from analytic_assistant.provider import (
    FINISH_LENGTH,
    FINISH_OTHER,
    FINISH_STOP,
    FINISH_TOOL_CALLS,
    ModelResponse,
    TextCompletion,
    TextDeltaCallback,
)
from analytic_assistant.providers.common import default_retry_kwargs, tool_schemas
from analytic_assistant.tool import RAW_ARGUMENTS_KEY, Tool
from analytic_assistant.usage.tokens import TokenUsage

_RETRYABLE = (
    openai.RateLimitError,
    openai.APIConnectionError,
    openai.APITimeoutError,
)

_FINISH_REASON_MAP = {
    "stop": FINISH_STOP,
    "tool_calls": FINISH_TOOL_CALLS,
    "function_call": FINISH_TOOL_CALLS,
    "length": FINISH_LENGTH,
}

_AUDIO_FORMATS = {"audio/wav": "wav", "audio/x-wav": "wav", "audio/wave": "wav", "audio/mpeg": "mp3", "audio/mp3": "mp3"}


def _binary_part(block: dict) -> dict | None:
    media_type = block.get("media_type", "")
    if block.get("type") == "image":
        return {"type": "image_url", "image_url": {"url": f"data:{media_type};base64,{block['data']}"}}
    audio_format = _AUDIO_FORMATS.get(media_type)
    if audio_format is None:
        logger.warning(f"Dropping audio attachment with unsupported format {media_type!r}")
        return None
    return {"type": "input_audio", "input_audio": {"data": block["data"], "format": audio_format}}


def _to_openai_messages(
    system_prompt: str,
    messages: list[dict],
) -> list[dict]:
    """Convert internal (Anthropic-style) messages to OpenAI chat format."""
    out: list[dict] = []

    if system_prompt:
        out.append({"role": "system", "content": system_prompt})

    for msg in messages:
        role = msg["role"]
        content = msg.get("content", "")

        if role == "assistant":
            if isinstance(content, str):
                out.append({"role": "assistant", "content": content})
                continue

            text_parts: list[str] = []
            tool_calls: list[dict] = []
            for block in content:
                if block.get("type") == "text":
                    text_parts.append(block["text"])
                elif block.get("type") == "tool_use":
                    tool_calls.append({
                        "id": block["id"],
                        "type": "function",
                        "function": {
                            "name": block["name"],
                            "arguments": json.dumps(block["input"]),
                        },
                    })

            oai_msg: dict = {"role": "assistant", "content": "\n".join(text_parts) if text_parts else None}
            if tool_calls:
                oai_msg["tool_calls"] = tool_calls
            out.append(oai_msg)

        elif role == "user":
            if isinstance(content, str):
                out.append({"role": "user", "content": content})
                continue

            # Tool results become separate "tool" messages; text and binary parts stay on the user turn.
            user_parts: list[dict] = []
            for block in content:
                kind = block.get("type")
                if kind == "text":
                    user_parts.append({"type": "text", "text": block["text"]})
                elif kind in ("image", "audio"):
                    part = _binary_part(block)
                    if part is not None:
                        user_parts.append(part)
                elif kind == "tool_result":
                    out.append({
                        "role": "tool",
                        "tool_call_id": block["tool_use_id"],
                        "content": str(block.get("content", "")),
                    })

            if user_parts:
                if all(p["type"] == "text" for p in user_parts):
                    out.append({"role": "user", "content": "\n".join(p["text"] for p in user_parts)})
                else:
                    out.append({"role": "user", "content": user_parts})

        else:
            out.append({"role": role, "content": content if isinstance(content, str) else str(content)})

    return out


def _to_openai_tools(tools: list[dict]) -> list[dict]:
    """Convert internal (Anthropic-style) tool dicts to OpenAI function-calling format."""
    return [
        {
            "type": "function",
            "function": {
                "name": t["name"],
                "description": t.get("description", ""),
                "parameters": t.get("input_schema", {}),
            },
        }
        for t in tools
    ]


class OpenAIProvider:
    """OpenAI chat completions, also used for OpenAI-compatible endpoints (Gemini, OpenRouter, DeepSeek)."""

    def __init__(self, api_key: str, *, base_url: str | None = None):
        self._client = openai.AsyncOpenAI(api_key=api_key, base_url=base_url)

    def convert_tools(self, tools: list[Tool]) -> list[dict]:
        return tool_schemas(tools)

    async def stream_chat(
        self,
        model: str,
        max_tokens: int,
        temperature: float,
        system_prompt: str,
        messages: list[dict],
        tools: list[dict],
        *,
        on_text_delta: TextDeltaCallback | None = None,
    ) -> ModelResponse:
        try:
            return await self._stream_chat(
                model, max_tokens, temperature, system_prompt, messages, tools, on_text_delta
            )
        except openai.APIError as ex:
            raise ModelInvocationError(f"OpenAI request failed: {ex}") from ex

    @retry(**default_retry_kwargs(_RETRYABLE))
    async def _stream_chat(
        self,
        model: str,
        max_tokens: int,
        temperature: float,
        system_prompt: str,
        messages: list[dict],
        tools: list[dict],
        on_text_delta: TextDeltaCallback | None,
    ) -> ModelResponse:
        oai_messages = _to_openai_messages(system_prompt, messages)
        oai_tools = _to_openai_tools(tools)

        text_content = ""
        # tool_calls_acc: index -> {"id", "name", "arguments_parts"}
        tool_calls_acc: dict[int, dict] = {}
        finish_reason: str | None = None
        usage = TokenUsage()

        logger.debug(
            f"API request: model={model}, max_tokens={max_tokens}, "
            f"messages={len(oai_messages)}, tools={len(oai_tools)}"
        )
        kwargs: dict = dict(
            model=model,
            max_tokens=max_tokens,
            temperature=temperature,
            messages=oai_messages,
            stream=True,
            stream_options={"include_usage": True},
        )
        if oai_tools:
            kwargs["tools"] = oai_tools

        stream = await self._client.chat.completions.create(**kwargs)

        async for chunk in stream:
            if getattr(chunk, "usage", None):
                usage = TokenUsage(chunk.usage.prompt_tokens or 0, chunk.usage.completion_tokens or 0)

            choice = chunk.choices[0] if chunk.choices else None
            if choice is None:
                continue

            if choice.finish_reason:
                finish_reason = choice.finish_reason

            delta = choice.delta
            if delta is None:
                continue

            if delta.content:
                text_content += delta.content
                if on_text_delta is not None:
                    await on_text_delta(delta.content)

            # Tool calls arrive incrementally by index
            if delta.tool_calls:
                for tc_delta in delta.tool_calls:
                    idx = tc_delta.index
                    if idx not in tool_calls_acc:
                        tool_calls_acc[idx] = {
                            "id": tc_delta.id or "",
                            "name": (tc_delta.function.name if tc_delta.function and tc_delta.function.name else ""),
                            "arguments_parts": [],
                        }
                    acc = tool_calls_acc[idx]
                    if tc_delta.id:
                        acc["id"] = tc_delta.id
                    if tc_delta.function:
                        if tc_delta.function.name:
                            acc["name"] = tc_delta.function.name
                        if tc_delta.function.arguments:
                            acc["arguments_parts"].append(tc_delta.function.arguments)

        assistant_content: list[dict] = []
        tool_use_blocks: list[dict] = []

        if text_content:
            assistant_content.append({"type": "text", "text": text_content})

        for idx in sorted(tool_calls_acc):
            acc = tool_calls_acc[idx]
            raw_args = "".join(acc["arguments_parts"])
            try:
                parsed_input = json.loads(raw_args) if raw_args else {}
            except json.JSONDecodeError:
                parsed_input = None
            if not isinstance(parsed_input, dict):
                logger.warning(f"Failed to parse tool call arguments: {raw_args[:200]}")
                parsed_input = {RAW_ARGUMENTS_KEY: raw_args}
            tool_block = {
                "type": "tool_use",
                "id": acc["id"],
                "name": acc["name"],
                "input": parsed_input,
            }
            assistant_content.append(tool_block)
            tool_use_blocks.append(tool_block)

        if finish_reason is None:
            normalized = FINISH_TOOL_CALLS if tool_use_blocks else FINISH_STOP
        else:
            normalized = _FINISH_REASON_MAP.get(finish_reason, FINISH_OTHER)

        logger.debug(
            f"API response: finish_reason={finish_reason}, text_len={len(text_content)}, "
            f"tool_calls={len(tool_use_blocks)}, prompt_tokens={usage.prompt_tokens}, "
            f"completion_tokens={usage.completion_tokens}"
        )

        return ModelResponse(
            message={"role": "assistant", "content": assistant_content},
            tool_use_blocks=tool_use_blocks,
            finish_reason=normalized,
            usage=usage,
        )

    async def create_message(
        self,
        model: str,
        max_tokens: int,
        temperature: float,
        messages: list[dict],
        *,
        system_prompt: str = "",
    ) -> TextCompletion:
        try:
            return await self._create_message(model, max_tokens, temperature, messages, system_prompt)
        except openai.APIError as ex:
            raise ModelInvocationError(f"OpenAI request failed: {ex}") from ex

    @retry(**default_retry_kwargs(_RETRYABLE))
    async def _create_message(
        self,
        model: str,
        max_tokens: int,
        temperature: float,
        messages: list[dict],
        system_prompt: str,
    ) -> TextCompletion:
        oai_messages = _to_openai_messages(system_prompt, messages)
        logger.debug(f"Completion API request: model={model}, messages={len(oai_messages)}")
        response = await self._client.chat.completions.create(
            model=model,
            max_tokens=max_tokens,
            temperature=temperature,
            messages=oai_messages,
        )
        text = response.choices[0].message.content or ""
        usage = TokenUsage()
        if response.usage is not None:
            usage = TokenUsage(response.usage.prompt_tokens or 0, response.usage.completion_tokens or 0)
        logger.debug(f"Completion API response: len={len(text)}, prompt_tokens={usage.prompt_tokens}")
        return TextCompletion(text=text, usage=usage)
