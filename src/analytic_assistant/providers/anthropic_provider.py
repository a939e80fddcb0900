import anthropic
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
from analytic_assistant.tool import Tool
from analytic_assistant.usage.tokens import TokenUsage

_RETRYABLE = (
    anthropic.RateLimitError,
    anthropic.APIConnectionError,
    anthropic.APITimeoutError,
)

_FINISH_REASON_MAP = {
    "end_turn": FINISH_STOP,
    "stop_sequence": FINISH_STOP,
    "tool_use": FINISH_TOOL_CALLS,
    "max_tokens": FINISH_LENGTH,
}


def _to_anthropic_content(content):
    if isinstance(content, str):
        return content
    blocks: list[dict] = []
    for block in content:
        kind = block.get("type")
        if kind == "image":
            blocks.append({
                "type": "image",
                "source": {"type": "base64", "media_type": block["media_type"], "data": block["data"]},
            })
        elif kind == "audio":
            logger.warning(f"Dropping audio attachment ({block.get('media_type')}): not supported by Anthropic")
        else:
            blocks.append(block)
    return blocks


def _to_anthropic_messages(messages: list[dict]) -> list[dict]:
    """Convert internal messages, mapping binary parts to Anthropic source blocks."""
    out: list[dict] = []
    for msg in messages:
        content = _to_anthropic_content(msg.get("content", ""))
        if isinstance(content, list) and not content:
            continue
        out.append({"role": msg["role"], "content": content})
    return out


class AnthropicProvider:
    def __init__(self, api_key: str):
        self._client = anthropic.AsyncAnthropic(api_key=api_key)

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
        except anthropic.APIError as ex:
            raise ModelInvocationError(f"Anthropic request failed: {ex}") from ex

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
        logger.debug(
            f"API request: model={model}, max_tokens={max_tokens}, "
            f"messages={len(messages)}, tools={len(tools)}"
        )
        kwargs: dict = dict(
            model=model,
            max_tokens=max_tokens,
            temperature=temperature,
            system=system_prompt,
            messages=_to_anthropic_messages(messages),
        )
        if tools:
            kwargs["tools"] = tools

        async with self._client.messages.stream(**kwargs) as stream:
            async for event in stream:
                if event.type == "content_block_delta" and event.delta.type == "text_delta":
                    if on_text_delta is not None:
                        await on_text_delta(event.delta.text)
            response = await stream.get_final_message()

        usage = response.usage
        logger.debug(
            f"API response: stop_reason={response.stop_reason}, "
            f"input_tokens={usage.input_tokens}, output_tokens={usage.output_tokens}"
        )

        assistant_content: list[dict] = []
        tool_use_blocks: list[dict] = []
        for block in response.content:
            if block.type == "text":
                assistant_content.append({"type": "text", "text": block.text})
            elif block.type == "tool_use":
                tool_block = {
                    "type": "tool_use",
                    "id": block.id,
                    "name": block.name,
                    "input": block.input,
                }
                assistant_content.append(tool_block)
                tool_use_blocks.append(tool_block)

        return ModelResponse(
            message={"role": "assistant", "content": assistant_content},
            tool_use_blocks=tool_use_blocks,
            finish_reason=_FINISH_REASON_MAP.get(response.stop_reason or "", FINISH_OTHER),
            usage=TokenUsage(usage.input_tokens, usage.output_tokens),
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
        except anthropic.APIError as ex:
            raise ModelInvocationError(f"Anthropic request failed: {ex}") from ex

    @retry(**default_retry_kwargs(_RETRYABLE))
    async def _create_message(
        self,
        model: str,
        max_tokens: int,
        temperature: float,
        messages: list[dict],
        system_prompt: str,
    ) -> TextCompletion:
        logger.debug(f"Completion API request: model={model}, messages={len(messages)}")
        kwargs: dict = dict(
            model=model,
            max_tokens=max_tokens,
            temperature=temperature,
            messages=_to_anthropic_messages(messages),
        )
        if system_prompt:
            kwargs["system"] = system_prompt
        response = await self._client.messages.create(**kwargs)
        usage = response.usage
        logger.debug(
            f"Completion API response: input_tokens={usage.input_tokens}, "
            f"output_tokens={usage.output_tokens}"
        )
        text = "".join(block.text for block in response.content if block.type == "text")
        return TextCompletion(text=text, usage=TokenUsage(usage.input_tokens, usage.output_tokens))
