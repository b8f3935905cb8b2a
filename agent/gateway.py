import asyncio
from typing import Any, Dict, List, Optional

import openai

from agent.errors import TransportError
from agent.models import ModelResponse, ToolCall, ToolCallFunction
from core.client import get_client
from core.config import settings
from core.logger import logger
from core.ratelimit import limiter as default_limiter


class ModelGateway:
    """Stateless chat-completions client: history + tools in, text and/or tool calls out."""

    def __init__(self, client=None, model: Optional[str] = None, limiter=default_limiter,
                 timeout: Optional[float] = None):
        self.client = client or get_client()
        self.model = model or settings.MODEL_NAME
        self.limiter = limiter
        self.timeout = timeout or settings.GATEWAY_TIMEOUT

    async def complete(self, messages: List[Dict[str, Any]], tools: List[Dict[str, Any]],
                       timeout: Optional[float] = None) -> ModelResponse:
        """Raises TransportError on any failure; nothing is returned partially."""
        if self.limiter is not None:
            self.limiter.acquire()

        request = {
            "model": self.model,
            "messages": messages,
            "max_tokens": settings.MAX_TOKENS,
            "temperature": settings.TEMPERATURE,
        }
        if tools:
            request["tools"] = tools
            request["tool_choice"] = "auto"

        # a turn deadline can only shorten the gateway timeout
        timeout = min(timeout, self.timeout) if timeout is not None else self.timeout
        logger.info(f"Calling LLM with {len(messages)} messages", extra={"model": self.model})
        try:
            response = await asyncio.wait_for(
                self.client.chat.completions.create(**request),
                timeout,
            )
        except asyncio.TimeoutError as e:
            logger.error("LLM API timeout")
            raise TransportError("Timed out waiting for the model") from e
        except openai.APIStatusError as e:
            logger.error(f"LLM API Error: {e}", exc_info=True)
            raise TransportError(f"HTTP {e.status_code}: {e.message}") from e
        except openai.APIError as e:
            logger.error(f"LLM API Error: {e}", exc_info=True)
            raise TransportError(f"Error calling LLM: {e}") from e

        if not getattr(response, "choices", None):
            raise TransportError("Model returned no choices")

        message = response.choices[0].message
        tool_calls = [
            ToolCall(
                id=tc.id,
                function=ToolCallFunction(name=tc.function.name, arguments=tc.function.arguments or ""),
            )
            for tc in (message.tool_calls or [])
        ]
        return ModelResponse(content=message.content or None, tool_calls=tool_calls)
