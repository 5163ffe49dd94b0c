"""Completion gateway — one logged, cancellable chat-completion exchange.

Wraps the LangChain chat model for the configured provider. The gateway
adds observability and cancellation; retries are left to the client's
transport settings (``max_retries``) and errors propagate unchanged.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from langchain_anthropic import ChatAnthropic
from langchain_core.messages import AIMessage, BaseMessage
from langchain_openai import ChatOpenAI

from snapsolve.errors import ConfigurationError, RequestCanceled

if TYPE_CHECKING:
    from collections.abc import Callable

    from snapsolve.cancellation import OperationToken
    from snapsolve.config import SolverConfig

logger = logging.getLogger(__name__)


def extract_content(content) -> str:
    """Normalize message content — providers can return a list of blocks or a string."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, dict):
                parts.append(block.get("text", str(block)))
            else:
                parts.append(str(block))
        return "\n".join(parts)
    return str(content)


def image_part(data: str, mime: str = "image/jpeg") -> dict:
    """Build an ``image_url`` content part from base64 data."""
    return {"type": "image_url", "image_url": {"url": f"data:{mime};base64,{data}"}}


@dataclass
class CompletionRequest:
    """A single chat-completion request."""

    model: str
    messages: list[BaseMessage]
    max_tokens: int = 2000
    options: dict[str, Any] = field(default_factory=dict)


def _loggable(messages: list[BaseMessage]) -> str:
    """Serialize messages for the log, replacing inline image data with its size."""
    rendered = []
    for message in messages:
        content = message.content
        if isinstance(content, list):
            parts = []
            for part in content:
                if isinstance(part, dict) and part.get("type") == "image_url":
                    url = part.get("image_url", {}).get("url", "")
                    parts.append({"type": "image_url", "image_url": f"<{len(url)} chars>"})
                else:
                    parts.append(part)
            content = parts
        rendered.append({"role": message.type, "content": content})
    return json.dumps(rendered, ensure_ascii=False, indent=2)


class CompletionGateway:
    """Sends requests to the completion service on behalf of the pipeline."""

    def __init__(
        self,
        config: SolverConfig,
        llm_factory: Callable[[str, int], Any] | None = None,
    ) -> None:
        if not config.api_key:
            raise ConfigurationError(f"{config.api_key_env} environment variable is not set")
        self._config = config
        self._llm_factory = llm_factory or self._get_llm

    def _get_llm(self, model: str, max_tokens: int):
        """Create a chat model for the configured provider."""
        config = self._config
        match config.provider:
            case "openai":
                return ChatOpenAI(
                    model=model,
                    max_tokens=max_tokens,
                    api_key=config.api_key,
                    base_url=config.base_url,
                    timeout=config.request_timeout,
                    max_retries=config.max_retries,
                )
            case "anthropic":
                return ChatAnthropic(
                    model=model,
                    max_tokens=max_tokens,
                    api_key=config.api_key,
                    timeout=config.request_timeout,
                    max_retries=config.max_retries,
                )
            case _:
                raise ConfigurationError(f"Unknown provider: {config.provider}")

    async def invoke(
        self,
        context: str,
        request: CompletionRequest,
        token: OperationToken | None = None,
    ) -> AIMessage:
        """Send ``request`` and return the model's reply.

        Raises ``RequestCanceled`` if ``token`` is cancelled before or during
        the exchange; any other error is logged and re-raised as is.
        """
        logger.info(f"[Request - {context}] Sending request: {_loggable(request.messages)}")

        if token is not None and token.cancelled:
            logger.info(f"[Request - {context}] Token already cancelled, not sending")
            raise RequestCanceled(context)

        llm = self._llm_factory(request.model, request.max_tokens)
        call = asyncio.ensure_future(llm.ainvoke(request.messages, **request.options))
        try:
            if token is None:
                response = await call
            else:
                waiter = asyncio.ensure_future(token.wait())
                try:
                    await asyncio.wait({call, waiter}, return_when=asyncio.FIRST_COMPLETED)
                finally:
                    waiter.cancel()
                if token.cancelled or not call.done():
                    call.cancel()
                    logger.info(f"[Request - {context}] Cancelled in flight")
                    raise RequestCanceled(context)
                response = call.result()
        except RequestCanceled:
            raise
        except asyncio.CancelledError:
            call.cancel()
            raise
        except Exception as e:
            logger.error(f"[Error - {context}] Request failed: {e!r}")
            raise

        logger.info(f"[Response - {context}] Received response: {response!r}")
        return response
