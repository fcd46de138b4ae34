from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Iterable, List, Mapping, Optional, Sequence

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage
from langchain_core.tools import BaseTool
from langchain_google_genai import ChatGoogleGenerativeAI

from agent.core.memory import build_messages
from config.settings import Settings


logger = logging.getLogger(__name__)


def content_text(content: Any) -> str:
    """Flatten message content (plain string or list of parts) to text."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: List[str] = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, Mapping) and part.get("type") == "text":
                parts.append(part.get("text") or "")
        return "".join(parts)
    return "" if content is None else str(content)


class ModelGateway:
    """One configured chat model, used for tool calls, extraction and streaming.

    Configuration is passed in explicitly so requests with different
    credentials never share state.
    """

    def __init__(self, settings: Settings, llm: Optional[BaseChatModel] = None) -> None:
        settings.require_model_credentials()
        self.settings = settings
        self.history_window = settings.history_window
        if llm is None:
            options = {"api_endpoint": settings.gemini_endpoint} if settings.gemini_endpoint else None
            llm = ChatGoogleGenerativeAI(
                model=settings.gemini_model,
                google_api_key=settings.google_api_key,
                temperature=settings.temperature,
                top_p=settings.top_p,
                max_output_tokens=settings.max_output_tokens,
                client_options=options,
            )
        self.llm = llm

    def build_messages(
        self, system_prompt: str, history: Optional[Iterable[Mapping]], user_message: str
    ) -> List[BaseMessage]:
        return build_messages(system_prompt, history, user_message, self.history_window)

    def with_tools(self, tools: Sequence[BaseTool]):
        return self.llm.bind_tools(list(tools))

    async def invoke(
        self, messages: List[BaseMessage], tools: Optional[Sequence[BaseTool]] = None
    ) -> AIMessage:
        runnable = self.with_tools(tools) if tools else self.llm
        result = await runnable.ainvoke(messages)
        logger.info(
            "Model call: messages=%s tool_calls=%s",
            len(messages),
            len(getattr(result, "tool_calls", None) or []),
        )
        return result

    async def stream(self, messages: List[BaseMessage]) -> AsyncIterator[str]:
        async for chunk in self.llm.astream(messages):
            text = content_text(chunk.content)
            if text:
                yield text

    async def complete(self, messages: List[BaseMessage]) -> str:
        result = await self.llm.ainvoke(messages)
        return content_text(result.content)
