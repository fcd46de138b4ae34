from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from agent.core.memory import DEFAULT_WINDOW
from agent.core.types import FilterSpec, merge_filters
from agent.streaming import ContentEvent, MetadataEvent, StreamEvent, StreamParser
from config.settings import get_settings


logger = logging.getLogger(__name__)


class ChatSession:
    """Client side of the chat stream.

    Owns the conversation (bounded to ``window`` turns) and the filters applied
    to the list view. A reply only joins the history once the stream finished;
    an aborted turn leaves no partial assistant message behind.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        window: int = DEFAULT_WINDOW,
        timeout: float = 60.0,
    ) -> None:
        self.base_url = base_url or get_settings().users_api_url
        self._client = client
        self._owns_client = client is None
        self.window = window
        self.timeout = timeout
        self.history: List[Dict[str, str]] = []
        self.filters: Optional[FilterSpec] = None
        self.needs_refresh = False
        self.last_status: Optional[str] = None

    async def __aenter__(self) -> "ChatSession":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout)
        return self._client

    def _append(self, role: str, content: str) -> None:
        self.history.append({"role": role, "content": content})
        if self.window <= 0:
            self.history.clear()
        else:
            del self.history[: -self.window]

    def _apply(self, metadata: MetadataEvent) -> None:
        self.needs_refresh = metadata.refresh
        if metadata.refresh or metadata.unrelated:
            return
        update = metadata.filters.model_copy(update={"should_reset": metadata.should_reset})
        if update.is_empty() and not metadata.should_reset:
            return
        self.filters = merge_filters(self.filters, update)

    async def send(self, message: str) -> AsyncIterator[StreamEvent]:
        """Stream one turn, yielding status, metadata and content events."""
        payload: Dict[str, Any] = {"message": message, "history": list(self.history)}
        if self.filters is not None:
            payload["currentFilters"] = self.filters.criteria()

        parser = StreamParser()
        reply: List[str] = []
        completed = False
        self._append("user", message)
        try:
            async with self._http().stream("POST", "/ai/chat", json=payload) as response:
                if response.status_code >= 400:
                    body = await response.aread()
                    raise httpx.HTTPStatusError(
                        f"Chat request failed with {response.status_code}: {body[:200]!r}",
                        request=response.request,
                        response=response,
                    )
                async for chunk in response.aiter_bytes():
                    for event in parser.feed(chunk):
                        if isinstance(event, MetadataEvent):
                            self._apply(event)
                        elif isinstance(event, ContentEvent):
                            reply.append(event.text)
                        else:
                            self.last_status = event.status
                        yield event
            parser.close()
            completed = True
        finally:
            if completed:
                self._append("assistant", "".join(reply))
            elif reply:
                logger.info("Turn aborted; discarding %s chars of partial reply", len("".join(reply)))

    async def ask(self, message: str) -> str:
        """Send a message and return the complete reply text."""
        parts = [event.text async for event in self.send(message) if isinstance(event, ContentEvent)]
        return "".join(parts)
