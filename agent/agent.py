from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import AsyncIterator, Iterable, List, Mapping, Optional, Tuple, Union

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, SystemMessage, ToolMessage

from agent.core.prompt import OFF_TOPIC_NOTE, build_system_prompt
from agent.core.types import (
    EMPTY_FILTERS,
    Failure,
    FilterSpec,
    InvalidToolCall,
    ToolOutcome,
    TurnResult,
    parse_tool_call,
)
from agent.filters.lexical import lexical_turn_filters
from agent.filters.model_assisted import extract_filters_with_model
from agent.gateway import ModelGateway, content_text
from agent.store import UserStore
from agent.streaming import encode_error, encode_metadata, encode_status
from agent.tools import build_user_tools, execute_invocation
from config.settings import Settings


logger = logging.getLogger(__name__)


STATUS_CONNECTING = "Connecting to database..."
STATUS_VOCABULARY = "Fetching system metadata..."
STATUS_ANALYZING = "Analyzing your request..."
STATUS_TOOLS = "Executing database tools..."
STATUS_GENERATING = "Generating response..."


@dataclass
class PreparedTurn:
    """Everything decided before the final reply is generated."""

    messages: List[BaseMessage]
    first_reply: AIMessage
    filters: FilterSpec = EMPTY_FILTERS
    should_reset: bool = False
    refresh: bool = False
    unrelated: bool = False
    outcomes: List[ToolOutcome] = field(default_factory=list)

    @property
    def needs_second_call(self) -> bool:
        return self.refresh or self.unrelated


@dataclass(frozen=True)
class Status:
    text: str


class TurnOrchestrator:
    """Runs one conversation turn: mutate via tools, or derive list filters.

    Idle -> ModelInvoked -> Done (no tools)
    Idle -> ModelInvoked -> ExecutingTools -> ModelInvokedAgain -> Done
    """

    def __init__(self, gateway: ModelGateway, store: UserStore) -> None:
        self.gateway = gateway
        self.store = store
        self.settings = gateway.settings

    async def fetch_vocabulary(self) -> Tuple[List[str], List[str]]:
        roles, departments = await asyncio.gather(
            self.store.distinct_values("role"),
            self.store.distinct_values("department"),
        )
        return list(roles), list(departments)

    async def execute_tool_calls(self, tool_calls: Iterable[Mapping]) -> List[ToolOutcome]:
        """Run every call concurrently; outcomes come back in call order."""
        calls = list(tool_calls)

        async def run(call: Mapping) -> ToolOutcome:
            try:
                invocation = parse_tool_call(dict(call))
            except InvalidToolCall as exc:
                logger.warning("Rejected tool call %s: %s", exc.name, exc.reason)
                return Failure(exc.reason)
            return await execute_invocation(self.store, invocation)

        return list(await asyncio.gather(*(run(call) for call in calls)))

    async def extract_filters(
        self,
        message: str,
        roles: List[str],
        departments: List[str],
        current_filters: Optional[FilterSpec],
    ) -> Optional[FilterSpec]:
        threshold = self.settings.fuzzy_threshold
        if self.settings.filter_extraction == "lexical":
            return lexical_turn_filters(message, roles, departments, threshold)
        return await extract_filters_with_model(
            self.gateway, message, roles, departments, current_filters, threshold
        )

    async def prepare(
        self,
        message: str,
        history: Optional[Iterable[Mapping]] = None,
        current_filters: Optional[FilterSpec] = None,
    ) -> AsyncIterator[Union[Status, PreparedTurn]]:
        """Yield progress statuses, then the PreparedTurn as the last item."""
        yield Status(STATUS_CONNECTING)
        yield Status(STATUS_VOCABULARY)
        roles, departments = await self.fetch_vocabulary()

        tools = build_user_tools(self.store)
        messages = self.gateway.build_messages(
            build_system_prompt(roles, departments), history, message
        )

        yield Status(STATUS_ANALYZING)
        first_reply = await self.gateway.invoke(messages, tools=tools)
        turn = PreparedTurn(messages=messages, first_reply=first_reply)

        if first_reply.tool_calls:
            yield Status(STATUS_TOOLS)
            turn.outcomes = await self.execute_tool_calls(first_reply.tool_calls)
            messages.append(first_reply)
            messages.extend(
                ToolMessage(
                    content=outcome.render(),
                    tool_call_id=call.get("id") or call.get("name") or "",
                    name=call.get("name"),
                )
                for call, outcome in zip(first_reply.tool_calls, turn.outcomes)
            )
            # Mutation turn: the list view re-queries; filters stay as they are.
            turn.refresh = True
            logger.info("Mutation turn: %s tool call(s)", len(turn.outcomes))
        else:
            extracted = await self.extract_filters(message, roles, departments, current_filters)
            if extracted is not None and extracted.unrelated:
                turn.unrelated = True
                messages.append(SystemMessage(content=OFF_TOPIC_NOTE))
            elif extracted is not None:
                turn.filters = FilterSpec.model_validate(extracted.criteria())
                turn.should_reset = bool(extracted.should_reset)
            logger.info(
                "Filter turn: filters=%s reset=%s unrelated=%s",
                turn.filters.criteria(),
                turn.should_reset,
                turn.unrelated,
            )

        yield turn

    async def _prepared(
        self,
        message: str,
        history: Optional[Iterable[Mapping]],
        current_filters: Optional[FilterSpec],
    ) -> PreparedTurn:
        turn = None
        async for item in self.prepare(message, history, current_filters):
            if isinstance(item, PreparedTurn):
                turn = item
        if turn is None:
            raise RuntimeError("Turn preparation ended without a result")
        return turn

    async def run(
        self,
        message: str,
        history: Optional[Iterable[Mapping]] = None,
        current_filters: Optional[FilterSpec] = None,
    ) -> TurnResult:
        turn = await self._prepared(message, history, current_filters)
        if turn.needs_second_call:
            response = await self.gateway.complete(turn.messages)
        else:
            response = content_text(turn.first_reply.content)
        return TurnResult(
            response=response,
            filters=turn.filters,
            refresh=turn.refresh,
            should_reset=turn.should_reset,
            unrelated=turn.unrelated,
            outcomes=turn.outcomes,
        )

    async def stream(
        self,
        message: str,
        history: Optional[Iterable[Mapping]] = None,
        current_filters: Optional[FilterSpec] = None,
    ) -> AsyncIterator[str]:
        """Encoded chat stream: status lines, one metadata line, then reply text.

        Errors never escape: they become a terminal text fragment, after the
        metadata line if it has not been sent yet.
        """
        metadata_sent = False
        try:
            turn = None
            async for item in self.prepare(message, history, current_filters):
                if isinstance(item, PreparedTurn):
                    turn = item
                else:
                    yield encode_status(item.text)
            if turn is None:
                raise RuntimeError("Turn preparation ended without a result")

            yield encode_status(STATUS_GENERATING)
            yield encode_metadata(turn.filters, turn.should_reset, turn.refresh, turn.unrelated)
            metadata_sent = True

            async for fragment in self.gateway.stream(turn.messages):
                yield fragment
        except Exception as exc:
            logger.exception("Streaming turn failed: %s", exc)
            if not metadata_sent:
                yield encode_metadata()
            yield encode_error(exc)


def build_orchestrator(
    store: UserStore, settings: Settings, llm: Optional[BaseChatModel] = None
) -> TurnOrchestrator:
    """Raises ConfigurationError when model credentials are missing."""
    return TurnOrchestrator(ModelGateway(settings, llm=llm), store)
