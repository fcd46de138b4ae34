"""
Pytest configuration and fixtures
"""
from typing import Any, List, Optional

import pytest
from langchain_core.language_models.fake_chat_models import FakeMessagesListChatModel
from langchain_core.messages import AIMessage, BaseMessage
from pydantic import Field

from agent.agent import TurnOrchestrator
from agent.gateway import ModelGateway
from agent.store import InMemoryUserStore
from config.settings import Settings


SEED_USERS = [
    {"name": "Daryl Tanner", "email": "daryl.tanner@example.com", "age": 34,
     "role": "Developer", "department": "Sales", "phone": "8801555123"},
    {"name": "Daryl Smith", "email": "daryl.smith@example.com", "age": 41,
     "role": "Manager", "department": "Sales"},
    {"name": "Test User", "email": "test@test.com", "age": 22,
     "role": "Admin", "department": "HR"},
    {"name": "Priya Natarajan", "email": "priya@example.com", "age": 29,
     "role": "Designer", "department": "Marketing"},
]


class ScriptedChatModel(FakeMessagesListChatModel):
    """Replays scripted replies in order and records what it was sent."""

    received: List[List[BaseMessage]] = Field(default_factory=list)
    bound_tools: List[Any] = Field(default_factory=list)

    def bind_tools(self, tools, **kwargs):
        self.bound_tools = list(tools)
        return self

    def _generate(self, messages, stop=None, run_manager=None, **kwargs):
        self.received.append(list(messages))
        return super()._generate(messages, stop=stop, run_manager=run_manager, **kwargs)


class FailingChatModel(ScriptedChatModel):
    error: str = "model unavailable"

    def _generate(self, messages, stop=None, run_manager=None, **kwargs):
        self.received.append(list(messages))
        raise RuntimeError(self.error)


def tool_call(name: str, args: dict, call_id: str = "call_1") -> AIMessage:
    return AIMessage(content="", tool_calls=[{"name": name, "args": args, "id": call_id}])


def make_settings(extraction: str = "lexical", api_key: Optional[str] = "test-key") -> Settings:
    settings = Settings()
    settings.google_api_key = api_key
    settings.filter_extraction = extraction
    settings.fuzzy_threshold = 0.4
    settings.history_window = 20
    return settings


@pytest.fixture
def store() -> InMemoryUserStore:
    return InMemoryUserStore(SEED_USERS)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


def make_orchestrator(store, replies, extraction: str = "lexical"):
    model = ScriptedChatModel(responses=list(replies))
    gateway = ModelGateway(make_settings(extraction), llm=model)
    return TurnOrchestrator(gateway, store), model
