"""
Tests for the streaming chat client session
"""
import httpx
import pytest
from langchain_core.messages import AIMessage

from agent.client import ChatSession
from agent.core.types import FilterSpec
from agent.store import InMemoryUserStore
from agent.streaming import ContentEvent, MetadataEvent
from app.main import app, get_chat_model, get_settings, get_store
from conftest import SEED_USERS, ScriptedChatModel, make_settings, tool_call


@pytest.fixture
def wire():
    store = InMemoryUserStore(SEED_USERS)
    state = {"model": None}
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_settings] = lambda: make_settings()
    app.dependency_overrides[get_chat_model] = lambda: state["model"]
    yield state
    app.dependency_overrides.clear()


def _session(window=20):
    client = httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")
    return ChatSession(client=client, window=window)


async def test_completed_turn_is_recorded(wire):
    wire["model"] = ScriptedChatModel(
        responses=[AIMessage(content="x"), AIMessage(content="Here are the admins.")]
    )
    session = _session()
    reply = await session.ask("show admins")

    assert reply == "Here are the admins."
    assert session.history == [
        {"role": "user", "content": "show admins"},
        {"role": "assistant", "content": "Here are the admins."},
    ]
    assert session.filters.criteria() == {"role": ["Admin"]}
    assert session.needs_refresh is False
    await session._client.aclose()


async def test_filters_merge_or_reset(wire):
    wire["model"] = ScriptedChatModel(responses=[AIMessage(content="ok")])
    session = _session()
    await session.ask("show admins")
    await session.ask("also include HR")
    assert session.filters.criteria() == {"role": ["Admin"], "department": ["HR"]}

    await session.ask("show designers")
    assert session.filters.criteria() == {"role": ["Designer"]}
    await session._client.aclose()


async def test_mutation_requests_refresh_and_keeps_filters(wire):
    wire["model"] = ScriptedChatModel(
        responses=[
            AIMessage(content="x"),
            AIMessage(content="Admins."),
            tool_call("delete_user", {"email": "test@test.com"}),
            AIMessage(content="Deleted."),
        ]
    )
    session = _session()
    await session.ask("show admins")
    await session.ask("Delete test@test.com")
    assert session.needs_refresh is True
    assert session.filters == FilterSpec(role=["Admin"])
    await session._client.aclose()


async def test_aborted_turn_discards_partial_reply(wire):
    wire["model"] = ScriptedChatModel(
        responses=[AIMessage(content="x"), AIMessage(content="A long answer")]
    )
    session = _session()
    events = session.send("show admins")
    async for event in events:
        if isinstance(event, ContentEvent):
            break
    await events.aclose()

    assert session.history == [{"role": "user", "content": "show admins"}]
    await session._client.aclose()


async def test_history_is_bounded(wire):
    wire["model"] = ScriptedChatModel(responses=[AIMessage(content="ok")])
    session = _session(window=4)
    for i in range(5):
        await session.ask(f"show users {i}")
    assert len(session.history) == 4
    assert session.history[0] == {"role": "user", "content": "show users 3"}
    await session._client.aclose()


async def test_metadata_arrives_before_content(wire):
    wire["model"] = ScriptedChatModel(responses=[AIMessage(content="ok")])
    session = _session()
    kinds = [type(event) async for event in session.send("show admins")]
    assert kinds.index(MetadataEvent) < kinds.index(ContentEvent)
    await session._client.aclose()


async def test_zero_window_keeps_no_history(wire):
    wire["model"] = ScriptedChatModel(responses=[AIMessage(content="ok")])
    session = _session(window=0)
    await session.ask("show users")
    await session.ask("show admins")
    assert session.history == []
    await session._client.aclose()


async def test_clear_turn_resets_held_filters(wire):
    wire["model"] = ScriptedChatModel(responses=[AIMessage(content="ok")])
    session = _session()
    await session.ask("show admins")
    await session.ask("clear all filters")
    assert session.filters == FilterSpec()
    await session._client.aclose()
