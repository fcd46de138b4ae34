"""
Tests for the turn orchestrator (tool execution, filter turns, streaming)
"""
import json

import pytest
from langchain_core.messages import AIMessage, SystemMessage, ToolMessage

from agent.agent import STATUS_GENERATING, STATUS_TOOLS, TurnOrchestrator
from agent.core.types import Ambiguous, FilterSpec, Success
from agent.gateway import ModelGateway
from agent.streaming import ContentEvent, MetadataEvent, StatusEvent, StreamParser
from conftest import FailingChatModel, make_orchestrator, make_settings, tool_call


async def _collect(orchestrator, message, history=None, current_filters=None):
    chunks = [chunk async for chunk in orchestrator.stream(message, history, current_filters)]
    parser = StreamParser()
    events = []
    for chunk in chunks:
        events.extend(parser.feed(chunk))
    return events


async def test_ambiguous_update_mutates_nothing(store):
    orchestrator, model = make_orchestrator(
        store,
        [
            tool_call("update_user", {"name_query": "Daryl", "updates": {"age": 30}}),
            AIMessage(content="I found two Daryls. Which email should I use?"),
        ],
    )
    result = await orchestrator.run("Update Daryl's age to 30")

    [outcome] = result.outcomes
    assert isinstance(outcome, Ambiguous)
    assert set(outcome.candidate_names) == {"Daryl Tanner", "Daryl Smith"}
    assert result.refresh is True
    assert result.filters.is_empty()
    ages = sorted(r.age for r in await store.find(lambda r: r.name.startswith("Daryl")))
    assert ages == [34, 41]

    # second call sees the tool call and its result
    second = model.received[1]
    assert isinstance(second[-1], ToolMessage)
    assert second[-1].content.startswith("Error: Multiple users found")
    assert second[-1].tool_call_id == "call_1"


async def test_delete_by_email_refreshes_and_leaves_filters(store):
    orchestrator, _ = make_orchestrator(
        store,
        [
            tool_call("delete_user", {"email": "test@test.com"}),
            AIMessage(content="Deleted Test User."),
        ],
    )
    current = FilterSpec(role=["Admin"])
    result = await orchestrator.run("Delete test@test.com", current_filters=current)

    assert result.outcomes == [Success("Test User", "Deleted user Test User.")]
    assert result.refresh is True
    assert result.filters == FilterSpec()
    assert result.should_reset is False
    assert result.response == "Deleted Test User."
    assert await store.find(lambda r: r.email == "test@test.com") == []


async def test_mutation_turn_skips_filter_extraction(store):
    # model-assisted mode: a filter pass would consume a third scripted reply
    orchestrator, model = make_orchestrator(
        store,
        [
            tool_call("create_user", {"name": "Show Developers", "email": "sd@example.com"}),
            AIMessage(content="Created."),
        ],
        extraction="model",
    )
    result = await orchestrator.run("Add Show Developers with email sd@example.com")
    assert len(model.received) == 2
    assert result.filters.is_empty()
    assert result.refresh is True


async def test_multiple_tool_calls_keep_invocation_order(store):
    reply = AIMessage(
        content="",
        tool_calls=[
            {"name": "delete_user", "args": {"name_query": "Ghost"}, "id": "a"},
            {"name": "update_user", "args": {"name_query": "Priya", "updates": {"age": 31}}, "id": "b"},
            {"name": "drop_table", "args": {}, "id": "c"},
        ],
    )
    orchestrator, model = make_orchestrator(store, [reply, AIMessage(content="Done.")])
    result = await orchestrator.run("delete ghost, make priya 31, drop everything")

    assert [type(o).__name__ for o in result.outcomes] == ["NotFound", "Success", "Failure"]
    tool_messages = [m for m in model.received[1] if isinstance(m, ToolMessage)]
    assert [m.tool_call_id for m in tool_messages] == ["a", "b", "c"]


async def test_filter_turn_lexical(store):
    orchestrator, _ = make_orchestrator(
        store, [AIMessage(content="Here are the developers I found.")]
    )
    result = await orchestrator.run("Show developers in Sales with age max 40 sorted by age desc")

    assert result.refresh is False
    assert result.filters.criteria() == {
        "role": ["Developer"],
        "department": ["Sales"],
        "maxAge": "40",
        "sortBy": "age",
        "sortOrder": "desc",
    }
    assert result.should_reset is True
    assert result.response == "Here are the developers I found."


async def test_filter_turn_model_assisted(store):
    extraction = AIMessage(content='```json\n{"role": ["admins"], "shouldReset": false}\n```')
    orchestrator, model = make_orchestrator(
        store,
        [AIMessage(content="Here are the admins."), extraction],
        extraction="model",
    )
    result = await orchestrator.run(
        "also show admins", current_filters=FilterSpec(department=["HR"])
    )
    assert result.filters.criteria() == {"role": ["Admin"]}
    assert result.should_reset is False
    assert '"department": ["HR"]' in model.received[1][-1].content


async def test_malformed_extraction_is_not_fatal(store):
    orchestrator, _ = make_orchestrator(
        store,
        [AIMessage(content="Here you go."), AIMessage(content="sorry, no JSON today")],
        extraction="model",
    )
    result = await orchestrator.run("show admins")
    assert result.filters.is_empty()
    assert result.response == "Here you go."


@pytest.mark.parametrize("extraction", ["lexical", "model"])
async def test_off_topic_message(store, extraction):
    replies = [AIMessage(content="Ha!")]
    if extraction == "model":
        replies.append(AIMessage(content='{"unrelated": true}'))
    replies.append(AIMessage(content="I manage your user directory."))
    orchestrator, model = make_orchestrator(store, replies, extraction=extraction)

    result = await orchestrator.run("tell me a joke")

    assert result.unrelated is True
    assert result.filters.is_empty()
    assert result.outcomes == []
    assert result.refresh is False
    assert result.response == "I manage your user directory."
    final_call = model.received[-1]
    assert isinstance(final_call[-1], SystemMessage)
    assert "off-topic" in final_call[-1].content


async def test_vocabulary_and_history_reach_the_model(store):
    orchestrator, model = make_orchestrator(store, [AIMessage(content="ok")])
    history = [{"role": "user", "content": f"message {i}"} for i in range(30)]
    await orchestrator.run("show users", history=history)

    first = model.received[0]
    system = first[0].content
    assert "Existing Roles: Admin, Designer, Developer, Manager" in system
    assert "Existing Departments: HR, Marketing, Sales" in system
    # system + last 20 turns + new message
    assert len(first) == 22
    assert first[1].content == "message 10"
    assert [tool.name for tool in model.bound_tools] == ["create_user", "update_user", "delete_user"]


async def test_stream_order_for_filter_turn(store):
    orchestrator, _ = make_orchestrator(
        store, [AIMessage(content="ignored"), AIMessage(content="Here are the admins.")]
    )
    events = await _collect(orchestrator, "show admins")

    kinds = [type(e) for e in events]
    meta_index = kinds.index(MetadataEvent)
    assert all(k is StatusEvent for k in kinds[:meta_index])
    assert all(k is ContentEvent for k in kinds[meta_index + 1:])
    assert events[meta_index - 1] == StatusEvent(STATUS_GENERATING)
    assert events[meta_index].filters.role == ["Admin"]
    assert "".join(e.text for e in events[meta_index + 1:]) == "Here are the admins."


async def test_stream_for_mutation_turn(store):
    orchestrator, _ = make_orchestrator(
        store,
        [tool_call("delete_user", {"email": "test@test.com"}), AIMessage(content="Deleted.")],
    )
    events = await _collect(orchestrator, "Delete test@test.com")

    assert StatusEvent(STATUS_TOOLS) in events
    [metadata] = [e for e in events if isinstance(e, MetadataEvent)]
    assert metadata.refresh is True
    assert metadata.filters.is_empty()


async def test_stream_error_still_sends_metadata_first(store):
    model = FailingChatModel(responses=[AIMessage(content="unused")])
    orchestrator = TurnOrchestrator(ModelGateway(make_settings(), llm=model), store)

    chunks = [chunk async for chunk in orchestrator.stream("show admins")]
    metadata_lines = [c for c in chunks if c.startswith("{") and '"metadata": true' in c]
    assert len(metadata_lines) == 1
    assert json.loads(metadata_lines[0])["filters"] == {}
    assert chunks.index(metadata_lines[0]) < len(chunks) - 1
    assert chunks[-1] == "\nError: model unavailable"


async def test_run_propagates_transport_errors(store):
    model = FailingChatModel(responses=[AIMessage(content="unused")])
    orchestrator = TurnOrchestrator(ModelGateway(make_settings(), llm=model), store)
    with pytest.raises(RuntimeError, match="model unavailable"):
        await orchestrator.run("show admins")


@pytest.mark.parametrize("extraction", ["lexical", "model"])
async def test_clear_filters_turn_resets(store, extraction):
    replies = [AIMessage(content="All filters cleared.")]
    if extraction == "model":
        replies.append(AIMessage(content='{"shouldReset": true}'))
    orchestrator, _ = make_orchestrator(store, replies, extraction=extraction)

    result = await orchestrator.run("clear all filters", current_filters=FilterSpec(role=["Admin"]))

    assert result.should_reset is True
    assert result.filters.is_empty()
    assert result.unrelated is False
    assert result.refresh is False
    assert result.response == "All filters cleared."
