import pytest

from greflect.agent.context import SEED_TOPIC, create_initial_state
from greflect.agent.orchestrator import DialogueStepError
from greflect.agent.types import DialogueExchange, Insight, WorkingMemory
from greflect.providers.base import LLMResponse

from conftest import error, text, tool_call


def _explorer_state():
    state = create_initial_state()
    state.current_agent = "explorer"
    state.phase = "responding"
    return state


async def test_first_question_turn(orchestrator, provider, store):
    provider.queue(text("What watches the watcher?"))
    state = create_initial_state()

    outcome = await orchestrator.step(state)

    new = outcome.state
    assert outcome.exchange.type == "question"
    assert outcome.exchange.agent == "questioner"
    assert outcome.exchange.depth == 0
    assert new.depth == 0
    assert new.phase == "questioning"
    assert new.current_agent == "explorer"
    assert new.context.recent_exchanges[-1].content == "What watches the watcher?"
    assert new.question_thread.sub_questions == ["What watches the watcher?"]
    assert new.question_thread.depth == 1
    assert outcome.new_insights == []

    # the caller's state is untouched
    assert state.current_agent == "questioner"
    assert state.context.recent_exchanges == []

    call = provider.chat_calls[0]
    assert [t["function"]["name"] for t in call["tools"]] == ["memory_search", "concept_lookup"]
    assert call["model"] == "gpt-5-nano"
    assert SEED_TOPIC in call["messages"][1]["content"]

    episodic = [m for _, m in store.memories.values() if m.type == "episodic"]
    assert len(episodic) == 1
    assert episodic[0].metadata["significance"] == "medium"


async def test_realization_turn_produces_insight(orchestrator, provider):
    provider.queue(text("I realize that memory precedes experience."))

    outcome = await orchestrator.step(_explorer_state())

    assert len(outcome.new_insights) == 1
    insight = outcome.new_insights[0]
    assert insight.content == "memory precedes experience"
    assert insight.significance == "medium"
    assert insight.generated_by == "explorer"
    assert outcome.exchange.type == "insight"
    assert outcome.state.phase == "synthesizing"
    assert outcome.state.current_agent == "questioner"
    assert outcome.state.insights[-1].content == "memory precedes experience"
    assert provider.chat_calls[0]["model"] == "xai/grok-3-mini"

    events = [e.type for e in orchestrator.get_event_history()]
    assert events == ["insight_generated", "phase_change", "memory_stored", "agent_response"]


async def test_long_question_advances_depth(orchestrator, provider):
    question = "If awareness " + "keeps folding back upon itself " * 4 + "what remains?"
    assert len(question) > 100
    provider.queue(text(question))

    outcome = await orchestrator.step(create_initial_state())

    assert outcome.exchange.depth == 0
    assert outcome.state.depth == 1


async def test_unchanged_phase_emits_no_phase_event(orchestrator, provider):
    provider.queue(text("Why?"))
    await orchestrator.step(create_initial_state())
    assert "phase_change" not in [e.type for e in orchestrator.get_event_history()]


@pytest.mark.parametrize("agent, expected", [("questioner", "explorer"), ("explorer", "questioner")])
async def test_agents_alternate(orchestrator, provider, agent, expected):
    provider.queue(text("A plain remark."))
    state = create_initial_state()
    state.current_agent = agent
    outcome = await orchestrator.step(state)
    assert outcome.state.current_agent == expected


async def test_tool_call_then_follow_up(orchestrator, provider, store):
    provider.queue(
        tool_call("web_search", {"query": "qualia"}),
        text("Qualia are felt qualities."),
    )

    outcome = await orchestrator.step(_explorer_state())
    response = outcome.exchange.response

    assert outcome.exchange.content == "Qualia are felt qualities."
    assert response.tools_used == ["web_search"]
    assert response.tool_details[0]["tool"] == "web_search"
    assert response.tool_details[0]["result"][0]["title"].startswith("Qualia")

    follow_up = provider.chat_calls[1]
    assert follow_up["tools"] is None
    roles = [m["role"] for m in follow_up["messages"]]
    assert roles == ["system", "user", "assistant", "tool", "user"]

    pattern = store.patterns["explorer:web_search"]
    assert pattern["effectiveness"] == pytest.approx(response.confidence)


async def test_tool_outside_role_is_recorded_not_executed(orchestrator, provider, search):
    provider.queue(tool_call("web_search", {"query": "qualia"}, content="What are qualia?"))

    outcome = await orchestrator.step(create_initial_state())
    response = outcome.exchange.response

    assert search.queries == []
    assert response.tools_used == []
    assert "not available" in response.tool_details[0]["error"]
    assert outcome.exchange.type == "question"
    assert len(provider.chat_calls) == 1


async def test_failing_tool_does_not_abort_turn(orchestrator, provider):
    provider.queue(tool_call("concept_lookup", {"concept": ""}, content="Is the self a story?"))

    outcome = await orchestrator.step(create_initial_state())

    assert outcome.exchange.content == "Is the self a story?"
    assert outcome.exchange.response.tools_used == []
    assert "concept" in outcome.exchange.response.tool_details[0]["error"]


async def test_memory_search_results_become_references(orchestrator, provider, memory):
    stored = await memory.store_episodic_memory(
        "run-1", DialogueExchange(agent="explorer", type="response", content="awareness persists"), "medium"
    )
    provider.queue(tool_call("memory_search", {"query": "awareness"}, content="Does awareness persist?"))

    outcome = await orchestrator.step(create_initial_state())

    assert stored.id in outcome.exchange.related_memories
    assert outcome.exchange.response.memory_references == list(outcome.exchange.related_memories)
    assert outcome.exchange.response.tools_used == ["memory_search"]


async def test_synthesis_insights_join_the_turn(orchestrator, provider, store):
    mem = await orchestrator.memory.store_episodic_memory(
        "run-1", DialogueExchange(agent="questioner", type="question", content="Who remembers?"), "medium"
    )
    provider.queue(
        tool_call("memory_synthesis", {"memories": [mem.id]}, content="Patterns are emerging."),
        text('[{"content": "Remembering creates the rememberer", "significance": "high"}]'),
    )

    outcome = await orchestrator.step(_explorer_state())

    assert [i.content for i in outcome.new_insights] == ["Remembering creates the rememberer"]
    assert outcome.new_insights[0].generated_by == "synthesis"
    assert outcome.state.phase == "synthesizing"


async def test_empty_reply_becomes_error_text(orchestrator, provider):
    provider.queue(text(""))

    outcome = await orchestrator.step(create_initial_state())

    assert outcome.exchange.content == f"Error: AI model returned empty response. Topic: {SEED_TOPIC}"
    assert outcome.exchange.type == "response"


async def test_model_error_raises_and_leaves_state(orchestrator, provider, store):
    provider.queue(error())
    state = create_initial_state()

    with pytest.raises(DialogueStepError):
        await orchestrator.step(state)

    assert state.context.recent_exchanges == []
    assert store.memories == {}


async def test_step_requires_run_id(orchestrator):
    orchestrator.run_id = None
    with pytest.raises(RuntimeError):
        await orchestrator.step(create_initial_state())


async def test_execute_dialogue_step_updates_own_state(orchestrator, provider):
    provider.queue(text("What is a self?"), text("A self is a pattern."))

    first = await orchestrator.execute_dialogue_step()
    second = await orchestrator.execute_dialogue_step()

    assert (first.agent, second.agent) == ("questioner", "explorer")
    current = orchestrator.get_current_state()
    assert [e.content for e in current.context.recent_exchanges] == ["What is a self?", "A self is a pattern."]

    current.depth = 99
    assert orchestrator.get_current_state().depth == 0


@pytest.mark.parametrize("depth, expected", [(37, 0), (11, 0), (10, 10), (5, 5), (-2, 0)])
async def test_restore_state_clamps_corrupted_depth(orchestrator, depth, expected):
    restored = orchestrator.restore_state({"depth": depth})
    assert restored.depth == expected


async def test_restore_state_merges_partial_dicts(orchestrator):
    restored = orchestrator.restore_state({
        "id": "state-1",
        "current_agent": "explorer",
        "phase": "reflecting",
        "context": {
            "current_topic": "hard problem",
            "focus_areas": ["qualia"],
            "recent_exchanges": [{"agent": "questioner", "type": "question", "content": "Why?"}],
        },
        "question_thread": {"root_question": "What is it like?", "depth": 3},
        "insights": [Insight(content="a"), {"content": "b", "generated_by": "questioner"}],
    })

    assert restored.id == "state-1"
    assert restored.current_agent == "explorer"
    assert restored.phase == "reflecting"
    assert restored.context.current_topic == "hard problem"
    assert restored.context.recent_exchanges[0].content == "Why?"
    assert restored.context.open_questions == []
    assert restored.question_thread.root_question == "What is it like?"
    assert restored.question_thread.sub_questions == []
    assert [i.content for i in restored.insights] == ["a", "b"]
    assert orchestrator.get_current_state().id == "state-1"


async def test_restore_state_keeps_missing_keys(orchestrator):
    restored = orchestrator.restore_state({"phase": "nonsense", "context": WorkingMemory(current_topic="t")})
    assert restored.phase == "questioning"
    assert restored.context.current_topic == "t"
    assert restored.question_thread.root_question.startswith("What watches the watcher")


async def test_recent_insights(orchestrator):
    orchestrator.restore_state({"insights": [Insight(content=str(i)) for i in range(8)]})
    assert [i.content for i in orchestrator.get_recent_insights(3)] == ["5", "6", "7"]
    assert orchestrator.get_recent_insights(0) == []


@pytest.mark.parametrize("depth", ["deep", "", [3]])
async def test_restore_state_resets_unparseable_depth(orchestrator, depth):
    assert orchestrator.restore_state({"depth": depth}).depth == 0


async def test_token_usage_is_logged(orchestrator, provider, log_messages):
    provider.queue(LLMResponse(content="Why?", usage={"prompt_tokens": 120, "completion_tokens": 8, "total_tokens": 128}))

    await orchestrator.step(create_initial_state())

    assert "[questioner] Token usage: prompt 120, completion 8" in log_messages
