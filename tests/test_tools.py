from greflect.agent.tools import (
    ConceptLookupTool,
    MemorySearchTool,
    MemorySynthesisTool,
    ToolRegistry,
    WebSearchTool,
)
from greflect.agent.types import Memory, PhilosophicalConcept, WorkingMemory
from greflect.providers.brave import SearchResult

from conftest import FakeSearch, text


def _registry(memory, search) -> ToolRegistry:
    registry = ToolRegistry()
    registry.register(MemorySearchTool(memory))
    registry.register(MemorySynthesisTool(memory))
    registry.register(ConceptLookupTool(search, memory))
    registry.register(WebSearchTool(search))
    return registry


async def test_definitions_follow_requested_order(memory, search):
    registry = _registry(memory, search)
    names = [d["function"]["name"] for d in registry.get_definitions(["concept_lookup", "memory_search"])]
    assert names == ["concept_lookup", "memory_search"]
    assert len(registry.get_definitions()) == 4
    assert registry.get("web_search") is not None


async def test_unknown_tool_is_an_error_outcome(memory, search):
    outcome = await _registry(memory, search).execute("shell", {"cmd": "ls"})
    assert not outcome.ok
    assert "not found" in outcome.error


async def test_invalid_parameters_are_reported(memory, search):
    registry = _registry(memory, search)

    outcome = await registry.execute("web_search", {"query": "qualia", "count": 50})
    assert not outcome.ok
    assert "count must be <= 10" in outcome.error

    outcome = await registry.execute("memory_search", {"query": "x", "types": ["dreams"]})
    assert not outcome.ok
    assert "must be one of" in outcome.error

    outcome = await registry.execute("concept_lookup", {})
    assert "missing required concept" in outcome.error


async def test_search_targets_map_to_memory_types(memory):
    tool = MemorySearchTool(memory)
    params = tool.parse_params({"query": "q", "types": ["insights", "concepts", "experiences", "strategies"]})
    assert params.types == ["episodic", "semantic", "procedural"]
    assert params.limit == 5


async def test_concept_lookup_stores_searched_concept(memory, search, store, vectors):
    outcome = await _registry(memory, search).execute("concept_lookup", {"concept": "qualia"})

    assert outcome.ok
    concept = outcome.result
    assert isinstance(concept, PhilosophicalConcept)
    assert concept.definition.startswith("Qualia are the subjective")
    assert "qualia" in concept.related_concepts
    assert concept.sources == ["https://plato.stanford.edu/entries/qualia/"]
    assert search.queries == [("philosophy qualia definition meaning", 5)]
    assert store.concepts["qualia"]["exploration_level"] == 1
    assert len(vectors.collections["semantic"]) == 1


async def test_concept_lookup_falls_back_when_search_raises(memory, store):
    tool = ConceptLookupTool(FakeSearch(fail=True), memory)
    concept = await tool.execute(tool.parse_params({"concept": "binding problem"}))

    assert concept.definition.startswith("Definition unavailable")
    assert concept.related_concepts == ["binding problem"]
    assert "binding problem" in store.concepts


async def test_web_search_uses_count(memory):
    results = [SearchResult(title=f"t{i}", url=f"https://e/{i}", description="d") for i in range(8)]
    search = FakeSearch(results)
    outcome = await _registry(memory, search).execute("web_search", {"query": "hard problem", "count": 3})

    assert outcome.ok
    assert [r.title for r in outcome.result] == ["t0", "t1", "t2"]
    assert outcome.to_dict()["result"][0]["url"] == "https://e/0"


async def test_synthesis_without_known_memories(memory, search):
    registry = _registry(memory, search)

    outcome = await registry.execute("memory_synthesis", {"memories": []})
    assert outcome.result.synthesis == "No memories provided for synthesis"

    outcome = await registry.execute("memory_synthesis", {"memories": ["missing-id"]})
    assert outcome.result.synthesis == "No valid memories found for synthesis"
    assert outcome.result.insights == []


async def test_synthesis_returns_insights(memory, store, provider):
    mem = store.add_memory(Memory(id="m1", type="episodic", content={"exchange": {"content": "loops"}}))
    provider.queue(text('[{"content": "Awareness folds back on itself", "significance": "high", "relatedConcepts": ["awareness"]}]'))

    tool = MemorySynthesisTool(memory)
    tool.set_context(WorkingMemory(current_topic="loops"))
    result = await tool.execute(tool.parse_params({"memories": [mem.id, "unknown"]}))

    assert result.memory_ids == ["m1"]
    assert len(result.insights) == 1
    insight = result.insights[0]
    assert insight.generated_by == "synthesis"
    assert insight.significance == "high"
    assert insight.related_concepts == ["awareness"]
    assert insight.verified is False
